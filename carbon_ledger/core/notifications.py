import abc
import datetime
from typing import Any

from esdbclient import EventStoreDBClient, NewEvent, StreamState
from pydantic import BaseModel, Field

from carbon_ledger.core.models.base import LedgerEventType, utc_datetime_now
from carbon_ledger.logging_config import logger
from carbon_ledger.settings import settings


class LedgerEvent(BaseModel):
    """Notification emitted to an organisation after a ledger change commits."""

    type: LedgerEventType
    organisation_id: int
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime.datetime = Field(default_factory=utc_datetime_now)


class NotificationPublisher(abc.ABC):
    @abc.abstractmethod
    def publish(self, event: LedgerEvent) -> None:
        pass


class EventStoreNotificationPublisher(NotificationPublisher):
    def __init__(
        self,
        esdb_client: EventStoreDBClient,
        stream_name: str = settings.NOTIFICATION_STREAM,
    ):
        self.esdb_client = esdb_client
        self.stream_name = stream_name

    def publish(self, event: LedgerEvent) -> None:
        self.esdb_client.append_to_stream(
            self.stream_name,
            current_version=StreamState.ANY,
            events=[
                NewEvent(
                    type=event.type.value,
                    data=event.model_dump_json().encode(),
                    content_type="application/json",
                )
            ],
        )


class LoggingNotificationPublisher(NotificationPublisher):
    def publish(self, event: LedgerEvent) -> None:
        logger.info(f"Notification: {event.model_dump_json()}")


def get_notification_publisher(
    esdb_client: EventStoreDBClient | None,
) -> NotificationPublisher:
    if esdb_client is None:
        return LoggingNotificationPublisher()
    return EventStoreNotificationPublisher(esdb_client)


def dispatch_notifications(
    ledger_events: list[LedgerEvent],
    esdb_client: EventStoreDBClient | None,
) -> int:
    """Publish events for a committed ledger change.

    A failed publish is logged and skipped: the ledger state is already
    committed and never depends on delivery.

    Args:
        ledger_events (list[LedgerEvent]): Events to publish, in order.
        esdb_client (EventStoreDBClient | None): Client for the notification
            stream, or None to write notifications to the log.

    Returns:
        int: The number of events published successfully.
    """
    publisher = get_notification_publisher(esdb_client)
    published = 0
    for ledger_event in ledger_events:
        try:
            publisher.publish(ledger_event)
            published += 1
        except Exception as e:
            logger.error(
                f"Failed to publish {ledger_event.type.value} notification to "
                f"organisation {ledger_event.organisation_id}: {str(e)}"
            )
    return published
