import json

from esdbclient import StreamState

from carbon_ledger.core.models.base import LedgerEventType
from carbon_ledger.core.notifications import (
    EventStoreNotificationPublisher,
    LedgerEvent,
    LoggingNotificationPublisher,
    dispatch_notifications,
    get_notification_publisher,
)
from carbon_ledger.settings import settings


def make_event(organisation_id: int = 1) -> LedgerEvent:
    return LedgerEvent(
        type=LedgerEventType.CLAIM_CREATED,
        organisation_id=organisation_id,
        metadata={"claim_id": 1, "amount": "10"},
    )


class TestNotifications:
    def test_publisher_selection(self, esdb_client):
        assert isinstance(get_notification_publisher(None), LoggingNotificationPublisher)
        assert isinstance(
            get_notification_publisher(esdb_client), EventStoreNotificationPublisher
        )

    def test_event_store_publisher(self, esdb_client):
        EventStoreNotificationPublisher(esdb_client).publish(make_event(7))

        call = esdb_client.append_to_stream.call_args
        assert call.args[0] == settings.NOTIFICATION_STREAM
        assert call.kwargs["current_version"] == StreamState.ANY
        new_event = call.kwargs["events"][0]
        assert new_event.type == "CLAIM_CREATED"
        assert new_event.content_type == "application/json"
        assert json.loads(new_event.data)["organisation_id"] == 7

    def test_logging_publisher_used_without_client(self):
        assert dispatch_notifications([make_event(), make_event(2)], None) == 2

    def test_failed_publish_is_isolated(self, esdb_client):
        esdb_client.append_to_stream.side_effect = [
            Exception("connection reset"),
            None,
        ]

        published = dispatch_notifications([make_event(1), make_event(2)], esdb_client)

        assert published == 1
        assert esdb_client.append_to_stream.call_count == 2
