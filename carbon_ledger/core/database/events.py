from esdbclient import EventStoreDBClient

from carbon_ledger.logging_config import logger
from carbon_ledger.settings import settings

esdb_client_cache: dict[str, EventStoreDBClient] = {}


def get_esdb_client() -> EventStoreDBClient | None:
    """FastAPI dependency returning the EventStoreDB client, or None when no
    EventStoreDB connection is configured."""
    if not settings.ESDB_CONNECTION_STRING:
        return None

    if "default" not in esdb_client_cache:
        logger.info("Connecting to EventStoreDB")
        esdb_client_cache["default"] = EventStoreDBClient(
            uri=settings.ESDB_CONNECTION_STRING
        )

    return esdb_client_cache["default"]
