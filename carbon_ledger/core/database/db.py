from contextlib import contextmanager
from typing import Any, Generator
from urllib.parse import urlparse

from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import Session, SQLModel, create_engine

from carbon_ledger.certificate import models as certificate_models
from carbon_ledger.claim import models as claim_models
from carbon_ledger.core.errors import Conflict
from carbon_ledger.core.models import base as base_models
from carbon_ledger.logging_config import logger
from carbon_ledger.organisation import models as organisation_models
from carbon_ledger.settings import settings
from carbon_ledger.transfer import models as transfer_models

"""
Importing the model modules registers every table on SQLModel.metadata
"""

__all__ = [
    "SQLModel",
    "base_models",
    "organisation_models",
    "certificate_models",
    "claim_models",
    "transfer_models",
]

# lock_not_available, serialization_failure, deadlock_detected
RETRYABLE_PG_CODES = {"55P03", "40001", "40P01"}
UNIQUE_VIOLATION_PG_CODE = "23505"


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def create_ledger_engine(connection_str: str, serialise_writers: bool) -> Engine:
    """Create an engine for the ledger database.

    On SQLite every transaction of a write engine opens with BEGIN IMMEDIATE,
    so concurrent writers queue on the database write lock instead of failing
    at commit. WAL journalling lets read connections proceed alongside them.

    Args:
        connection_str (str): SQLAlchemy database URL.
        serialise_writers (bool): Whether this engine serves ledger writes.

    Returns:
        Engine: The configured engine.
    """
    if not is_sqlite(connection_str):
        return create_engine(
            connection_str,
            pool_pre_ping=True,
            pool_size=10,
            max_overflow=20,
            pool_timeout=30,
            pool_recycle=1800,
            echo=False,
        )

    engine = create_engine(
        connection_str,
        connect_args={
            "check_same_thread": False,
            "timeout": settings.LOCK_TIMEOUT_MS / 1000,
        },
        echo=False,
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        if serialise_writers:
            # Hand transaction control to the "begin" listener below
            dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    if serialise_writers:

        @event.listens_for(engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


class DButils:
    def __init__(self, connection_str: str, serialise_writers: bool = False):
        self.connection_str = connection_str
        self.serialise_writers = serialise_writers

        parsed = urlparse(self.connection_str)
        redacted = self.connection_str
        if parsed.password:
            redacted = self.connection_str.replace(parsed.password, "********")
        logger.info(f"Database connection initialised: {redacted}")

        self.engine = create_ledger_engine(connection_str, serialise_writers)

    def yield_session(self) -> Generator[Session, None, None]:
        with self.get_session() as session:
            yield session

    def get_session(self) -> Session:
        # Committed rows stay loaded; locked reads refresh them explicitly
        return Session(self.engine, expire_on_commit=False)

    def create_tables(self):
        SQLModel.metadata.create_all(self.engine)


# Initialising the DButil clients
db_name_to_client: dict[str, Any] = {}


def get_db_name_to_client() -> dict[str, Any]:
    global db_name_to_client

    if db_name_to_client == {}:
        write_client = DButils(settings.database_url, serialise_writers=True)
        if settings.read_database_url == settings.database_url:
            read_client = DButils(settings.database_url, serialise_writers=False)
        else:
            read_client = DButils(settings.read_database_url, serialise_writers=False)

        db_name_to_client["db_write"] = write_client
        db_name_to_client["db_read"] = read_client

    return db_name_to_client


@contextmanager
def get_session(target: str) -> Generator[Session, None, None]:
    """Helper to get a session for a specific target database."""
    clients = get_db_name_to_client()

    if target not in clients:
        raise KeyError(
            f"Database client '{target}' not found. Initialised clients: {list(clients.keys())}"
        )

    with clients[target].get_session() as session:
        yield session


def get_write_session() -> Generator[Session, None, None]:
    """FastAPI dependency for a write database session."""
    with get_session("db_write") as session:
        yield session


def get_read_session() -> Generator[Session, None, None]:
    """FastAPI dependency for a read database session."""
    with get_session("db_read") as session:
        yield session


def is_lock_conflict(exc: OperationalError) -> bool:
    """Whether a database error is a lock timeout, serialization failure or
    deadlock that the caller may retry."""
    original = exc.orig
    code = getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)
    if code in RETRYABLE_PG_CODES:
        return True
    return "database is locked" in str(original).lower()


def is_unique_violation(exc: IntegrityError) -> bool:
    """Whether a write lost a race to insert the same unique key."""
    original = exc.orig
    code = getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)
    if code == UNIQUE_VIOLATION_PG_CODE:
        return True
    return "unique constraint failed" in str(original).lower()


@contextmanager
def ledger_transaction(write_session: Session) -> Generator[Session, None, None]:
    """Run a block of ledger mutations as a single database transaction.

    The transaction commits when the block exits cleanly and rolls back on any
    error, so a failed operation leaves no partial state behind. Lock waits
    are bounded by LOCK_TIMEOUT_MS; lock timeouts, serialization failures and
    deadlocks surface as Conflict, as do inserts that lose a race on a unique
    key.

    Args:
        write_session (Session): Session bound to the write database.

    Yields:
        Session: The same session, inside an open transaction.
    """
    try:
        if write_session.get_bind().dialect.name == "postgresql":
            write_session.execute(
                text(f"SET LOCAL lock_timeout = '{int(settings.LOCK_TIMEOUT_MS)}ms'")
            )
        yield write_session
        write_session.commit()
    except OperationalError as e:
        write_session.rollback()
        if is_lock_conflict(e):
            logger.warning(f"Ledger transaction conflict: {str(e.orig)}")
            raise Conflict(
                "The ledger is busy with a concurrent operation, please retry",
                details={"reason": str(e.orig)},
            ) from e
        raise
    except IntegrityError as e:
        write_session.rollback()
        if is_unique_violation(e):
            logger.warning(f"Ledger transaction conflict: {str(e.orig)}")
            raise Conflict(
                "A concurrent operation already wrote this record, please retry",
                details={"reason": str(e.orig)},
            ) from e
        raise
    except Exception:
        write_session.rollback()
        raise
