import datetime
import enum
from enum import Enum
from functools import partial

from pydantic import BaseModel
from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

utc_datetime_now = partial(datetime.datetime.now, datetime.timezone.utc)


class CertificateStatus(str, Enum):
    ACTIVE = "active"
    EXHAUSTED = "exhausted"


class ClaimStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class TransferStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PartnershipStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"


class LedgerEventType(str, Enum):
    CLAIM_CREATED = "CLAIM_CREATED"
    CLAIM_EXPIRED = "CLAIM_EXPIRED"
    CLAIM_EXPIRING_SOON = "CLAIM_EXPIRING_SOON"
    TRANSFER_REQUESTED = "TRANSFER_REQUESTED"
    TRANSFER_COMPLETED = "TRANSFER_COMPLETED"
    TRANSFER_CANCELLED = "TRANSFER_CANCELLED"


class EventTypes(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"


class AuditEvent(SQLModel, table=True):
    """Before/after record of a single ledger mutation, written in the same
    transaction as the mutation itself."""

    id: int | None = Field(default=None, primary_key=True)
    entity_id: int = Field(index=True)
    entity_name: str = Field(index=True)
    event_type: EventTypes
    attributes_before: dict | None = Field(default=None, sa_column=Column(JSON))
    attributes_after: dict | None = Field(default=None, sa_column=Column(JSON))
    timestamp: datetime.datetime = Field(
        default_factory=utc_datetime_now, sa_type=DateTime(timezone=True)
    )  # type: ignore


class logging_levels(str, enum.Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LoggingLevelRequest(BaseModel):
    level: logging_levels
