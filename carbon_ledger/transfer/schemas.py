import datetime
from decimal import Decimal

from pydantic import BaseModel
from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from carbon_ledger.certificate.schemas import AMOUNT_DECIMAL_PLACES, AMOUNT_DIGITS
from carbon_ledger.core.models.base import TransferStatus


class TransferBase(SQLModel):
    """Movement of a claimed amount from one organisation to a downstream
    partner. A transfer is requested as pending and resolved exactly once,
    either completed by the receiving organisation or cancelled.

    On completion the receiver is issued a derived certificate for the
    transferred amount, referenced by target_certificate_id.
    """

    source_organisation_id: int = Field(foreign_key="organisation.id", index=True)
    target_organisation_id: int = Field(foreign_key="organisation.id", index=True)
    source_certificate_id: int = Field(foreign_key="certificate.id", index=True)
    source_claim_id: int | None = Field(
        default=None,
        foreign_key="claim.id",
        description="The first claim this transfer draws on. Empty for same-level transfers of unclaimed amounts.",
    )
    target_certificate_id: int | None = Field(
        default=None,
        foreign_key="certificate.id",
        description="The certificate created for the receiver on completion.",
    )
    parent_transfer_id: int | None = Field(
        default=None,
        foreign_key="transfer.id",
        description="The transfer that created the source certificate, for multi-hop chains.",
    )
    amount: Decimal = Field(
        gt=0, max_digits=AMOUNT_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES
    )
    status: TransferStatus = Field(default=TransferStatus.PENDING, index=True)
    source_level: int = Field(description="Source supply-chain level at request time.")
    target_level: int = Field(description="Target supply-chain level at request time.")
    notes: str | None = Field(default=None)
    cancellation_reason: str | None = Field(default=None)
    completed_at: datetime.datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )  # type: ignore
    cancelled_at: datetime.datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )  # type: ignore


class TransferCreate(BaseModel):
    target_organisation_id: int
    certificate_id: int
    amount: Decimal = Field(
        gt=0, max_digits=AMOUNT_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES
    )
    source_claim_id: int | None = None
    notes: str | None = None


class TransferCancel(BaseModel):
    reason: str | None = None


class TransferRead(TransferBase):
    id: int
    created_at: datetime.datetime


class LineageNode(BaseModel):
    transfer: TransferRead
    children: list["LineageNode"] = Field(default_factory=list)


class Lineage(BaseModel):
    certificate_id: int = Field(description="The certificate the lineage was requested for.")
    root_certificate_id: int = Field(
        description="The certificate the traversal started from."
    )
    roots: list[LineageNode]
