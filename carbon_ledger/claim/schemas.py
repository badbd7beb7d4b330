import datetime
from decimal import Decimal

from pydantic import BaseModel
from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from carbon_ledger.certificate.schemas import AMOUNT_DECIMAL_PLACES, AMOUNT_DIGITS
from carbon_ledger.core.models.base import ClaimStatus


class ClaimBase(SQLModel):
    """An organisation's assertion of ownership over part of a certificate.

    Claims never reduce the certificate's remaining amount; they bound what
    may be claimed by others and what the claimant may pass downstream.
    A claim lapses to expired once its expiry date passes and is never deleted.
    """

    certificate_id: int = Field(foreign_key="certificate.id", index=True)
    organisation_id: int = Field(
        foreign_key="organisation.id",
        index=True,
        description="The claiming organisation.",
    )
    amount: Decimal = Field(
        gt=0, max_digits=AMOUNT_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES
    )
    vintage: int = Field(description="Vintage of the claimed certificate.")
    claim_level: int = Field(
        description="The claimant's supply-chain level when the claim was made."
    )
    expiry_date: datetime.datetime = Field(sa_type=DateTime(timezone=True))  # type: ignore
    status: ClaimStatus = Field(default=ClaimStatus.ACTIVE, index=True)


class ClaimCreate(BaseModel):
    certificate_id: int
    amount: Decimal = Field(
        gt=0, max_digits=AMOUNT_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES
    )


class ClaimRead(ClaimBase):
    id: int
    created_at: datetime.datetime


class ClaimExpiryResult(BaseModel):
    expired_claim_ids: list[int]
