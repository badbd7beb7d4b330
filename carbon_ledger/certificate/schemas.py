import datetime
from decimal import Decimal

from pydantic import BaseModel
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from carbon_ledger.core.models.base import CertificateStatus

AMOUNT_DIGITS = 18
AMOUNT_DECIMAL_PLACES = 6


class CertificateBase(SQLModel):
    """A verified emission reduction issued to an organisation, measured in
    tCO2e. The total amount is fixed at issuance; claims and transfers are
    drawn against it.

    A certificate created by a completed transfer records the certificate it
    was drawn from in origin_certificate_id, and inherits that certificate's
    vintage, geography, modality and attributes.
    """

    organisation_id: int = Field(
        foreign_key="organisation.id",
        index=True,
        description="The organisation that holds this certificate.",
    )
    intervention_id: str = Field(
        index=True,
        description="Reference to the verified intervention this certificate was issued for.",
    )
    total_amount: Decimal = Field(
        gt=0,
        max_digits=AMOUNT_DIGITS,
        decimal_places=AMOUNT_DECIMAL_PLACES,
        description="The emission reduction represented by this certificate, fixed at issuance.",
    )
    vintage: int = Field(
        description="The year in which the emission reduction took place.",
    )
    geography: str | None = Field(default=None)
    modality: str | None = Field(
        default=None,
        description="How the reduction was delivered, carried through to derived certificates.",
    )
    attributes: dict | None = Field(
        default=None,
        sa_column=Column(JSON),
        description="Free-form attributes of the intervention, opaque to the ledger.",
    )
    origin_certificate_id: int | None = Field(
        default=None,
        foreign_key="certificate.id",
        description="The certificate this one was transferred out of, if any.",
    )


class CertificateCreate(BaseModel):
    organisation_id: int
    intervention_id: str
    total_amount: Decimal = Field(
        gt=0, max_digits=AMOUNT_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES
    )
    vintage: int
    geography: str | None = None
    modality: str | None = None
    attributes: dict | None = None


class CertificateRead(CertificateBase):
    id: int
    remaining_amount: Decimal
    status: CertificateStatus
    created_at: datetime.datetime


class CertificateBalance(BaseModel):
    certificate_id: int
    organisation_id: int
    total_amount: Decimal
    remaining_amount: Decimal
    active_claimed_amount: Decimal = Field(
        description="Sum of the active claims on this certificate."
    )
    available_to_claim: Decimal = Field(
        description="Amount that may still be claimed on this certificate."
    )
    available_to_transfer: Decimal = Field(
        description="Claimed amount the requesting organisation may still transfer downstream."
    )
