import datetime

from pydantic import BaseModel, field_validator
from sqlmodel import Field, SQLModel

from carbon_ledger.core.models.base import PartnershipStatus


class OrganisationBase(SQLModel):
    """An organisation that holds certificates and makes claims. Its position in
    the supply chain is given by an integer level, where lower levels sit
    further upstream; claimed amounts may only move downstream."""

    name: str = Field(description="The display name of the organisation.")
    company_name: str | None = Field(
        default=None, description="The registered legal name, where known."
    )
    supply_chain_level: int = Field(
        default=1,
        ge=1,
        description="Position in the supply chain, 1 being the furthest upstream.",
    )
    is_deleted: bool = Field(default=False)


class OrganisationRead(OrganisationBase):
    id: int
    created_at: datetime.datetime


class SupplyChainLevelUpdate(BaseModel):
    supply_chain_level: int = Field(ge=1)


class PartnershipBase(SQLModel):
    requester_organisation_id: int = Field(
        foreign_key="organisation.id",
        index=True,
        description="The organisation that requested the partnership.",
    )
    recipient_organisation_id: int = Field(
        foreign_key="organisation.id",
        index=True,
        description="The organisation asked to accept the partnership.",
    )
    status: PartnershipStatus = Field(
        default=PartnershipStatus.PENDING,
        description="Only active partnerships permit transfers between the two organisations.",
    )


class PartnershipRead(PartnershipBase):
    id: int
    created_at: datetime.datetime


class PartnershipRequest(BaseModel):
    partner_organisation_id: int


class PartnershipDecision(BaseModel):
    status: PartnershipStatus

    @field_validator("status")
    @classmethod
    def accept_or_reject(cls, value: PartnershipStatus) -> PartnershipStatus:
        if value == PartnershipStatus.PENDING:
            raise ValueError("A partnership can only be accepted or rejected")
        return value


class SupplyChainLevelDescriptionBase(SQLModel):
    level: int = Field(primary_key=True, ge=1)
    description: str
    examples: str | None = None
