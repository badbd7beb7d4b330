from sqlalchemy import UniqueConstraint
from sqlmodel import Field, Session, select

from carbon_ledger import utils
from carbon_ledger.core.models.base import PartnershipStatus
from carbon_ledger.organisation.schemas import (
    OrganisationBase,
    PartnershipBase,
    SupplyChainLevelDescriptionBase,
)

# Organisation - holds certificates, issues claims against them and
# exchanges claimed amounts with its supply-chain partners.


class Organisation(OrganisationBase, utils.ActiveRecord, table=True):
    id: int | None = Field(default=None, primary_key=True)


class Partnership(PartnershipBase, utils.ActiveRecord, table=True):
    __table_args__ = (
        UniqueConstraint(
            "lower_organisation_id",
            "upper_organisation_id",
            name="uq_partnership_organisation_pair",
        ),
    )

    id: int | None = Field(
        default=None,
        primary_key=True,
        description="A unique ID assigned to this partnership.",
    )
    # The two organisations ordered by id, whichever of them made the request
    lower_organisation_id: int = Field(foreign_key="organisation.id")
    upper_organisation_id: int = Field(foreign_key="organisation.id")

    @staticmethod
    def pair(organisation_id: int, other_organisation_id: int) -> dict[str, int]:
        lower, upper = sorted((organisation_id, other_organisation_id))
        return {"lower_organisation_id": lower, "upper_organisation_id": upper}

    @classmethod
    def between(
        cls, organisation_id: int, other_organisation_id: int, session: Session
    ) -> "Partnership | None":
        """The partnership linking two organisations in either direction."""
        pair = cls.pair(organisation_id, other_organisation_id)
        return session.exec(
            select(cls).where(
                cls.lower_organisation_id == pair["lower_organisation_id"],
                cls.upper_organisation_id == pair["upper_organisation_id"],
            )
        ).first()

    def involves(self, organisation_id: int) -> bool:
        return organisation_id in (
            self.requester_organisation_id,
            self.recipient_organisation_id,
        )

    def partner_of(self, organisation_id: int) -> int:
        if organisation_id == self.requester_organisation_id:
            return self.recipient_organisation_id
        return self.requester_organisation_id

    @property
    def is_active(self) -> bool:
        return self.status == PartnershipStatus.ACTIVE


class SupplyChainLevelDescription(
    SupplyChainLevelDescriptionBase, utils.ActiveRecord, table=True
):
    pass
