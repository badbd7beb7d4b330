from decimal import Decimal

from sqlmodel import Field, Relationship, Session, select

from carbon_ledger import utils
from carbon_ledger.certificate.schemas import AMOUNT_DECIMAL_PLACES, AMOUNT_DIGITS
from carbon_ledger.core.models.base import TransferStatus
from carbon_ledger.transfer.schemas import TransferBase

# Transfer - a claimed amount moving downstream between partners. A claimed
# transfer may draw on several of the source's claims; each draw is recorded
# as a TransferAllocation.


class Transfer(TransferBase, utils.ActiveRecord, table=True):
    id: int | None = Field(default=None, primary_key=True)
    allocations: list["TransferAllocation"] = Relationship(
        back_populates="transfer", sa_relationship_kwargs={"lazy": "selectin"}
    )

    @property
    def is_open(self) -> bool:
        """Pending and completed transfers both hold their amount."""
        return self.status in (TransferStatus.PENDING, TransferStatus.COMPLETED)

    @classmethod
    def outgoing(
        cls, certificate_id: int, session: Session, refresh: bool = False
    ) -> list["Transfer"]:
        stmt = select(cls).where(cls.source_certificate_id == certificate_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        return list(session.exec(stmt.order_by(cls.id)).all())  # type: ignore

    @classmethod
    def creating(cls, certificate_id: int, session: Session) -> "Transfer | None":
        """The completed transfer that produced the given certificate."""
        return session.exec(
            select(cls).where(
                cls.target_certificate_id == certificate_id,
                cls.status == TransferStatus.COMPLETED,
            )
        ).first()


class TransferAllocation(utils.ActiveRecord, table=True):
    id: int | None = Field(default=None, primary_key=True)
    transfer_id: int = Field(foreign_key="transfer.id", index=True)
    claim_id: int = Field(
        foreign_key="claim.id",
        index=True,
        description="The claim this part of the transfer is drawn from.",
    )
    amount: Decimal = Field(
        gt=0, max_digits=AMOUNT_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES
    )
    transfer: Transfer = Relationship(back_populates="allocations")
