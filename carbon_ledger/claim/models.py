import datetime

from sqlmodel import Field, Session, select

from carbon_ledger import utils
from carbon_ledger.claim.schemas import ClaimBase
from carbon_ledger.core.models.base import ClaimStatus


class Claim(ClaimBase, utils.ActiveRecord, table=True):
    id: int | None = Field(default=None, primary_key=True)

    @property
    def is_active(self) -> bool:
        return self.status == ClaimStatus.ACTIVE

    def is_active_at(self, now: datetime.datetime | None = None) -> bool:
        """Active, and not yet past its expiry date when a time is given.

        The expiry sweep may lag behind the clock, so a claim still marked
        active can already have lapsed.
        """
        if not self.is_active:
            return False
        return now is None or utils.ensure_utc(self.expiry_date) >= now

    @classmethod
    def for_certificate(
        cls, certificate_id: int, session: Session, refresh: bool = False
    ) -> list["Claim"]:
        stmt = select(cls).where(cls.certificate_id == certificate_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        return list(session.exec(stmt.order_by(cls.id)).all())  # type: ignore
