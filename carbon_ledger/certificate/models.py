from decimal import Decimal

from sqlmodel import Field

from carbon_ledger import utils
from carbon_ledger.certificate.schemas import (
    AMOUNT_DECIMAL_PLACES,
    AMOUNT_DIGITS,
    CertificateBase,
)
from carbon_ledger.core.models.base import CertificateStatus


class Certificate(CertificateBase, utils.ActiveRecord, table=True):
    id: int | None = Field(
        default=None,
        primary_key=True,
        description="A unique ID assigned to this certificate.",
    )
    remaining_amount: Decimal = Field(
        ge=0,
        max_digits=AMOUNT_DIGITS,
        decimal_places=AMOUNT_DECIMAL_PLACES,
        description="The amount not yet transferred out of this certificate.",
    )
    status: CertificateStatus = Field(default=CertificateStatus.ACTIVE)
