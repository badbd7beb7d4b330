from decimal import Decimal

import pytest
from sqlmodel import Session

from carbon_ledger.balance.services import get_balance
from carbon_ledger.certificate.models import Certificate
from carbon_ledger.core.errors import NotFound
from carbon_ledger.organisation.models import Organisation


class TestBalanceServices:
    def test_get_balance(
        self,
        read_session: Session,
        claim_factory,
        fake_db_certificate: Certificate,
        fake_db_supplier: Organisation,
        fake_db_manufacturer: Organisation,
    ):
        claim_factory(fake_db_certificate, fake_db_supplier, "40")

        supplier_view = get_balance(
            fake_db_certificate.id, fake_db_supplier.id, read_session  # type: ignore
        )
        assert supplier_view.total_amount == Decimal("100")
        assert supplier_view.remaining_amount == Decimal("100")
        assert supplier_view.active_claimed_amount == Decimal("40")
        assert supplier_view.available_to_claim == Decimal("60")
        assert supplier_view.available_to_transfer == Decimal("40")

        # Transferable balance is specific to the organisation holding the claims
        manufacturer_view = get_balance(
            fake_db_certificate.id, fake_db_manufacturer.id, read_session  # type: ignore
        )
        assert manufacturer_view.available_to_claim == Decimal("60")
        assert manufacturer_view.available_to_transfer == Decimal("0")

    def test_get_balance_unknown_certificate(
        self, read_session: Session, fake_db_supplier: Organisation
    ):
        with pytest.raises(NotFound):
            get_balance(999, fake_db_supplier.id, read_session)  # type: ignore
