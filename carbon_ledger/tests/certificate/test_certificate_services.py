import datetime
from decimal import Decimal

import pytest
from sqlmodel import Session, select

from carbon_ledger.certificate import services
from carbon_ledger.certificate.models import Certificate
from carbon_ledger.certificate.schemas import CertificateCreate
from carbon_ledger.core.database.db import ledger_transaction
from carbon_ledger.core.errors import InvariantViolation, NotFound, PolicyViolation
from carbon_ledger.core.models.base import AuditEvent, CertificateStatus
from carbon_ledger.organisation.models import Organisation


class TestCertificateServices:
    def test_issue_certificate(
        self,
        write_session: Session,
        read_session: Session,
        fake_db_supplier: Organisation,
    ):
        certificate = services.issue_certificate(
            CertificateCreate(
                organisation_id=fake_db_supplier.id,  # type: ignore
                intervention_id="INT-042",
                total_amount=Decimal("250.5"),
                vintage=2024,
                geography="KE",
                modality="cookstoves",
            ),
            write_session,
        )

        assert certificate.id is not None
        assert certificate.remaining_amount == Decimal("250.5")
        assert certificate.status == CertificateStatus.ACTIVE
        assert certificate.origin_certificate_id is None

        certificate_from_db = read_session.get(Certificate, certificate.id)
        assert certificate_from_db is not None
        assert certificate_from_db.total_amount == Decimal("250.5")

        audit_event = read_session.exec(
            select(AuditEvent).where(AuditEvent.entity_name == "Certificate")
        ).one()
        assert Decimal(audit_event.attributes_after["remaining_amount"]) == Decimal("250.5")

    def test_issue_certificate_future_vintage(
        self, write_session: Session, fake_db_supplier: Organisation
    ):
        next_year = datetime.datetime.now(datetime.timezone.utc).year + 1

        with pytest.raises(PolicyViolation):
            services.issue_certificate(
                CertificateCreate(
                    organisation_id=fake_db_supplier.id,  # type: ignore
                    intervention_id="INT-001",
                    total_amount=Decimal("10"),
                    vintage=next_year,
                ),
                write_session,
            )

    def test_issue_certificate_unknown_organisation(self, write_session: Session):
        with pytest.raises(NotFound):
            services.issue_certificate(
                CertificateCreate(
                    organisation_id=999,
                    intervention_id="INT-001",
                    total_amount=Decimal("10"),
                    vintage=2024,
                ),
                write_session,
            )

    def test_issue_certificate_rejects_non_positive_amount(
        self, fake_db_supplier: Organisation
    ):
        with pytest.raises(ValueError):
            CertificateCreate(
                organisation_id=fake_db_supplier.id,  # type: ignore
                intervention_id="INT-001",
                total_amount=Decimal("0"),
                vintage=2024,
            )

    def test_get_certificates_by_organisation(
        self,
        read_session: Session,
        certificate_factory,
        fake_db_supplier: Organisation,
        fake_db_manufacturer: Organisation,
    ):
        first = certificate_factory(fake_db_supplier, "10", intervention_id="INT-001")
        second = certificate_factory(fake_db_supplier, "20", intervention_id="INT-002")
        certificate_factory(fake_db_manufacturer, "30", intervention_id="INT-003")

        certificates = services.get_certificates_by_organisation(
            fake_db_supplier.id, read_session  # type: ignore
        )

        assert [c.id for c in certificates] == [first.id, second.id]


class TestCertificateBalances:
    def test_withdraw_amount_to_zero_exhausts_certificate(
        self, write_session: Session, fake_db_certificate: Certificate
    ):
        with ledger_transaction(write_session):
            certificate = Certificate.lock(fake_db_certificate.id, write_session)  # type: ignore
            services.withdraw_amount(certificate, Decimal("100"), write_session)

        assert certificate.remaining_amount == Decimal("0")
        assert certificate.status == CertificateStatus.EXHAUSTED

    def test_withdraw_more_than_remaining(
        self, write_session: Session, fake_db_certificate: Certificate
    ):
        with pytest.raises(InvariantViolation):
            services.withdraw_amount(
                fake_db_certificate, Decimal("100.000001"), write_session
            )

    def test_derived_certificate_inherits_source(
        self,
        write_session: Session,
        fake_db_certificate: Certificate,
        fake_db_manufacturer: Organisation,
    ):
        with ledger_transaction(write_session):
            derived = services.create_derived_certificate(
                fake_db_certificate,
                fake_db_manufacturer.id,  # type: ignore
                Decimal("40"),
                7,
                write_session,
            )

        assert derived.organisation_id == fake_db_manufacturer.id
        assert derived.intervention_id == "INT-001_transfer_7"
        assert derived.total_amount == Decimal("40")
        assert derived.remaining_amount == Decimal("40")
        assert derived.vintage == fake_db_certificate.vintage
        assert derived.geography == fake_db_certificate.geography
        assert derived.modality == fake_db_certificate.modality
        assert derived.attributes == fake_db_certificate.attributes
        assert derived.origin_certificate_id == fake_db_certificate.id

        origin = services.get_origin_certificate(derived, write_session)
        assert origin.id == fake_db_certificate.id

    def test_origin_chain_cycle_detected(
        self,
        write_session: Session,
        fake_db_certificate: Certificate,
        fake_db_manufacturer: Organisation,
    ):
        with ledger_transaction(write_session):
            derived = services.create_derived_certificate(
                fake_db_certificate,
                fake_db_manufacturer.id,  # type: ignore
                Decimal("40"),
                1,
                write_session,
            )
            fake_db_certificate.origin_certificate_id = derived.id
            write_session.add(fake_db_certificate)

        with pytest.raises(InvariantViolation):
            services.get_origin_certificate(derived, write_session)
