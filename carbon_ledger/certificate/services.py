from decimal import Decimal

from sqlmodel import Session, select

from carbon_ledger.certificate.models import Certificate
from carbon_ledger.certificate.schemas import CertificateCreate
from carbon_ledger.certificate.validation import (
    validate_certificate_amounts,
    validate_certificate_issuance,
)
from carbon_ledger.core.database.db import ledger_transaction
from carbon_ledger.core.errors import InvariantViolation
from carbon_ledger.core.models.base import CertificateStatus
from carbon_ledger.logging_config import logger
from carbon_ledger.organisation.validation import get_live_organisation


def issue_certificate(
    certificate_create: CertificateCreate, write_session: Session
) -> Certificate:
    """Issue an original certificate for a verified intervention.

    Args:
        certificate_create (CertificateCreate): The verified intervention details.
        write_session (Session): The database session to write to.

    Returns:
        Certificate: The issued certificate, with its full amount remaining.
    """
    validate_certificate_issuance(certificate_create)

    with ledger_transaction(write_session):
        get_live_organisation(certificate_create.organisation_id, write_session)
        certificate = Certificate.create(
            {
                **certificate_create.model_dump(),
                "remaining_amount": certificate_create.total_amount,
                "status": CertificateStatus.ACTIVE,
            },
            write_session,
        )[0]
        validate_certificate_amounts(certificate)

    logger.info(
        f"Issued certificate {certificate.id} for {certificate.total_amount} tCO2e "
        f"to organisation {certificate.organisation_id}"
    )
    return certificate


def get_certificates_by_organisation(
    organisation_id: int, read_session: Session
) -> list[Certificate]:
    return list(
        read_session.exec(
            select(Certificate)
            .where(Certificate.organisation_id == organisation_id)
            .order_by(Certificate.id)  # type: ignore
        ).all()
    )


def withdraw_amount(
    certificate: Certificate, amount: Decimal, write_session: Session
) -> Certificate:
    """Reduce a locked certificate's remaining amount by a completed transfer.

    The caller must hold the certificate's row lock and have validated the
    balance; a shortfall here means the ledger is already inconsistent.
    """
    remaining = certificate.remaining_amount - amount
    if remaining < 0:
        msg = (
            f"Withdrawing {amount} from certificate {certificate.id} would leave "
            f"{remaining} remaining"
        )
        logger.critical(msg)
        raise InvariantViolation(msg, details={"certificate_id": certificate.id})

    status = CertificateStatus.EXHAUSTED if remaining == 0 else CertificateStatus.ACTIVE
    return certificate.update(
        {"remaining_amount": remaining, "status": status}, write_session
    )


def create_derived_certificate(
    source: Certificate,
    target_organisation_id: int,
    amount: Decimal,
    transfer_id: int,
    write_session: Session,
) -> Certificate:
    """Create the certificate a receiver gets for a completed transfer.

    The derived certificate inherits the source's vintage, geography, modality
    and attributes, and records the source as its origin.
    """
    return Certificate.create(
        {
            "organisation_id": target_organisation_id,
            "intervention_id": f"{source.intervention_id}_transfer_{transfer_id}",
            "total_amount": amount,
            "remaining_amount": amount,
            "vintage": source.vintage,
            "geography": source.geography,
            "modality": source.modality,
            "attributes": source.attributes,
            "origin_certificate_id": source.id,
            "status": CertificateStatus.ACTIVE,
        },
        write_session,
    )[0]


def get_origin_certificate(certificate: Certificate, session: Session) -> Certificate:
    """Follow origin links back to the originally issued certificate."""
    visited: set[int] = set()
    current = certificate
    while current.origin_certificate_id is not None:
        if current.id in visited:
            msg = f"Certificate origin chain loops back to certificate {current.id}"
            logger.critical(msg)
            raise InvariantViolation(msg, details={"certificate_id": certificate.id})
        visited.add(current.id)  # type: ignore
        current = Certificate.by_id(current.origin_certificate_id, session)
    return current
