import datetime

from fluent_validator import validate  # type: ignore

from carbon_ledger.certificate.models import Certificate
from carbon_ledger.certificate.schemas import CertificateCreate
from carbon_ledger.core.errors import PolicyViolation
from carbon_ledger.logging_config import logger


def validate_certificate_issuance(certificate_create: CertificateCreate):
    """Reject issuance of certificates whose vintage lies in the future."""
    next_year = datetime.datetime.now(datetime.timezone.utc).year + 1
    try:
        validate(certificate_create.vintage, identifier="vintage").less_than(next_year)
    except ValueError as e:
        msg = f"Vintage {certificate_create.vintage} is in the future"
        logger.error(msg)
        raise PolicyViolation(msg) from e


def validate_certificate_amounts(certificate: Certificate):
    """A freshly issued certificate must have its full amount remaining."""
    try:
        validate(certificate.remaining_amount, identifier="remaining_amount").equal(
            certificate.total_amount
        )
    except ValueError as e:
        msg = f"Certificate {certificate.id} was not issued with its full amount remaining"
        logger.error(msg)
        raise PolicyViolation(msg) from e
