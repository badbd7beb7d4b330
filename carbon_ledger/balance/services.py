from sqlmodel import Session

from carbon_ledger.balance import calculator
from carbon_ledger.certificate.models import Certificate
from carbon_ledger.certificate.schemas import CertificateBalance
from carbon_ledger.claim.models import Claim
from carbon_ledger.core.models.base import utc_datetime_now
from carbon_ledger.transfer.models import Transfer


def load_ledger_rows(
    certificate_id: int, session: Session, refresh: bool = False
) -> tuple[list[Claim], list[Transfer]]:
    """Claims on a certificate and transfers drawn from it."""
    claims = Claim.for_certificate(certificate_id, session, refresh=refresh)
    transfers = Transfer.outgoing(certificate_id, session, refresh=refresh)
    return claims, transfers


def get_balance(
    certificate_id: int, organisation_id: int, read_session: Session
) -> CertificateBalance:
    """Compute the balances of a certificate as seen by an organisation.

    This takes no locks; concurrent mutations may land immediately after the
    read, so callers must not use the result to authorise a mutation.

    Args:
        certificate_id (int): The certificate to inspect.
        organisation_id (int): The organisation whose transferable balance is reported.
        read_session (Session): The database session to read from.

    Returns:
        CertificateBalance: Total, remaining, claimed and available amounts.
    """
    certificate = Certificate.by_id(certificate_id, read_session)
    claims, transfers = load_ledger_rows(certificate_id, read_session)

    return CertificateBalance(
        certificate_id=certificate_id,
        organisation_id=organisation_id,
        total_amount=certificate.total_amount,
        remaining_amount=certificate.remaining_amount,
        active_claimed_amount=calculator.active_claimed_amount(claims),
        available_to_claim=calculator.available_to_claim(certificate, claims, transfers),
        available_to_transfer=calculator.available_to_transfer(
            organisation_id, claims, transfers, now=utc_datetime_now()
        ),
    )
