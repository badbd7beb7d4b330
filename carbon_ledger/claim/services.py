import datetime
from decimal import Decimal

from esdbclient import EventStoreDBClient
from sqlmodel import Session, select

from carbon_ledger.balance import calculator
from carbon_ledger.balance.services import load_ledger_rows
from carbon_ledger.certificate.models import Certificate
from carbon_ledger.claim.models import Claim
from carbon_ledger.core.database.db import ledger_transaction
from carbon_ledger.core.errors import (
    ClaimWindowClosed,
    InsufficientBalance,
    PolicyViolation,
    Unauthorized,
)
from carbon_ledger.core.models.base import (
    ClaimStatus,
    LedgerEventType,
    utc_datetime_now,
)
from carbon_ledger.core.notifications import LedgerEvent, dispatch_notifications
from carbon_ledger.logging_config import logger
from carbon_ledger.organisation.models import Organisation
from carbon_ledger.organisation.services import are_partners
from carbon_ledger.organisation.validation import get_live_organisation
from carbon_ledger.settings import settings
from carbon_ledger.utils import ensure_utc


def claim_expiry_date(vintage: int) -> datetime.datetime:
    """Claims stay valid through 31 December of vintage + CLAIM_VALIDITY_YEARS."""
    return datetime.datetime(
        vintage + settings.CLAIM_VALIDITY_YEARS + 1, 1, 1, tzinfo=datetime.timezone.utc
    )


def validate_claimant(
    certificate: Certificate, claimant: Organisation, session: Session
):
    """The certificate holder may always claim. Its active partners may too
    when supply-chain claims are enabled."""
    if certificate.organisation_id == claimant.id:
        return

    if settings.SUPPLY_CHAIN_CLAIMS_ENABLED and are_partners(
        certificate.organisation_id, claimant.id, session  # type: ignore
    ):
        return

    err_msg = (
        f"Organisation {claimant.id} does not hold certificate {certificate.id} "
        f"and has no usage rights over it"
    )
    logger.error(err_msg)
    raise Unauthorized(err_msg)


def issue_claim(
    certificate_id: int,
    claiming_organisation_id: int,
    amount: Decimal,
    write_session: Session,
    esdb_client: EventStoreDBClient | None,
    now: datetime.datetime | None = None,
) -> Claim:
    """Claim part of a certificate as an owned emission reduction.

    The certificate row is locked for the duration of the transaction, so two
    concurrent claims on one certificate are serialised and the second sees
    the first. The claim does not reduce the certificate's remaining amount.

    Args:
        certificate_id (int): The certificate to claim against.
        claiming_organisation_id (int): The organisation making the claim.
        amount (Decimal): The amount to claim, in tCO2e.
        write_session (Session): The database session to write to.
        esdb_client (EventStoreDBClient | None): Notification stream client.
        now (datetime.datetime | None): Current time, defaults to now in UTC.

    Returns:
        Claim: The new active claim.

    Raises:
        NotFound: If the certificate or organisation does not exist.
        Unauthorized: If the organisation may not claim this certificate.
        InsufficientBalance: If the amount exceeds the amount available to claim.
        ClaimWindowClosed: If the certificate's vintage is too old to claim.
        PolicyViolation: If the amount is not positive.
    """
    if amount <= 0:
        err_msg = f"Claim amount must be positive, got {amount}"
        logger.error(err_msg)
        raise PolicyViolation(err_msg, details={"requested": str(amount)})

    now = now or utc_datetime_now()

    with ledger_transaction(write_session):
        claimant = get_live_organisation(claiming_organisation_id, write_session)
        certificate = Certificate.lock(certificate_id, write_session)
        validate_claimant(certificate, claimant, write_session)

        expiry_date = claim_expiry_date(certificate.vintage)
        if expiry_date <= now:
            err_msg = (
                f"Claims on vintage {certificate.vintage} closed on "
                f"{expiry_date.date().isoformat()}"
            )
            logger.error(err_msg)
            raise ClaimWindowClosed(err_msg)

        claims, transfers = load_ledger_rows(certificate_id, write_session, refresh=True)
        available = calculator.available_to_claim(certificate, claims, transfers)
        if amount > available:
            err_msg = (
                f"Cannot claim {amount} on certificate {certificate_id}: "
                f"only {available} available to claim"
            )
            logger.error(err_msg)
            raise InsufficientBalance(
                err_msg,
                details={"requested": str(amount), "available": str(available)},
            )

        claim = Claim.create(
            {
                "certificate_id": certificate_id,
                "organisation_id": claiming_organisation_id,
                "amount": amount,
                "vintage": certificate.vintage,
                "claim_level": claimant.supply_chain_level,
                "expiry_date": expiry_date,
                "status": ClaimStatus.ACTIVE,
            },
            write_session,
        )[0]

    logger.info(
        f"Organisation {claiming_organisation_id} claimed {amount} on certificate "
        f"{certificate_id} (claim {claim.id})"
    )
    dispatch_notifications(
        [
            LedgerEvent(
                type=LedgerEventType.CLAIM_CREATED,
                organisation_id=claiming_organisation_id,
                metadata={
                    "claim_id": claim.id,
                    "certificate_id": certificate_id,
                    "amount": str(amount),
                    "expiry_date": expiry_date.isoformat(),
                },
            )
        ],
        esdb_client,
    )
    return claim


def expire_claims(
    write_session: Session,
    esdb_client: EventStoreDBClient | None,
    now: datetime.datetime | None = None,
) -> list[Claim]:
    """Mark every active claim whose expiry date has passed as expired.

    Safe to run repeatedly and concurrently: rows locked by another sweep are
    skipped, and claims already expired are never selected again.

    Args:
        write_session (Session): The database session to write to.
        esdb_client (EventStoreDBClient | None): Notification stream client.
        now (datetime.datetime | None): Timezone-aware cut-off, defaults to now.

    Returns:
        list[Claim]: The claims expired by this run.
    """
    now = now or utc_datetime_now()
    if now.tzinfo is None:
        err_msg = "The expiry cut-off must be timezone-aware"
        logger.error(err_msg)
        raise ValueError(err_msg)

    with ledger_transaction(write_session):
        due_claims = write_session.exec(
            select(Claim)
            .where(Claim.status == ClaimStatus.ACTIVE, Claim.expiry_date < now)
            .order_by(Claim.id)  # type: ignore
            .with_for_update(skip_locked=True)
            .execution_options(populate_existing=True)
        ).all()

        expired = [
            claim.update({"status": ClaimStatus.EXPIRED}, write_session)
            for claim in due_claims
        ]

    if expired:
        logger.info(f"Expired {len(expired)} claims")
    dispatch_notifications(
        [
            LedgerEvent(
                type=LedgerEventType.CLAIM_EXPIRED,
                organisation_id=claim.organisation_id,
                metadata={
                    "claim_id": claim.id,
                    "certificate_id": claim.certificate_id,
                    "amount": str(claim.amount),
                    "expiry_date": ensure_utc(claim.expiry_date).isoformat(),
                },
            )
            for claim in expired
        ],
        esdb_client,
    )
    return expired


def send_expiry_warnings(
    read_session: Session,
    esdb_client: EventStoreDBClient | None,
    now: datetime.datetime | None = None,
    within_days: int | None = None,
) -> list[LedgerEvent]:
    """Warn holders of active claims that expire within the warning window."""
    now = now or utc_datetime_now()
    if within_days is None:
        within_days = settings.CLAIM_EXPIRY_WARNING_DAYS
    horizon = now + datetime.timedelta(days=within_days)

    expiring = read_session.exec(
        select(Claim)
        .where(
            Claim.status == ClaimStatus.ACTIVE,
            Claim.expiry_date >= now,
            Claim.expiry_date <= horizon,
        )
        .order_by(Claim.expiry_date)  # type: ignore
    ).all()

    warnings = [
        LedgerEvent(
            type=LedgerEventType.CLAIM_EXPIRING_SOON,
            organisation_id=claim.organisation_id,
            metadata={
                "claim_id": claim.id,
                "certificate_id": claim.certificate_id,
                "amount": str(claim.amount),
                "expiry_date": ensure_utc(claim.expiry_date).isoformat(),
                "days_until_expiry": (ensure_utc(claim.expiry_date) - now).days,
            },
        )
        for claim in expiring
    ]
    dispatch_notifications(warnings, esdb_client)
    return warnings


def get_claims_by_organisation(
    organisation_id: int, read_session: Session, status: ClaimStatus | None = None
) -> list[Claim]:
    stmt = select(Claim).where(Claim.organisation_id == organisation_id)
    if status is not None:
        stmt = stmt.where(Claim.status == status)
    return list(read_session.exec(stmt.order_by(Claim.id)).all())  # type: ignore
