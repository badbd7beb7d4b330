import datetime
from decimal import Decimal
from typing import Literal

from esdbclient import EventStoreDBClient
from sqlmodel import Session, or_, select

from carbon_ledger.balance import calculator
from carbon_ledger.balance.services import load_ledger_rows
from carbon_ledger.certificate.models import Certificate
from carbon_ledger.certificate.services import (
    create_derived_certificate,
    withdraw_amount,
)
from carbon_ledger.claim.models import Claim
from carbon_ledger.core.database.db import ledger_transaction
from carbon_ledger.core.errors import (
    InsufficientBalance,
    InsufficientClaimedBalance,
    InvalidDirection,
    NoPartnership,
    NotFound,
    PolicyViolation,
    TransferNotPending,
    Unauthorized,
)
from carbon_ledger.core.models.base import (
    LedgerEventType,
    TransferStatus,
    utc_datetime_now,
)
from carbon_ledger.core.notifications import LedgerEvent, dispatch_notifications
from carbon_ledger.logging_config import logger
from carbon_ledger.organisation.services import are_partners
from carbon_ledger.organisation.validation import get_live_organisation
from carbon_ledger.transfer.models import Transfer, TransferAllocation
from carbon_ledger.transfer.policy import (
    TransferDirection,
    classify_direction,
    enforce_direction,
)


TransferParty = Literal["source", "target"]


def _transfer_metadata(transfer: Transfer) -> dict:
    return {
        "transfer_id": transfer.id,
        "amount": str(transfer.amount),
        "source_organisation_id": transfer.source_organisation_id,
        "target_organisation_id": transfer.target_organisation_id,
        "source_certificate_id": transfer.source_certificate_id,
        "source_claim_id": transfer.source_claim_id,
        "target_certificate_id": transfer.target_certificate_id,
    }


def _notify_parties(
    event_type: LedgerEventType,
    transfer: Transfer,
    esdb_client: EventStoreDBClient | None,
    **extra,
):
    metadata = {**_transfer_metadata(transfer), **extra}
    dispatch_notifications(
        [
            LedgerEvent(
                type=event_type,
                organisation_id=transfer.source_organisation_id,
                metadata={**metadata, "role": "source"},
            ),
            LedgerEvent(
                type=event_type,
                organisation_id=transfer.target_organisation_id,
                metadata={**metadata, "role": "target"},
            ),
        ],
        esdb_client,
    )


def validate_party(
    transfer: Transfer, acting_organisation_id: int | None, party: TransferParty
):
    if acting_organisation_id is None:
        return
    expected = (
        transfer.source_organisation_id
        if party == "source"
        else transfer.target_organisation_id
    )
    if acting_organisation_id != expected:
        err_msg = (
            f"Only the {party} organisation of transfer {transfer.id} may perform "
            f"this action"
        )
        logger.error(err_msg)
        raise Unauthorized(err_msg)


def allocate_source_claims(
    source_organisation_id: int,
    certificate_id: int,
    amount: Decimal,
    claims: list[Claim],
    transfers: list[Transfer],
    source_claim_id: int | None = None,
    now: datetime.datetime | None = None,
) -> list[tuple[Claim, Decimal]]:
    """Pick the claims a transfer draws on and how much from each.

    An explicitly named claim must be an active claim of the source on this
    certificate with enough headroom for the whole amount. Otherwise the
    amount is spread over the source's active claims, earliest expiry first.

    Raises:
        NotFound: If the named claim is not a claim on this certificate.
        Unauthorized: If the named claim belongs to another organisation.
        InsufficientClaimedBalance: If the usable claims do not cover the amount.
    """
    if source_claim_id is not None:
        claim = next((c for c in claims if c.id == source_claim_id), None)
        if claim is None:
            raise NotFound(
                f"Claim {source_claim_id} not found on certificate {certificate_id}"
            )
        if claim.organisation_id != source_organisation_id:
            err_msg = f"Claim {claim.id} is not held by organisation {source_organisation_id}"
            logger.error(err_msg)
            raise Unauthorized(err_msg)
        headroom = calculator.claim_headroom(claim, transfers, now=now)
        if amount > headroom:
            err_msg = (
                f"Claim {claim.id} has {headroom} available to transfer, "
                f"{amount} requested"
            )
            logger.error(err_msg)
            raise InsufficientClaimedBalance(
                err_msg, details={"requested": str(amount), "available": str(headroom)}
            )
        return [(claim, amount)]

    allocations = calculator.allocate(
        source_organisation_id, amount, claims, transfers, now
    )
    if not allocations:
        err_msg = (
            f"Active claims of organisation {source_organisation_id} on "
            f"certificate {certificate_id} do not cover {amount}"
        )
        logger.error(err_msg)
        raise InsufficientClaimedBalance(err_msg, details={"requested": str(amount)})
    return allocations


def request_transfer(
    source_organisation_id: int,
    target_organisation_id: int,
    certificate_id: int,
    amount: Decimal,
    write_session: Session,
    esdb_client: EventStoreDBClient | None,
    source_claim_id: int | None = None,
    notes: str | None = None,
    now: datetime.datetime | None = None,
) -> Transfer:
    """Request the transfer of a claimed amount to a downstream partner.

    Validation runs under the source certificate's row lock, so the pending
    transfer reserves its amount against concurrent claims and transfers.

    The source either holds the certificate or holds active claims on it; a
    partner that claimed part of another organisation's certificate may pass
    its claimed amount on. Only the certificate holder may move unclaimed
    amounts.

    Args:
        source_organisation_id (int): The organisation sending the amount.
        target_organisation_id (int): The receiving partner.
        certificate_id (int): The certificate the amount is drawn from.
        amount (Decimal): The amount to transfer, in tCO2e.
        write_session (Session): The database session to write to.
        esdb_client (EventStoreDBClient | None): Notification stream client.
        source_claim_id (int | None): The claim to draw on, spread over the source's claims if omitted.
        notes (str | None): Free-text notes for the receiver.
        now (datetime.datetime | None): Time the claims are checked against, defaults to now.

    Returns:
        Transfer: The pending transfer.

    Raises:
        PolicyViolation: If the amount is not positive.
        NotFound: If an organisation, the certificate or the named claim is missing.
        Unauthorized: If the source neither holds the certificate nor an active claim on it.
        NoPartnership: If the organisations have no active partnership.
        InvalidDirection: If the transfer would flow upstream or sideways when not permitted.
        ClaimedAtSameLevel: If a same-level transfer targets a claimed certificate.
        InsufficientClaimedBalance: If the claimed balance does not cover the amount.
        InsufficientBalance: If a same-level transfer exceeds the unclaimed amount.
    """
    if amount <= 0:
        err_msg = f"Transfer amount must be positive, got {amount}"
        logger.error(err_msg)
        raise PolicyViolation(err_msg, details={"requested": str(amount)})

    now = now or utc_datetime_now()

    with ledger_transaction(write_session):
        source = get_live_organisation(source_organisation_id, write_session)
        target = get_live_organisation(target_organisation_id, write_session)
        if source.id == target.id:
            err_msg = "An organisation cannot transfer to itself"
            logger.error(err_msg)
            raise InvalidDirection(err_msg)

        certificate = Certificate.lock(certificate_id, write_session)
        claims, transfers = load_ledger_rows(certificate_id, write_session, refresh=True)
        active_claims = calculator.active_claims(claims, now)

        if certificate.organisation_id != source.id and not any(
            c.organisation_id == source.id for c in active_claims
        ):
            err_msg = (
                f"Organisation {source.id} neither holds certificate {certificate_id} "
                f"nor an active claim on it"
            )
            logger.error(err_msg)
            raise Unauthorized(err_msg)

        if not are_partners(source.id, target.id, write_session):  # type: ignore
            err_msg = (
                f"Organisations {source.id} and {target.id} have no active partnership"
            )
            logger.error(err_msg)
            raise NoPartnership(err_msg)

        direction = classify_direction(
            source.supply_chain_level,
            target.supply_chain_level,
            certificate_has_active_claims=bool(active_claims),
        )
        enforce_direction(direction, source.supply_chain_level, target.supply_chain_level)

        if direction == TransferDirection.SAME_LEVEL:
            available = calculator.available_to_claim(certificate, claims, transfers)
            if amount > available:
                err_msg = (
                    f"Cannot transfer {amount} from certificate {certificate_id}: "
                    f"only {available} unclaimed"
                )
                logger.error(err_msg)
                raise InsufficientBalance(
                    err_msg,
                    details={"requested": str(amount), "available": str(available)},
                )
            allocations = []
        else:
            available = calculator.available_to_transfer(
                source.id, claims, transfers, now=now  # type: ignore
            )
            if amount > available:
                err_msg = (
                    f"Cannot transfer {amount} from certificate {certificate_id}: "
                    f"organisation {source.id} has {available} claimed and untransferred"
                )
                logger.error(err_msg)
                raise InsufficientClaimedBalance(
                    err_msg,
                    details={"requested": str(amount), "available": str(available)},
                )
            allocations = allocate_source_claims(
                source.id,  # type: ignore
                certificate_id,
                amount,
                claims,
                transfers,
                source_claim_id,
                now,
            )

        parent = Transfer.creating(certificate_id, write_session)

        transfer = Transfer.create(
            {
                "source_organisation_id": source.id,
                "target_organisation_id": target.id,
                "source_certificate_id": certificate_id,
                "source_claim_id": allocations[0][0].id if allocations else None,
                "parent_transfer_id": parent.id if parent else None,
                "amount": amount,
                "status": TransferStatus.PENDING,
                "source_level": source.supply_chain_level,
                "target_level": target.supply_chain_level,
                "notes": notes,
            },
            write_session,
        )[0]
        if allocations:
            TransferAllocation.create(
                [
                    {"transfer_id": transfer.id, "claim_id": claim.id, "amount": share}
                    for claim, share in allocations
                ],
                write_session,
            )
            write_session.refresh(transfer, ["allocations"])

    logger.info(
        f"Transfer {transfer.id} of {amount} requested from organisation {source.id} "
        f"to {target.id} ({direction.value}) drawing on "
        f"{len(allocations)} claim(s)"
    )
    dispatch_notifications(
        [
            LedgerEvent(
                type=LedgerEventType.TRANSFER_REQUESTED,
                organisation_id=transfer.target_organisation_id,
                metadata=_transfer_metadata(transfer),
            )
        ],
        esdb_client,
    )
    return transfer


def _revalidate_for_execution(
    transfer: Transfer,
    certificate: Certificate,
    claims: list[Claim],
    transfers: list[Transfer],
    now: datetime.datetime | None = None,
):
    """Re-check a pending transfer's balance, excluding the transfer itself."""
    if transfer.allocations:
        claims_by_id = {c.id: c for c in claims}
        for allocation in transfer.allocations:
            claim = claims_by_id.get(allocation.claim_id)
            if claim is None or not claim.is_active_at(now):
                err_msg = (
                    f"Claim {allocation.claim_id} backing transfer {transfer.id} "
                    f"is no longer active"
                )
                logger.error(err_msg)
                raise InsufficientClaimedBalance(err_msg)

            headroom = calculator.claim_headroom(
                claim, transfers, exclude_transfer_id=transfer.id, now=now
            )
            if allocation.amount > headroom:
                err_msg = (
                    f"Claim {claim.id} has {headroom} available, transfer {transfer.id} "
                    f"needs {allocation.amount} from it"
                )
                logger.error(err_msg)
                raise InsufficientClaimedBalance(err_msg)
        return

    available = calculator.available_to_claim(
        certificate, claims, transfers, exclude_transfer_id=transfer.id
    )
    if transfer.amount > available:
        err_msg = (
            f"Certificate {certificate.id} has {available} unclaimed, transfer "
            f"{transfer.id} needs {transfer.amount}"
        )
        logger.error(err_msg)
        raise InsufficientBalance(err_msg)


def execute_transfer(
    transfer_id: int,
    write_session: Session,
    esdb_client: EventStoreDBClient | None,
    acting_organisation_id: int | None = None,
) -> Transfer:
    """Complete a pending transfer, issuing the receiver its certificate.

    Executing a completed transfer again is a no-op that returns it unchanged.

    Args:
        transfer_id (int): The transfer to execute.
        write_session (Session): The database session to write to.
        esdb_client (EventStoreDBClient | None): Notification stream client.
        acting_organisation_id (int | None): If given, must be the receiving organisation.

    Returns:
        Transfer: The completed transfer.

    Raises:
        TransferNotPending: If the transfer was cancelled.
        InsufficientClaimedBalance: If a backing claim no longer covers its allocation.
        InsufficientBalance: If an unclaimed transfer is no longer covered.
        InvariantViolation: If the source certificate's remaining amount is short.
    """
    already_completed = False

    with ledger_transaction(write_session):
        transfer = Transfer.lock(transfer_id, write_session)
        validate_party(transfer, acting_organisation_id, "target")

        if transfer.status == TransferStatus.COMPLETED:
            already_completed = True
        elif transfer.status != TransferStatus.PENDING:
            err_msg = f"Transfer {transfer_id} is {transfer.status.value}, not pending"
            logger.error(err_msg)
            raise TransferNotPending(err_msg)
        else:
            certificate = Certificate.lock(transfer.source_certificate_id, write_session)
            claims, transfers = load_ledger_rows(
                certificate.id, write_session, refresh=True  # type: ignore
            )
            _revalidate_for_execution(
                transfer, certificate, claims, transfers, utc_datetime_now()
            )

            withdraw_amount(certificate, transfer.amount, write_session)
            derived = create_derived_certificate(
                certificate,
                transfer.target_organisation_id,
                transfer.amount,
                transfer.id,  # type: ignore
                write_session,
            )
            transfer.update(
                {
                    "status": TransferStatus.COMPLETED,
                    "completed_at": utc_datetime_now(),
                    "target_certificate_id": derived.id,
                },
                write_session,
            )
            calculator.check_conservation(certificate, claims, transfers)

    if already_completed:
        logger.info(f"Transfer {transfer_id} already completed, nothing to do")
        return transfer

    logger.info(
        f"Transfer {transfer_id} completed: certificate {transfer.target_certificate_id} "
        f"issued to organisation {transfer.target_organisation_id}"
    )
    _notify_parties(LedgerEventType.TRANSFER_COMPLETED, transfer, esdb_client)
    return transfer


def cancel_transfer(
    transfer_id: int,
    write_session: Session,
    esdb_client: EventStoreDBClient | None,
    reason: str | None = None,
    acting_organisation_id: int | None = None,
    party: TransferParty = "source",
) -> Transfer:
    """Cancel a pending transfer, releasing its reserved amount.

    The source withdraws its own request and the target rejects one; either
    way no balance changes, as pending transfers never touch remaining amounts.
    """
    with ledger_transaction(write_session):
        transfer = Transfer.lock(transfer_id, write_session)
        validate_party(transfer, acting_organisation_id, party)

        if transfer.status != TransferStatus.PENDING:
            err_msg = f"Transfer {transfer_id} is {transfer.status.value}, not pending"
            logger.error(err_msg)
            raise TransferNotPending(err_msg)

        transfer.update(
            {
                "status": TransferStatus.CANCELLED,
                "cancelled_at": utc_datetime_now(),
                "cancellation_reason": reason,
            },
            write_session,
        )

    logger.info(f"Transfer {transfer_id} cancelled by {party}: {reason}")
    _notify_parties(
        LedgerEventType.TRANSFER_CANCELLED,
        transfer,
        esdb_client,
        reason=reason,
        cancelled_by=party,
    )
    return transfer


def get_transfer(
    transfer_id: int, organisation_id: int | None, read_session: Session
) -> Transfer:
    """Fetch a transfer visible to the organisation; None skips the check."""
    transfer = Transfer.by_id(transfer_id, read_session)
    if organisation_id is not None and organisation_id not in (
        transfer.source_organisation_id,
        transfer.target_organisation_id,
    ):
        raise NotFound(f"Transfer with id {transfer_id} not found")
    return transfer


def get_transfers_by_organisation(
    organisation_id: int,
    read_session: Session,
    status: TransferStatus | None = None,
) -> list[Transfer]:
    stmt = select(Transfer).where(
        or_(
            Transfer.source_organisation_id == organisation_id,
            Transfer.target_organisation_id == organisation_id,
        )
    )
    if status is not None:
        stmt = stmt.where(Transfer.status == status)
    return list(read_session.exec(stmt.order_by(Transfer.id)).all())  # type: ignore
