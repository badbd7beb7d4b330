"""
Balance arithmetic for a single certificate.

Every function here is pure: it takes the certificate together with its
claims and its outgoing transfers, already loaded by the caller, and derives
balances from them. Nothing is cached or stored, so a balance read inside a
locked transaction is exact for that transaction.

Outgoing transfers hold their amount while pending or completed. A claimed
transfer draws on one or more claims through its allocations; the part drawn
from a still active claim is "backed" and counts against that claim. The rest
of the transfer (all of a same-level transfer of unclaimed amount, or the
allocations whose claim has since expired) is unbacked and counts directly
against the certificate instead, which keeps

    sum(active claims) + sum(unbacked outgoing) <= total_amount

true however claims expire.

Functions that take `now` also treat an active claim whose expiry date has
passed as inactive, so a claim the expiry sweep has not reached yet cannot
back new transfers. The unclaimed balance always goes by stored status: such
a claim keeps its amount reserved until it is swept.
"""

import datetime
from decimal import Decimal
from typing import Iterable

from carbon_ledger.certificate.models import Certificate
from carbon_ledger.claim.models import Claim
from carbon_ledger.core.errors import InvariantViolation
from carbon_ledger.core.models.base import TransferStatus
from carbon_ledger.logging_config import logger
from carbon_ledger.transfer.models import Transfer
from carbon_ledger.utils import ensure_utc

ZERO = Decimal("0")


def _sum(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, ZERO)


def _non_negative(value: Decimal, label: str, certificate_id: int | None) -> Decimal:
    if value < ZERO:
        msg = f"Negative {label} ({value}) on certificate {certificate_id}"
        logger.critical(msg)
        raise InvariantViolation(
            msg, details={"certificate_id": certificate_id, label: str(value)}
        )
    return value


def _open_transfers(
    transfers: Iterable[Transfer], exclude_transfer_id: int | None
) -> list[Transfer]:
    return [t for t in transfers if t.is_open and t.id != exclude_transfer_id]


def active_claims(
    claims: Iterable[Claim], now: datetime.datetime | None = None
) -> list[Claim]:
    return [c for c in claims if c.is_active_at(now)]


def active_claimed_amount(
    claims: Iterable[Claim], now: datetime.datetime | None = None
) -> Decimal:
    return _sum(c.amount for c in active_claims(claims, now))


def backed_amount(transfer: Transfer, active_claim_ids: set[int | None]) -> Decimal:
    return _sum(a.amount for a in transfer.allocations if a.claim_id in active_claim_ids)


def unbacked_outgoing(
    claims: Iterable[Claim],
    transfers: Iterable[Transfer],
    exclude_transfer_id: int | None = None,
) -> Decimal:
    active_ids = {c.id for c in active_claims(claims)}
    return _sum(
        t.amount - backed_amount(t, active_ids)
        for t in _open_transfers(transfers, exclude_transfer_id)
    )


def available_to_claim(
    certificate: Certificate,
    claims: list[Claim],
    transfers: list[Transfer],
    exclude_transfer_id: int | None = None,
) -> Decimal:
    """total - sum(active claims) - sum(unbacked outgoing transfers)."""
    available = (
        certificate.total_amount
        - active_claimed_amount(claims)
        - unbacked_outgoing(claims, transfers, exclude_transfer_id)
    )
    return _non_negative(available, "available_to_claim", certificate.id)


def claim_headroom(
    claim: Claim,
    transfers: Iterable[Transfer],
    exclude_transfer_id: int | None = None,
    now: datetime.datetime | None = None,
) -> Decimal:
    """Part of an active claim not yet allocated to outgoing transfers."""
    if not claim.is_active_at(now):
        return ZERO
    committed = _sum(
        a.amount
        for t in _open_transfers(transfers, exclude_transfer_id)
        for a in t.allocations
        if a.claim_id == claim.id
    )
    return _non_negative(claim.amount - committed, "claim_headroom", claim.certificate_id)


def available_to_transfer(
    organisation_id: int,
    claims: list[Claim],
    transfers: list[Transfer],
    exclude_transfer_id: int | None = None,
    now: datetime.datetime | None = None,
) -> Decimal:
    """sum(active claims held by the organisation) minus the pending and
    completed transfers allocated to those claims."""
    return _sum(
        claim_headroom(c, transfers, exclude_transfer_id, now)
        for c in active_claims(claims, now)
        if c.organisation_id == organisation_id
    )


def allocate(
    organisation_id: int,
    amount: Decimal,
    claims: list[Claim],
    transfers: list[Transfer],
    now: datetime.datetime | None = None,
) -> list[tuple[Claim, Decimal]]:
    """Spread an amount over the organisation's claims, earliest expiry first.

    Returns (claim, amount) pairs. Returns an empty list when the claims held
    by the organisation cannot cover the amount.
    """
    candidates = sorted(
        (c for c in active_claims(claims, now) if c.organisation_id == organisation_id),
        key=lambda c: (ensure_utc(c.expiry_date), c.id),
    )
    allocations = []
    remaining = amount
    for claim in candidates:
        if remaining <= ZERO:
            break
        take = min(claim_headroom(claim, transfers, now=now), remaining)
        if take > ZERO:
            allocations.append((claim, take))
            remaining -= take
    return allocations if remaining <= ZERO else []


def completed_outgoing(transfers: Iterable[Transfer]) -> Decimal:
    return _sum(t.amount for t in transfers if t.status == TransferStatus.COMPLETED)


def expected_remaining(certificate: Certificate, transfers: list[Transfer]) -> Decimal:
    """remaining_amount must always equal total - sum(completed outgoing)."""
    remaining = certificate.total_amount - completed_outgoing(transfers)
    return _non_negative(remaining, "remaining_amount", certificate.id)


def check_conservation(
    certificate: Certificate, claims: list[Claim], transfers: list[Transfer]
):
    """Raise InvariantViolation if the stored state breaks conservation."""
    available_to_claim(certificate, claims, transfers)
    for claim in active_claims(claims):
        claim_headroom(claim, transfers)

    expected = expected_remaining(certificate, transfers)
    if certificate.remaining_amount != expected:
        msg = (
            f"Certificate {certificate.id} remaining amount {certificate.remaining_amount} "
            f"does not match total less completed transfers ({expected})"
        )
        logger.critical(msg)
        raise InvariantViolation(msg, details={"certificate_id": certificate.id})
