from enum import Enum

from carbon_ledger.core.errors import ClaimedAtSameLevel, InvalidDirection
from carbon_ledger.logging_config import logger
from carbon_ledger.settings import settings


class TransferDirection(str, Enum):
    DOWNSTREAM = "downstream"
    SAME_LEVEL = "same_level"
    SAME_LEVEL_BLOCKED = "same_level_blocked"
    UPSTREAM = "upstream"
    INVALID = "invalid"


PERMITTED_DIRECTIONS = {TransferDirection.DOWNSTREAM, TransferDirection.SAME_LEVEL}


def classify_direction(
    source_level: int,
    target_level: int,
    certificate_has_active_claims: bool,
    allow_same_level: bool | None = None,
) -> TransferDirection:
    """Decide once how a transfer moves through the supply chain.

    Same-level transfers are a policy choice: when allowed, they may only move
    amounts nobody has claimed yet, since a claimed reduction must not be
    passed sideways to a peer.
    """
    if allow_same_level is None:
        allow_same_level = settings.ALLOW_SAME_LEVEL_TRANSFERS

    if source_level < target_level:
        return TransferDirection.DOWNSTREAM
    if source_level > target_level:
        return TransferDirection.UPSTREAM
    if not allow_same_level:
        return TransferDirection.INVALID
    if certificate_has_active_claims:
        return TransferDirection.SAME_LEVEL_BLOCKED
    return TransferDirection.SAME_LEVEL


def enforce_direction(direction: TransferDirection, source_level: int, target_level: int):
    if direction in PERMITTED_DIRECTIONS:
        return

    details = {
        "direction": direction.value,
        "source_level": source_level,
        "target_level": target_level,
    }
    if direction == TransferDirection.SAME_LEVEL_BLOCKED:
        err_msg = (
            f"Claimed amounts cannot be transferred between organisations at the "
            f"same supply chain level ({source_level})"
        )
        logger.error(err_msg)
        raise ClaimedAtSameLevel(err_msg, details=details)

    if direction == TransferDirection.UPSTREAM:
        err_msg = (
            f"Transfers must flow downstream: level {source_level} cannot transfer "
            f"to level {target_level}"
        )
    else:
        err_msg = f"Transfers between organisations at level {source_level} are not permitted"
    logger.error(err_msg)
    raise InvalidDirection(err_msg, details=details)
