from sqlmodel import Session

from carbon_ledger.core.errors import NotFound, PolicyViolation, Unauthorized
from carbon_ledger.core.models.base import PartnershipStatus
from carbon_ledger.logging_config import logger
from carbon_ledger.organisation.models import Organisation, Partnership


def get_live_organisation(organisation_id: int, session: Session) -> Organisation:
    """Fetch an organisation, treating soft-deleted organisations as missing."""
    organisation = Organisation.by_id(organisation_id, session)
    if organisation.is_deleted:
        raise NotFound(f"Organisation with id {organisation_id} not found")
    return organisation


def validate_partnership_request(
    requester_id: int,
    partner_id: int,
    existing: Partnership | None,
):
    """Check that a partnership may be requested between two organisations.

    Raises:
        PolicyViolation: If the request targets the requester itself, or a
            pending or active partnership already links the two organisations.
    """
    if partner_id == requester_id:
        msg = "An organisation cannot partner with itself"
        logger.error(msg)
        raise PolicyViolation(msg)

    if existing is not None and existing.status != PartnershipStatus.INACTIVE:
        msg = (
            f"A {existing.status.value} partnership already exists between "
            f"organisations {requester_id} and {partner_id}"
        )
        logger.error(msg)
        raise PolicyViolation(msg, details={"partnership_id": existing.id})


def validate_partnership_decision(partnership: Partnership, acting_organisation_id: int):
    """Only the recipient of a pending request may accept or reject it."""
    if not partnership.involves(acting_organisation_id):
        msg = f"Organisation {acting_organisation_id} is not party to partnership {partnership.id}"
        logger.error(msg)
        raise Unauthorized(msg)

    if acting_organisation_id == partnership.requester_organisation_id:
        msg = "The requesting organisation cannot respond to its own partnership request"
        logger.error(msg)
        raise Unauthorized(msg)

    if partnership.status != PartnershipStatus.PENDING:
        msg = f"Partnership {partnership.id} is {partnership.status.value}, not pending"
        logger.error(msg)
        raise PolicyViolation(msg)
