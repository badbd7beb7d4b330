from sqlmodel import Session, or_, select

from carbon_ledger.core.database.db import ledger_transaction
from carbon_ledger.core.errors import PolicyViolation
from carbon_ledger.core.models.base import PartnershipStatus
from carbon_ledger.logging_config import logger
from carbon_ledger.organisation.models import (
    Organisation,
    Partnership,
    SupplyChainLevelDescription,
)
from carbon_ledger.organisation.schemas import (
    OrganisationBase,
    SupplyChainLevelDescriptionBase,
)
from carbon_ledger.organisation.validation import (
    get_live_organisation,
    validate_partnership_decision,
    validate_partnership_request,
)


def create_organisation(
    organisation_base: OrganisationBase, write_session: Session
) -> Organisation:
    with ledger_transaction(write_session):
        organisation = Organisation.create(organisation_base, write_session)[0]
    logger.info(f"Created organisation {organisation.id}: {organisation.name}")
    return organisation


def set_supply_chain_level(
    organisation_id: int, supply_chain_level: int, write_session: Session
) -> Organisation:
    """Move an organisation to a new supply-chain level.

    The level is read fresh by every transfer request, so transfers already
    pending keep the levels recorded when they were requested.

    Args:
        organisation_id (int): The organisation to update.
        supply_chain_level (int): The new level, 1 or greater.
        write_session (Session): The database session to write to.

    Returns:
        Organisation: The updated organisation.
    """
    if supply_chain_level < 1:
        err_msg = f"Supply chain level must be a positive integer, got {supply_chain_level}"
        logger.error(err_msg)
        raise PolicyViolation(err_msg)

    with ledger_transaction(write_session):
        organisation = get_live_organisation(organisation_id, write_session)
        previous_level = organisation.supply_chain_level
        organisation.update({"supply_chain_level": supply_chain_level}, write_session)

    logger.info(
        f"Organisation {organisation_id} moved from supply chain level "
        f"{previous_level} to {supply_chain_level}"
    )
    return organisation


def request_partnership(
    requester_id: int, partner_id: int, write_session: Session
) -> Partnership:
    """Ask another organisation to become a supply-chain partner.

    A previously rejected or deactivated partnership is reopened as pending
    rather than duplicated. Both organisations are locked in id order, so
    crossing requests between the same pair are serialised and the second
    finds the first.

    Args:
        requester_id (int): The organisation making the request.
        partner_id (int): The organisation asked to accept.
        write_session (Session): The database session to write to.

    Returns:
        Partnership: The pending partnership.
    """
    with ledger_transaction(write_session):
        for organisation_id in sorted({requester_id, partner_id}):
            Organisation.lock(organisation_id, write_session)
        get_live_organisation(requester_id, write_session)
        get_live_organisation(partner_id, write_session)

        existing = Partnership.between(requester_id, partner_id, write_session)
        validate_partnership_request(requester_id, partner_id, existing)

        if existing is not None:
            partnership = existing.update(
                {
                    "status": PartnershipStatus.PENDING,
                    "requester_organisation_id": requester_id,
                    "recipient_organisation_id": partner_id,
                },
                write_session,
            )
        else:
            partnership = Partnership.create(
                {
                    "requester_organisation_id": requester_id,
                    "recipient_organisation_id": partner_id,
                    "status": PartnershipStatus.PENDING,
                    **Partnership.pair(requester_id, partner_id),
                },
                write_session,
            )[0]

    logger.info(
        f"Organisation {requester_id} requested a partnership with {partner_id}"
    )
    return partnership


def respond_to_partnership(
    partnership_id: int,
    acting_organisation_id: int,
    status: PartnershipStatus,
    write_session: Session,
) -> Partnership:
    with ledger_transaction(write_session):
        partnership = Partnership.by_id(partnership_id, write_session)
        validate_partnership_decision(partnership, acting_organisation_id)
        partnership.update({"status": status}, write_session)

    logger.info(
        f"Organisation {acting_organisation_id} set partnership {partnership_id} to {status.value}"
    )
    return partnership


def set_partnership_status(
    partnership_id: int, status: PartnershipStatus, write_session: Session
) -> Partnership:
    """Administrative override of a partnership's status."""
    with ledger_transaction(write_session):
        partnership = Partnership.by_id(partnership_id, write_session)
        partnership.update({"status": status}, write_session)
    logger.info(f"Partnership {partnership_id} set to {status.value} by administrator")
    return partnership


def are_partners(organisation_id: int, other_organisation_id: int, session: Session) -> bool:
    pair = Partnership.pair(organisation_id, other_organisation_id)
    return (
        session.exec(
            select(Partnership.id).where(
                Partnership.lower_organisation_id == pair["lower_organisation_id"],
                Partnership.upper_organisation_id == pair["upper_organisation_id"],
                Partnership.status == PartnershipStatus.ACTIVE,
            )
        ).first()
        is not None
    )


def get_partnerships(organisation_id: int, read_session: Session) -> list[Partnership]:
    return list(
        read_session.exec(
            select(Partnership).where(
                or_(
                    Partnership.requester_organisation_id == organisation_id,
                    Partnership.recipient_organisation_id == organisation_id,
                )
            )
        ).all()
    )


def get_partners(organisation_id: int, read_session: Session) -> list[Organisation]:
    """Organisations linked to the given one by an active partnership."""
    partner_ids = [
        partnership.partner_of(organisation_id)
        for partnership in get_partnerships(organisation_id, read_session)
        if partnership.is_active
    ]
    if not partner_ids:
        return []
    return list(
        read_session.exec(
            select(Organisation).where(
                Organisation.id.in_(partner_ids),  # type: ignore
                Organisation.is_deleted == False,  # noqa: E712
            )
        ).all()
    )


def list_supply_chain_levels(read_session: Session) -> list[SupplyChainLevelDescription]:
    return list(
        read_session.exec(
            select(SupplyChainLevelDescription).order_by(
                SupplyChainLevelDescription.level  # type: ignore
            )
        ).all()
    )


def upsert_supply_chain_level(
    level_description: SupplyChainLevelDescriptionBase, write_session: Session
) -> SupplyChainLevelDescription:
    with ledger_transaction(write_session):
        existing = write_session.get(SupplyChainLevelDescription, level_description.level)
        if existing is None:
            description = SupplyChainLevelDescription.create(
                level_description, write_session
            )[0]
        else:
            description = existing.update(
                level_description.model_dump(exclude={"level"}), write_session
            )
    return description
