from fastapi import APIRouter, Depends
from sqlmodel import Session

from carbon_ledger.authentication.schemas import Identity
from carbon_ledger.authentication.services import get_current_identity, validate_admin
from carbon_ledger.core.database import db
from carbon_ledger.organisation.models import (
    Partnership,
    SupplyChainLevelDescription,
)
from carbon_ledger.organisation.schemas import (
    OrganisationBase,
    OrganisationRead,
    PartnershipDecision,
    PartnershipRead,
    PartnershipRequest,
    SupplyChainLevelDescriptionBase,
    SupplyChainLevelUpdate,
)
from carbon_ledger.organisation.validation import get_live_organisation

from . import services

# Router initialisation
router = APIRouter(tags=["Organisations"])


@router.post("/create", status_code=201, response_model=OrganisationRead)
def create_organisation(
    organisation_base: OrganisationBase,
    identity: Identity = Depends(get_current_identity),
    write_session: Session = Depends(db.get_write_session),
):
    """Onboard an organisation at its supply-chain level."""
    validate_admin(identity)
    return services.create_organisation(organisation_base, write_session)


@router.get("/partnerships", response_model=list[PartnershipRead])
def read_partnerships(
    identity: Identity = Depends(get_current_identity),
    read_session: Session = Depends(db.get_read_session),
):
    return services.get_partnerships(identity.organisation_id, read_session)


@router.get("/partners", response_model=list[OrganisationRead])
def read_partners(
    identity: Identity = Depends(get_current_identity),
    read_session: Session = Depends(db.get_read_session),
):
    """Organisations the caller may exchange claimed amounts with."""
    return services.get_partners(identity.organisation_id, read_session)


@router.post("/partnerships", status_code=201, response_model=PartnershipRead)
def request_partnership(
    partnership_request: PartnershipRequest,
    identity: Identity = Depends(get_current_identity),
    write_session: Session = Depends(db.get_write_session),
) -> Partnership:
    return services.request_partnership(
        identity.organisation_id,
        partnership_request.partner_organisation_id,
        write_session,
    )


@router.patch("/partnerships/{partnership_id}", response_model=PartnershipRead)
def respond_to_partnership(
    partnership_id: int,
    decision: PartnershipDecision,
    identity: Identity = Depends(get_current_identity),
    write_session: Session = Depends(db.get_write_session),
) -> Partnership:
    """Accept or reject a pending partnership request. Administrators may set
    any partnership status directly."""
    if identity.is_admin:
        return services.set_partnership_status(
            partnership_id, decision.status, write_session
        )
    return services.respond_to_partnership(
        partnership_id, identity.organisation_id, decision.status, write_session
    )


@router.get("/supply_chain_levels", response_model=list[SupplyChainLevelDescription])
def read_supply_chain_levels(
    identity: Identity = Depends(get_current_identity),
    read_session: Session = Depends(db.get_read_session),
):
    return services.list_supply_chain_levels(read_session)


@router.put("/supply_chain_levels", response_model=SupplyChainLevelDescription)
def upsert_supply_chain_level(
    level_description: SupplyChainLevelDescriptionBase,
    identity: Identity = Depends(get_current_identity),
    write_session: Session = Depends(db.get_write_session),
):
    validate_admin(identity)
    return services.upsert_supply_chain_level(level_description, write_session)


@router.get("/{organisation_id}", response_model=OrganisationRead)
def read_organisation(
    organisation_id: int,
    identity: Identity = Depends(get_current_identity),
    read_session: Session = Depends(db.get_read_session),
):
    return get_live_organisation(organisation_id, read_session)


@router.patch("/{organisation_id}/supply_chain_level", response_model=OrganisationRead)
def update_supply_chain_level(
    organisation_id: int,
    level_update: SupplyChainLevelUpdate,
    identity: Identity = Depends(get_current_identity),
    write_session: Session = Depends(db.get_write_session),
):
    validate_admin(identity)
    return services.set_supply_chain_level(
        organisation_id, level_update.supply_chain_level, write_session
    )

