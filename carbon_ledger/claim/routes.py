from esdbclient import EventStoreDBClient
from fastapi import APIRouter, Depends
from sqlmodel import Session

from carbon_ledger.authentication.schemas import Identity
from carbon_ledger.authentication.services import get_current_identity, validate_admin
from carbon_ledger.claim.schemas import ClaimCreate, ClaimExpiryResult, ClaimRead
from carbon_ledger.core.database import db, events
from carbon_ledger.core.models.base import ClaimStatus

from . import services

# Router initialisation
router = APIRouter(tags=["Claims"])


@router.post("/create", response_model=ClaimRead, status_code=201)
def create_claim(
    claim_create: ClaimCreate,
    identity: Identity = Depends(get_current_identity),
    write_session: Session = Depends(db.get_write_session),
    esdb_client: EventStoreDBClient | None = Depends(events.get_esdb_client),
):
    """Claim part of a certificate for the calling organisation."""
    return services.issue_claim(
        claim_create.certificate_id,
        identity.organisation_id,
        claim_create.amount,
        write_session,
        esdb_client,
    )


@router.get("/", response_model=list[ClaimRead])
def list_claims(
    status: ClaimStatus | None = None,
    identity: Identity = Depends(get_current_identity),
    read_session: Session = Depends(db.get_read_session),
):
    return services.get_claims_by_organisation(
        identity.organisation_id, read_session, status=status
    )


@router.post("/expire", response_model=ClaimExpiryResult)
def expire_claims(
    identity: Identity = Depends(get_current_identity),
    write_session: Session = Depends(db.get_write_session),
    esdb_client: EventStoreDBClient | None = Depends(events.get_esdb_client),
):
    """Run the claim expiry sweep now."""
    validate_admin(identity)
    expired = services.expire_claims(write_session, esdb_client)
    return ClaimExpiryResult(expired_claim_ids=[claim.id for claim in expired])
