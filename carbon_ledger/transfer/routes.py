from esdbclient import EventStoreDBClient
from fastapi import APIRouter, Depends
from sqlmodel import Session

from carbon_ledger.authentication.schemas import Identity
from carbon_ledger.authentication.services import get_current_identity
from carbon_ledger.core.database import db, events
from carbon_ledger.core.models.base import TransferStatus
from carbon_ledger.transfer.schemas import TransferCancel, TransferCreate, TransferRead

from . import services

# Router initialisation
router = APIRouter(tags=["Transfers"])


@router.post("/create", response_model=TransferRead, status_code=201)
def create_transfer(
    transfer_create: TransferCreate,
    identity: Identity = Depends(get_current_identity),
    write_session: Session = Depends(db.get_write_session),
    esdb_client: EventStoreDBClient | None = Depends(events.get_esdb_client),
):
    """Request a transfer of claimed amount to a downstream partner. The
    transfer stays pending until the receiving organisation approves it."""
    return services.request_transfer(
        identity.organisation_id,
        transfer_create.target_organisation_id,
        transfer_create.certificate_id,
        transfer_create.amount,
        write_session,
        esdb_client,
        source_claim_id=transfer_create.source_claim_id,
        notes=transfer_create.notes,
    )


@router.get("/", response_model=list[TransferRead])
def list_transfers(
    status: TransferStatus | None = None,
    identity: Identity = Depends(get_current_identity),
    read_session: Session = Depends(db.get_read_session),
):
    """Transfers the calling organisation sent or received."""
    return services.get_transfers_by_organisation(
        identity.organisation_id, read_session, status=status
    )


@router.get("/{transfer_id}", response_model=TransferRead)
def read_transfer(
    transfer_id: int,
    identity: Identity = Depends(get_current_identity),
    read_session: Session = Depends(db.get_read_session),
):
    return services.get_transfer(
        transfer_id,
        None if identity.is_admin else identity.organisation_id,
        read_session,
    )


@router.post("/{transfer_id}/approve", response_model=TransferRead)
def approve_transfer(
    transfer_id: int,
    identity: Identity = Depends(get_current_identity),
    write_session: Session = Depends(db.get_write_session),
    esdb_client: EventStoreDBClient | None = Depends(events.get_esdb_client),
):
    """Accept a pending transfer as its receiver, completing it."""
    return services.execute_transfer(
        transfer_id,
        write_session,
        esdb_client,
        acting_organisation_id=identity.organisation_id,
    )


@router.post("/{transfer_id}/reject", response_model=TransferRead)
def reject_transfer(
    transfer_id: int,
    transfer_cancel: TransferCancel,
    identity: Identity = Depends(get_current_identity),
    write_session: Session = Depends(db.get_write_session),
    esdb_client: EventStoreDBClient | None = Depends(events.get_esdb_client),
):
    return services.cancel_transfer(
        transfer_id,
        write_session,
        esdb_client,
        reason=transfer_cancel.reason,
        acting_organisation_id=identity.organisation_id,
        party="target",
    )


@router.post("/{transfer_id}/cancel", response_model=TransferRead)
def cancel_transfer(
    transfer_id: int,
    transfer_cancel: TransferCancel,
    identity: Identity = Depends(get_current_identity),
    write_session: Session = Depends(db.get_write_session),
    esdb_client: EventStoreDBClient | None = Depends(events.get_esdb_client),
):
    """Withdraw a pending transfer request as its sender."""
    return services.cancel_transfer(
        transfer_id,
        write_session,
        esdb_client,
        reason=transfer_cancel.reason,
        acting_organisation_id=identity.organisation_id,
        party="source",
    )
