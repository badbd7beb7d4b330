from fastapi import APIRouter, Depends
from sqlmodel import Session

from carbon_ledger.authentication.schemas import Identity
from carbon_ledger.authentication.services import get_current_identity, validate_admin
from carbon_ledger.balance.services import get_balance
from carbon_ledger.certificate.models import Certificate
from carbon_ledger.certificate.schemas import (
    CertificateBalance,
    CertificateCreate,
    CertificateRead,
)
from carbon_ledger.core.database import db
from carbon_ledger.transfer.lineage import build_lineage
from carbon_ledger.transfer.schemas import Lineage

from . import services

# Router initialisation
router = APIRouter(tags=["Certificates"])


@router.post("/create", response_model=CertificateRead, status_code=201)
def create_certificate(
    certificate_create: CertificateCreate,
    identity: Identity = Depends(get_current_identity),
    write_session: Session = Depends(db.get_write_session),
):
    """Issue a certificate for a verified intervention."""
    validate_admin(identity)
    return services.issue_certificate(certificate_create, write_session)


@router.get("/", response_model=list[CertificateRead])
def list_certificates(
    identity: Identity = Depends(get_current_identity),
    read_session: Session = Depends(db.get_read_session),
):
    """Certificates held by the calling organisation."""
    return services.get_certificates_by_organisation(
        identity.organisation_id, read_session
    )


@router.get("/{certificate_id}", response_model=CertificateRead)
def read_certificate(
    certificate_id: int,
    identity: Identity = Depends(get_current_identity),
    read_session: Session = Depends(db.get_read_session),
):
    return Certificate.by_id(certificate_id, read_session)


@router.get("/{certificate_id}/balance", response_model=CertificateBalance)
def read_balance(
    certificate_id: int,
    identity: Identity = Depends(get_current_identity),
    read_session: Session = Depends(db.get_read_session),
):
    """Claimed and available amounts of a certificate for the caller."""
    return get_balance(certificate_id, identity.organisation_id, read_session)


@router.get("/{certificate_id}/lineage", response_model=Lineage)
def read_lineage(
    certificate_id: int,
    from_origin: bool = False,
    identity: Identity = Depends(get_current_identity),
    read_session: Session = Depends(db.get_read_session),
):
    """Transfers of this certificate and its descendants that the caller
    sent or received, as a tree."""
    return build_lineage(
        certificate_id, identity.organisation_id, read_session, from_origin=from_origin
    )
