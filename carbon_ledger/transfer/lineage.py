"""
Transfer lineage: how an amount travelled from a certificate down the chain.

The certificate graph is walked outwards from a starting certificate through
the certificates its completed transfers created. Transfers the requesting
organisation is party to are then arranged into a tree using an arena keyed by
transfer id and an index of children by parent_transfer_id. A visible transfer
whose parent is not visible becomes a root, so every organisation sees a
connected view of just its own part of the chain.
"""

from collections import defaultdict

from sqlmodel import Session

from carbon_ledger.certificate.models import Certificate
from carbon_ledger.certificate.services import get_origin_certificate
from carbon_ledger.core.errors import InvariantViolation
from carbon_ledger.core.models.base import TransferStatus
from carbon_ledger.logging_config import logger
from carbon_ledger.transfer.models import Transfer
from carbon_ledger.transfer.schemas import Lineage, LineageNode, TransferRead


def _cycle(msg: str, **details) -> InvariantViolation:
    logger.critical(msg)
    return InvariantViolation(msg, details=details)


def collect_transfers(root_certificate_id: int, session: Session) -> list[Transfer]:
    """Every transfer out of the root certificate or any certificate derived
    from it through completed transfers."""
    collected: list[Transfer] = []
    seen_transfers: set[int] = set()
    visited_certificates: set[int] = set()
    frontier = [root_certificate_id]

    while frontier:
        certificate_id = frontier.pop()
        if certificate_id in visited_certificates:
            raise _cycle(
                f"Certificate {certificate_id} reached twice while tracing lineage",
                certificate_id=certificate_id,
            )
        visited_certificates.add(certificate_id)

        for transfer in Transfer.outgoing(certificate_id, session):
            if transfer.id in seen_transfers:
                raise _cycle(
                    f"Transfer {transfer.id} reached twice while tracing lineage",
                    transfer_id=transfer.id,
                )
            seen_transfers.add(transfer.id)  # type: ignore
            collected.append(transfer)
            if (
                transfer.status == TransferStatus.COMPLETED
                and transfer.target_certificate_id is not None
            ):
                frontier.append(transfer.target_certificate_id)

    return collected


def build_tree(transfers: list[Transfer]) -> list[LineageNode]:
    """Arrange transfers into trees by parent_transfer_id.

    Transfers whose parent is absent from the list become roots. Children are
    ordered by transfer id.
    """
    arena: dict[int, Transfer] = {t.id: t for t in transfers}  # type: ignore
    children: dict[int, list[int]] = defaultdict(list)
    roots: list[int] = []

    for transfer_id in sorted(arena):
        parent_id = arena[transfer_id].parent_transfer_id
        if parent_id is not None and parent_id in arena:
            children[parent_id].append(transfer_id)
        else:
            roots.append(transfer_id)

    # Any parent chain that never reaches a root is a cycle
    for transfer_id in arena:
        seen: set[int] = set()
        current: int | None = transfer_id
        while current is not None and current in arena:
            if current in seen:
                raise _cycle(
                    f"Transfer {transfer_id} is part of a parent cycle",
                    transfer_id=transfer_id,
                )
            seen.add(current)
            current = arena[current].parent_transfer_id

    nodes: dict[int, LineageNode] = {
        transfer_id: LineageNode(
            transfer=TransferRead.model_validate(transfer.model_dump())
        )
        for transfer_id, transfer in arena.items()
    }
    for parent_id, child_ids in children.items():
        nodes[parent_id].children = [nodes[child_id] for child_id in child_ids]

    return [nodes[root_id] for root_id in roots]


def build_lineage(
    certificate_id: int,
    requesting_organisation_id: int,
    read_session: Session,
    from_origin: bool = False,
) -> Lineage:
    """Build the transfer tree of a certificate as seen by an organisation.

    Args:
        certificate_id (int): The certificate whose lineage is requested.
        requesting_organisation_id (int): Only transfers this organisation
            sent or received are included.
        read_session (Session): The database session to read from.
        from_origin (bool): Start from the originally issued certificate
            rather than the given one.

    Returns:
        Lineage: The root nodes of the visible transfer tree.
    """
    certificate = Certificate.by_id(certificate_id, read_session)
    start = get_origin_certificate(certificate, read_session) if from_origin else certificate

    visible = [
        t
        for t in collect_transfers(start.id, read_session)  # type: ignore
        if requesting_organisation_id
        in (t.source_organisation_id, t.target_organisation_id)
    ]

    return Lineage(
        certificate_id=certificate_id,
        root_certificate_id=start.id,  # type: ignore
        roots=build_tree(visible),
    )
