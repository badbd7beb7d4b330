from typing import Any

from pydantic import BaseModel
from pydantic_core import to_jsonable_python
from sqlalchemy import inspect
from sqlmodel import Session, SQLModel

from carbon_ledger.core.models.base import AuditEvent, EventTypes
from carbon_ledger.logging_config import logger


def _audit_snapshot(values: dict[str, Any]) -> dict[str, Any]:
    return to_jsonable_python(values)


def _entity_id(entity: SQLModel) -> int:
    return inspect(entity).identity[0]


def write_to_database(
    entities: list[SQLModel] | SQLModel,
    write_session: Session,
) -> list[SQLModel]:
    """Add the provided entities to the write session, saving an AuditEvent
    entry for each entity.

    Nothing is committed here: the caller owns the transaction, so the
    entities and their audit entries land or roll back together.
    """

    if not isinstance(entities, list):
        entities = [entities]
    if not entities:
        return []

    write_session.add_all(entities)
    write_session.flush()

    for entity in entities:
        write_session.refresh(entity)

    write_session.add_all(
        [
            AuditEvent(
                entity_id=_entity_id(entity),
                entity_name=entity.__class__.__name__,
                event_type=EventTypes.CREATE,
                attributes_before=None,
                attributes_after=_audit_snapshot(entity.model_dump()),
            )
            for entity in entities
        ]
    )
    write_session.flush()

    logger.debug(f"Created {len(entities)} {entities[0].__class__.__name__} entities")

    return entities


def update_database_entity(
    entity: SQLModel,
    update_entity: BaseModel | dict[str, Any],
    write_session: Session,
) -> SQLModel:
    """Update the entity with the provided values, recording the before and
    after state of every changed attribute."""

    if isinstance(update_entity, BaseModel):
        update_data: dict = update_entity.model_dump(exclude_unset=True)
    else:
        update_data = dict(update_entity)

    before_data = {attr: getattr(entity, attr) for attr in update_data}

    entity.sqlmodel_update(update_data)
    write_session.add(entity)
    write_session.flush()
    write_session.refresh(entity)

    write_session.add(
        AuditEvent(
            entity_id=_entity_id(entity),
            entity_name=entity.__class__.__name__,
            event_type=EventTypes.UPDATE,
            attributes_before=_audit_snapshot(before_data),
            attributes_after=_audit_snapshot(update_data),
        )
    )
    write_session.flush()

    return entity
