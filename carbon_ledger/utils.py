import datetime
from typing import Any, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy import DateTime
from sqlmodel import Field, Session, SQLModel, select

from carbon_ledger.core.database import persistence
from carbon_ledger.core.errors import NotFound
from carbon_ledger.core.models.base import utc_datetime_now

T = TypeVar("T", bound="ActiveRecord")


def ensure_utc(value: datetime.datetime) -> datetime.datetime:
    """SQLite hands back naive datetimes; every stored datetime is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


class ActiveRecord(SQLModel):
    created_at: datetime.datetime = Field(
        default_factory=utc_datetime_now,
        nullable=False,
        sa_type=DateTime(timezone=True),
    )  # type: ignore

    @classmethod
    def by_id(cls: Type[T], id_: int, session: Session) -> T:
        obj = session.get(cls, id_)
        if obj is None:
            raise NotFound(f"{cls.__name__} with id {id_} not found")
        return obj

    @classmethod
    def lock(cls: Type[T], id_: int, write_session: Session) -> T:
        """Load the row under a lock held until the current transaction ends,
        replacing any state cached in the session."""
        obj = write_session.exec(
            select(cls)
            .where(cls.id == id_)  # type: ignore
            .with_for_update()
            .execution_options(populate_existing=True)
        ).first()
        if obj is None:
            raise NotFound(f"{cls.__name__} with id {id_} not found")
        return obj

    @classmethod
    def create(
        cls: Type[T],
        source: BaseModel | dict[str, Any] | list[dict[str, Any]],
        write_session: Session,
    ) -> list[T]:
        """Validate and add one or more rows, each with its CREATE audit event."""
        if isinstance(source, BaseModel):
            objs = [cls.model_validate(source.model_dump())]
        elif isinstance(source, dict):
            objs = [cls.model_validate(source)]
        elif isinstance(source, list):
            objs = [cls.model_validate(elem) for elem in source]
        else:
            raise ValueError(f"Cannot create {cls.__name__} from {type(source)}")

        return persistence.write_to_database(objs, write_session)  # type: ignore

    def update(
        self: T,
        update_entity: BaseModel | dict[str, Any],
        write_session: Session,
    ) -> T:
        return persistence.update_database_entity(  # type: ignore
            entity=self,
            update_entity=update_entity,
            write_session=write_session,
        )
