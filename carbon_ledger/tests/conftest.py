import datetime
import os
from decimal import Decimal
from typing import Any, Callable, Generator
from unittest.mock import MagicMock

import pytest
from dotenv import load_dotenv
from esdbclient import EventStoreDBClient
from sqlalchemy.engine.base import Engine
from sqlmodel import Session, SQLModel
from starlette.testclient import TestClient
from testcontainers.postgres import PostgresContainer  # type: ignore

from carbon_ledger.authentication.services import create_access_token
from carbon_ledger.certificate.models import Certificate
from carbon_ledger.certificate.schemas import CertificateCreate
from carbon_ledger.certificate.services import issue_certificate
from carbon_ledger.claim.models import Claim
from carbon_ledger.claim.services import issue_claim
from carbon_ledger.core.database import db, events
from carbon_ledger.core.models.base import PartnershipStatus
from carbon_ledger.logging_config import logger
from carbon_ledger.main import app
from carbon_ledger.organisation import services as organisation_services
from carbon_ledger.organisation.models import Organisation, Partnership
from carbon_ledger.organisation.schemas import OrganisationBase
from carbon_ledger.settings import settings

load_dotenv()

CURRENT_YEAR = datetime.datetime.now(datetime.timezone.utc).year


@pytest.fixture(scope="session")
def postgres_url() -> Generator[str | None, None, None]:
    """Ephemeral Postgres for LEDGER_TEST_POSTGRES=1 runs, SQLite otherwise."""
    if os.environ.get("LEDGER_TEST_POSTGRES") != "1":
        yield None
        return

    pg_container = PostgresContainer(
        "postgres:15-alpine", driver="psycopg", dbname="db_ledger"
    )
    try:
        pg_container.start()
    except Exception as e:
        logger.error(f"Failed to start PostgreSQL container: {str(e)}")
        raise
    yield pg_container.get_connection_url()
    pg_container.stop()


@pytest.fixture()
def db_url(postgres_url: str | None, tmp_path) -> str:
    if postgres_url is not None:
        return postgres_url
    return f"sqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture()
def write_engine(db_url: str) -> Generator[Engine, None, None]:
    """
    Creates the ledger tables on a fresh database and exposes the write engine
    """
    db_engine = db.create_ledger_engine(db_url, serialise_writers=True)
    SQLModel.metadata.create_all(db_engine)

    yield db_engine

    if not db.is_sqlite(db_url):
        SQLModel.metadata.drop_all(db_engine)
    db_engine.dispose()


@pytest.fixture()
def read_engine(db_url: str, write_engine: Engine) -> Generator[Engine, None, None]:
    db_engine = db.create_ledger_engine(db_url, serialise_writers=False)
    yield db_engine
    db_engine.dispose()


@pytest.fixture()
def write_session(write_engine: Engine) -> Generator[Session, None, None]:
    """
    Every ledger operation commits its own transaction, so each test runs
    against its own database rather than inside a rolled back transaction
    """
    session = Session(write_engine, expire_on_commit=False)
    yield session
    session.close()


@pytest.fixture()
def read_session(read_engine: Engine) -> Generator[Session, None, None]:
    session = Session(read_engine, expire_on_commit=False)
    yield session
    session.close()


@pytest.fixture()
def session_factory(write_engine: Engine) -> Callable[[], Session]:
    """Independent write sessions, one per simulated concurrent caller."""

    def _create_session() -> Session:
        return Session(write_engine, expire_on_commit=False)

    return _create_session


@pytest.fixture()
def esdb_client() -> MagicMock:
    """Stand-in for the notification stream, recording every append."""
    return MagicMock(spec=EventStoreDBClient)


@pytest.fixture()
def api_client(
    write_session: Session,
    read_engine: Engine,
    esdb_client: MagicMock,
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[TestClient, None, None]:
    """API Client for testing routes"""

    def get_write_session_override():
        return write_session

    def get_read_session_override():
        # A fresh session per request so reads see the latest commits
        with Session(read_engine, expire_on_commit=False) as session:
            yield session

    def get_db_name_to_client_override():
        return {
            "db_write": write_session,
            "db_read": read_engine,
        }

    def get_esdb_client_override():
        return esdb_client

    # Set dependency overrides
    app.dependency_overrides[db.get_write_session] = get_write_session_override
    app.dependency_overrides[db.get_read_session] = get_read_session_override
    app.dependency_overrides[db.get_db_name_to_client] = get_db_name_to_client_override
    app.dependency_overrides[events.get_esdb_client] = get_esdb_client_override

    # Tables already exist in the test database
    monkeypatch.setattr(settings, "ENVIRONMENT", "TEST")

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture()
def organisation_factory(write_session: Session) -> Callable[..., Organisation]:
    """Factory function to create organisations at a given supply chain level."""

    def _create_organisation(name: str, supply_chain_level: int = 1) -> Organisation:
        return organisation_services.create_organisation(
            OrganisationBase(
                name=name,
                company_name=f"{name} Ltd",
                supply_chain_level=supply_chain_level,
            ),
            write_session,
        )

    return _create_organisation


@pytest.fixture()
def partnership_factory(write_session: Session) -> Callable[..., Partnership]:
    """Factory function to create active partnerships between two organisations."""

    def _create_partnership(
        requester: Organisation, recipient: Organisation
    ) -> Partnership:
        partnership = organisation_services.request_partnership(
            requester.id, recipient.id, write_session  # type: ignore
        )
        return organisation_services.respond_to_partnership(
            partnership.id,  # type: ignore
            recipient.id,  # type: ignore
            PartnershipStatus.ACTIVE,
            write_session,
        )

    return _create_partnership


@pytest.fixture()
def certificate_factory(write_session: Session) -> Callable[..., Certificate]:
    """Factory function to issue certificates to an organisation."""

    def _create_certificate(
        organisation: Organisation,
        total_amount: Decimal | str = "100",
        vintage: int = CURRENT_YEAR,
        intervention_id: str = "INT-001",
    ) -> Certificate:
        return issue_certificate(
            CertificateCreate(
                organisation_id=organisation.id,  # type: ignore
                intervention_id=intervention_id,
                total_amount=Decimal(total_amount),
                vintage=vintage,
                geography="GB",
                modality="reforestation",
                attributes={"verifier": "fake_verifier", "methodology": "VM0047"},
            ),
            write_session,
        )

    return _create_certificate


@pytest.fixture()
def claim_factory(
    write_session: Session, esdb_client: MagicMock
) -> Callable[..., Claim]:
    """Factory function to claim part of a certificate."""

    def _create_claim(
        certificate: Certificate,
        organisation: Organisation,
        amount: Decimal | str,
    ) -> Claim:
        return issue_claim(
            certificate.id,  # type: ignore
            organisation.id,  # type: ignore
            Decimal(amount),
            write_session,
            esdb_client,
        )

    return _create_claim


@pytest.fixture()
def token_factory() -> Callable[..., str]:
    """Factory function to create bearer tokens for organisations."""

    def _create_token(organisation: Organisation, is_admin: bool = False) -> str:
        return create_access_token(
            {"organisation_id": organisation.id, "is_admin": is_admin}
        )

    return _create_token


@pytest.fixture()
def fake_db_supplier(organisation_factory: Any) -> Organisation:
    return organisation_factory("fake_supplier", supply_chain_level=1)


@pytest.fixture()
def fake_db_manufacturer(organisation_factory: Any) -> Organisation:
    return organisation_factory("fake_manufacturer", supply_chain_level=2)


@pytest.fixture()
def fake_db_retailer(organisation_factory: Any) -> Organisation:
    return organisation_factory("fake_retailer", supply_chain_level=3)


@pytest.fixture()
def fake_db_supplier_partnership(
    partnership_factory: Any,
    fake_db_supplier: Organisation,
    fake_db_manufacturer: Organisation,
) -> Partnership:
    """Active partnership between the level 1 supplier and level 2 manufacturer."""
    return partnership_factory(fake_db_supplier, fake_db_manufacturer)


@pytest.fixture()
def fake_db_manufacturer_partnership(
    partnership_factory: Any,
    fake_db_manufacturer: Organisation,
    fake_db_retailer: Organisation,
) -> Partnership:
    return partnership_factory(fake_db_manufacturer, fake_db_retailer)


@pytest.fixture()
def fake_db_certificate(
    certificate_factory: Any, fake_db_supplier: Organisation
) -> Certificate:
    """A 100 tCO2e certificate of the current vintage held by the supplier."""
    return certificate_factory(fake_db_supplier, "100")


@pytest.fixture()
def admin_token(token_factory: Any, fake_db_supplier: Organisation) -> str:
    return token_factory(fake_db_supplier, is_admin=True)


@pytest.fixture()
def supplier_token(token_factory: Any, fake_db_supplier: Organisation) -> str:
    return token_factory(fake_db_supplier)


@pytest.fixture()
def manufacturer_token(token_factory: Any, fake_db_manufacturer: Organisation) -> str:
    return token_factory(fake_db_manufacturer)
