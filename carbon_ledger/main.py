from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .certificate.routes import router as certificate_router
from .claim.routes import router as claim_router
from .core.database.db import get_db_name_to_client
from .core.error_handling import (
    general_exception_handler,
    http_exception_handler,
    ledger_error_handler,
    validation_exception_handler,
)
from .core.errors import LedgerError
from .core.models.base import LoggingLevelRequest
from .logging_config import apply_log_level, logger
from .organisation.routes import router as organisation_router
from .settings import settings
from .transfer.routes import router as transfer_router

tags_metadata = [
    {
        "name": "Organisations",
        "description": "Organisations, their supply-chain levels and the partnerships that permit transfers between them.",
    },
    {
        "name": "Certificates",
        "description": "Verified emission reductions, with their balances and transfer lineage.",
    },
    {
        "name": "Claims",
        "description": "Ownership assertions over part of a certificate, valid until the claim window of the vintage closes.",
    },
    {
        "name": "Transfers",
        "description": "Movement of claimed amounts downstream between partner organisations.",
    },
]

origins = [
    "http://localhost:8080",
    "http://127.0.0.1:8080",
    "http://localhost:3000",
]
origins.extend(settings.cors_origins)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("Starting up application...")
    if settings.ENVIRONMENT == "LOCAL":
        get_db_name_to_client()["db_write"].create_tables()
        logger.info("Local database tables created")
    logger.info("Application startup complete")
    yield
    logger.info("Shutting down application...")


app = FastAPI(
    openapi_tags=tags_metadata,
    title="Carbon Claims Ledger API",
    description="Issuance, claiming and supply-chain transfer of emission reduction certificates.",
    version="1.0",
    docs_url="/docs",
    dependencies=[Depends(get_db_name_to_client)],
    lifespan=lifespan,
)

app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin"],
)

app.add_exception_handler(LedgerError, ledger_error_handler)  # type: ignore
app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore
app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore
app.add_exception_handler(Exception, general_exception_handler)

app.include_router(organisation_router, prefix="/organisation")
app.include_router(certificate_router, prefix="/certificate")
app.include_router(claim_router, prefix="/claim")
app.include_router(transfer_router, prefix="/transfer")


@app.get("/health", tags=["Core"])
async def health():
    return {"status": "ok", "environment": settings.ENVIRONMENT}


@app.post("/change_log_level", tags=["Core"])
async def change_log_level_endpoint(request: LoggingLevelRequest):
    """Change the logging level at runtime for the ledger and server loggers."""
    logger_status = apply_log_level(request.level.value)
    logger.warning(f"Log level changed to {request.level.value}")
    return {
        "message": f"Log level changed to {request.level.value}",
        "logger_status": logger_status,
    }
