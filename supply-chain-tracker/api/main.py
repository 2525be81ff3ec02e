"""
Agricultural Supply Chain API - Main Application.

FastAPI application with CORS enabled for frontend communication.
Run from this directory with: uvicorn api.main:app --port 5000

Environment variables:
- CORS_ORIGINS: comma-separated allowed origins (default http://localhost:3000)
- LOG_LEVEL: logging level (default INFO)
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from api.dependencies import get_gateway, get_mirror, shutdown_service
from api.responses import error_response, failure
from domain.errors import SupplyChainError
from domain.time import utc_now
from repositories.client import MIRROR_TABLES
from services.ledger_gateway import LedgerGateway
from services.mirror_sync import MirrorSynchronizer

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "Agricultural Supply Chain API"


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        yield
    finally:
        shutdown_service()


# Create FastAPI application
app = FastAPI(
    title=SERVICE_NAME,
    description="REST API for tracking agricultural products on the blockchain and its database mirror",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

cors_origins = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.exception_handler(SupplyChainError)
def handle_supply_chain_error(request: Request, exc: SupplyChainError):
    return error_response(exc)


@app.exception_handler(RequestValidationError)
def handle_request_validation_error(request: Request, exc: RequestValidationError):
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    message = "Invalid request"
    if fields:
        message += ": " + ", ".join(fields)
    return failure(400, message, title="Invalid Request")


@app.get("/health", tags=["Health"])
def health_check(
    mirror: MirrorSynchronizer = Depends(get_mirror),
    gateway: LedgerGateway = Depends(get_gateway),
):
    """
    Health check endpoint.

    Probes the mirror database and asks the ledger gateway whether it is
    connected. Returns 500 when the database is down.
    """
    database_ok = mirror.probe()
    ledger_ok = gateway.is_connected()
    body = {
        "status": "OK" if database_ok else "ERROR",
        "service": SERVICE_NAME,
        "version": __version__,
        "database": "Supabase Connected" if database_ok else "Connection Failed",
        "blockchain": "Connected" if ledger_ok else "Disconnected",
        "timestamp": utc_now().isoformat(),
    }
    if not database_ok:
        return failure(500, "Database connection failed", title="Database Offline", **body)
    return body


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Agricultural Supply Chain Backend Server is running!",
        "version": __version__,
        "database_tables": list(MIRROR_TABLES),
        "docs": "/docs",
        "health": "/health",
        "timestamp": utc_now().isoformat(),
    }


# Import and include routers
from api.routers import database, ledger, products, records

app.include_router(products.router, prefix="/api", tags=["Products"])
app.include_router(records.router, prefix="/api", tags=["Records"])
app.include_router(database.router, prefix="/api", tags=["Database"])
app.include_router(ledger.router, prefix="/api/ledger", tags=["Ledger"])
