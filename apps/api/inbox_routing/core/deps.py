"""FastAPI dependencies for database access, routing components and internal auth."""

import hmac
from typing import Generator

from fastapi import Header, HTTPException, Request
from sqlalchemy.orm import Session

from inbox_routing.core.config import settings
from inbox_routing.core.team_registry import TeamRegistry
from inbox_routing.db.session import SessionLocal
from inbox_routing.services.ingestion_service import IngestionOrchestrator


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_registry(request: Request) -> TeamRegistry:
    """Team registry loaded at startup."""
    return request.app.state.registry


def get_orchestrator(request: Request) -> IngestionOrchestrator:
    return request.app.state.orchestrator


def verify_internal_secret(x_internal_secret: str | None = Header(default=None)) -> None:
    """Verify the internal secret header."""
    expected = settings.INTERNAL_SECRET
    if not expected:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if not x_internal_secret or not hmac.compare_digest(x_internal_secret, expected):
        raise HTTPException(status_code=403, detail="Invalid internal secret")
