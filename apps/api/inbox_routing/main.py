"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from inbox_routing.core.config import settings
from inbox_routing.db.session import SessionLocal, engine

logger = logging.getLogger(__name__)


# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,  # Message text and contact data stay out of Sentry
    )
    logging.info("Sentry initialized for error tracking")


# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from inbox_routing.core.rate_limit import limiter


# ============================================================================
# Routing components
# ============================================================================

from inbox_routing.core.team_registry import load_registry
from inbox_routing.services import team_service
from inbox_routing.services.classification_service import TeamClassifier
from inbox_routing.services.ingestion_service import IngestionOrchestrator


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ConfigurationError propagates and aborts startup
    registry = load_registry(settings.ROUTING_CONFIG_PATH or None)
    classifier = TeamClassifier(
        registry,
        min_confidence=settings.ROUTING_MIN_CONFIDENCE,
        unmatched_category=settings.unmatched_category,
    )
    app.state.registry = registry
    app.state.orchestrator = IngestionOrchestrator(
        registry,
        classifier,
        assignment_max_retries=settings.ASSIGNMENT_MAX_RETRIES,
        deal_max_retries=settings.DEAL_SYNC_MAX_RETRIES,
        dedup_timeout_ms=settings.DEDUP_LOOKUP_TIMEOUT_MS,
    )

    if settings.SYNC_TEAMS_ON_STARTUP:
        db = SessionLocal()
        try:
            team_service.sync_teams(db, registry)
        finally:
            db.close()

    logger.info("Routing ready with %s team categories", len(registry))
    yield


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Inbox Routing API",
    description="Inbound message routing and equitable agent assignment",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Internal-Secret"],
)


# ============================================================================
# Routers
# ============================================================================

from inbox_routing.routers import conversations, inbound, internal, teams

app.include_router(inbound.router)
app.include_router(conversations.router)
app.include_router(teams.router)
app.include_router(internal.router)


@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
