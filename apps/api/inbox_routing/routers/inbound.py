"""Inbound message ingestion endpoint (called by transport webhook handlers)."""

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from inbox_routing.core.deps import get_db, get_orchestrator, verify_internal_secret
from inbox_routing.core.rate_limit import limiter, webhook_limit, webhook_limit_disabled
from inbox_routing.db.enums import IngestionStatus
from inbox_routing.schemas.routing import InboundMessage, IngestionResponse
from inbox_routing.services.conversation_service import ConversationNotFoundError
from inbox_routing.services.ingestion_service import IngestionOrchestrator

router = APIRouter(
    prefix="/inbound",
    tags=["inbound"],
    dependencies=[Depends(verify_internal_secret)],
)


@router.post("/messages", response_model=IngestionResponse)
@limiter.limit(webhook_limit, exempt_when=webhook_limit_disabled)
def ingest_message(
    request: Request,
    body: InboundMessage,
    db: Session = Depends(get_db),
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
):
    """
    Ingest one inbound message: dedup, route and sync its deal.

    Duplicates and unrouted messages are successful outcomes. A retryable
    store failure answers 503 with the stage reached.
    """
    try:
        result = orchestrator.handle(db, body.conversation_id, body.text, body.artifact)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")

    response = IngestionResponse(**asdict(result))
    if result.status == IngestionStatus.FAILED:
        return JSONResponse(status_code=503, content=response.model_dump(mode="json"))
    return response
