"""Conversation actions: manual transfer and close."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from inbox_routing.core.config import settings
from inbox_routing.core.deps import get_db, verify_internal_secret
from inbox_routing.core.errors import TransientStoreError
from inbox_routing.schemas.routing import ConversationRead, TransferRequest
from inbox_routing.services import conversation_service
from inbox_routing.services.assignment_service import AgentNotFoundError, AgentNotInTeamError
from inbox_routing.services.conversation_service import (
    ConversationClosedError,
    ConversationNotFoundError,
)
from inbox_routing.services.team_service import TeamNotFoundError

router = APIRouter(
    prefix="/conversations",
    tags=["conversations"],
    dependencies=[Depends(verify_internal_secret)],
)


@router.post("/{conversation_id}/transfer", response_model=ConversationRead)
def transfer_conversation(
    conversation_id: UUID,
    body: TransferRequest,
    db: Session = Depends(get_db),
):
    """Hand the conversation to a chosen agent, bypassing fairness scoring."""
    try:
        return conversation_service.transfer_conversation(
            db,
            conversation_id,
            body.team_category,
            body.agent_id,
            max_retries=settings.ASSIGNMENT_MAX_RETRIES,
        )
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    except ConversationClosedError:
        raise HTTPException(status_code=409, detail="Conversation is closed")
    except TeamNotFoundError:
        raise HTTPException(status_code=404, detail="Team not found")
    except AgentNotFoundError:
        raise HTTPException(status_code=404, detail="Agent not found")
    except AgentNotInTeamError:
        raise HTTPException(status_code=409, detail="Agent is not a member of this team")
    except TransientStoreError:
        raise HTTPException(status_code=503, detail="Agent counters busy, retry")


@router.post("/{conversation_id}/close", response_model=ConversationRead)
def close_conversation(
    conversation_id: UUID,
    db: Session = Depends(get_db),
):
    try:
        return conversation_service.close_conversation(db, conversation_id)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
