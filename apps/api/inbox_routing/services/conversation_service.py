"""Conversation upsert, manual transfer and close."""

import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inbox_routing.core.structured_logging import build_log_context
from inbox_routing.db.enums import AssignmentMethod, Channel, ConversationStatus
from inbox_routing.db.models import Contact, Conversation
from inbox_routing.db.types import utc_now
from inbox_routing.services import assignment_service, routing_store
from inbox_routing.services.team_service import TeamNotFoundError

logger = logging.getLogger(__name__)


class ConversationError(Exception):
    """Base exception for conversation errors."""

    pass


class ConversationNotFoundError(ConversationError):
    """Conversation not found."""

    pass


class ContactNotFoundError(ConversationError):
    """Contact not found."""

    pass


class ConversationClosedError(ConversationError):
    """Conversation is closed and can no longer be reassigned."""

    pass


def get_or_create_conversation(db: Session, contact_id: UUID, channel: Channel) -> Conversation:
    """Open conversation for a contact+channel pair, created on first contact."""
    if not db.get(Contact, contact_id):
        raise ContactNotFoundError(f"Contact {contact_id} not found")

    conversation = routing_store.find_open_conversation(db, contact_id, channel.value)
    if conversation:
        return conversation

    conversation = Conversation(contact_id=contact_id, channel=channel.value)
    db.add(conversation)
    try:
        db.commit()
    except IntegrityError:
        # Concurrent first message for the same contact+channel won the insert
        db.rollback()
        conversation = routing_store.find_open_conversation(db, contact_id, channel.value)
        if conversation:
            return conversation
        raise
    db.refresh(conversation)
    return conversation


def transfer_conversation(
    db: Session,
    conversation_id: UUID,
    team_category: str,
    agent_id: UUID,
    *,
    max_retries: int = 3,
) -> Conversation:
    """
    Manually hand a conversation to a chosen agent, possibly in another team.

    The new agent's counters move as for an automatic assignment and the
    previous agent gets its active slot back. Deals are left as they are.

    Raises:
        ConversationNotFoundError, ConversationClosedError, TeamNotFoundError,
        AgentNotFoundError, AgentNotInTeamError
    """
    conversation = routing_store.find_conversation(db, conversation_id, for_update=True)
    if not conversation:
        raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
    if conversation.status == ConversationStatus.CLOSED.value:
        db.rollback()
        raise ConversationClosedError(f"Conversation {conversation_id} is closed")

    team = routing_store.find_team_by_category(db, team_category.strip().lower())
    if not team or not team.is_active:
        raise TeamNotFoundError(f"Team '{team_category}' not found")

    previous_agent_id = conversation.assigned_agent_id
    try:
        if previous_agent_id != agent_id:
            assignment_service.assign_manually(
                db, conversation.id, team.id, agent_id, max_retries=max_retries
            )
            if previous_agent_id:
                routing_store.release_agent_slot(db, previous_agent_id)
        elif not routing_store.is_team_member(db, team.id, agent_id):
            raise assignment_service.AgentNotInTeamError(
                f"Agent {agent_id} is not a member of team {team.id}"
            )

        routing_store.update_conversation(
            db,
            conversation,
            assigned_team_id=team.id,
            team_category=team.category,
            assigned_agent_id=agent_id,
            assignment_method=AssignmentMethod.MANUAL.value,
            assigned_at=utc_now(),
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Conversation transferred manually",
        extra=build_log_context(
            conversation_id=conversation_id, team_category=team.category, agent_id=agent_id
        ),
    )
    db.refresh(conversation)
    return conversation


def close_conversation(db: Session, conversation_id: UUID) -> Conversation:
    """Close a conversation and give the agent's active slot back."""
    conversation = routing_store.find_conversation(db, conversation_id, for_update=True)
    if not conversation:
        raise ConversationNotFoundError(f"Conversation {conversation_id} not found")

    if conversation.status == ConversationStatus.CLOSED.value:
        db.rollback()
        return conversation

    if conversation.assigned_agent_id:
        routing_store.release_agent_slot(db, conversation.assigned_agent_id)
    routing_store.update_conversation(db, conversation, status=ConversationStatus.CLOSED.value)
    db.commit()
    db.refresh(conversation)
    return conversation
