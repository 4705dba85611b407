"""
Store access for the routing core.

Thin query helpers over the ORM. Callers own the transaction: nothing here
commits. Agent counters are only changed through update_agent_counters and
release_agent_slot, both single conditional UPDATE statements.
"""

import hashlib
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from inbox_routing.db.enums import ConversationStatus, DealStatus, DedupKeyType
from inbox_routing.db.models import (
    Agent,
    Conversation,
    Deal,
    DedupRecord,
    Message,
    Team,
    TeamMember,
)


def key_digest(value: str) -> str:
    """Fixed-width digest used to index dedup key values."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


# =============================================================================
# Conversations & Messages
# =============================================================================


def find_conversation(
    db: Session,
    conversation_id: UUID,
    *,
    for_update: bool = False,
) -> Conversation | None:
    stmt = select(Conversation).where(Conversation.id == conversation_id)
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt.execution_options(populate_existing=True)).scalar_one_or_none()


def find_open_conversation(db: Session, contact_id: UUID, channel: str) -> Conversation | None:
    stmt = select(Conversation).where(
        Conversation.contact_id == contact_id,
        Conversation.channel == channel,
        Conversation.status == ConversationStatus.OPEN.value,
    )
    return db.scalar(stmt)


def update_conversation(db: Session, conversation: Conversation, **values) -> Conversation:
    for field, value in values.items():
        setattr(conversation, field, value)
    db.flush()
    return conversation


def create_message(
    db: Session,
    conversation_id: UUID,
    kind: str,
    content: str | None,
    provider_message_id: str | None = None,
    media_url: str | None = None,
) -> Message:
    message = Message(
        conversation_id=conversation_id,
        kind=kind,
        content=content,
        provider_message_id=provider_message_id,
        media_url=media_url,
    )
    db.add(message)
    db.flush()
    return message


# =============================================================================
# Dedup Records
# =============================================================================


def find_dedup_record(
    db: Session,
    conversation_id: UUID,
    key_type: DedupKeyType,
    value: str,
) -> DedupRecord | None:
    return db.scalar(
        select(DedupRecord).where(
            DedupRecord.conversation_id == conversation_id,
            DedupRecord.key_type == key_type.value,
            DedupRecord.key_digest == key_digest(value),
        )
    )


def insert_dedup_record(
    db: Session,
    conversation_id: UUID,
    key_type: DedupKeyType,
    value: str,
    message_id: UUID,
) -> DedupRecord:
    """Insert a dedup key. Raises IntegrityError if the key already exists."""
    record = DedupRecord(
        conversation_id=conversation_id,
        key_type=key_type.value,
        key_digest=key_digest(value),
        key_value=value,
        message_id=message_id,
    )
    db.add(record)
    db.flush()
    return record


# =============================================================================
# Teams & Agents
# =============================================================================


def _expire_cached_agent(db: Session, agent_id: UUID) -> None:
    """Drop the in-session copy of an agent after a counter UPDATE."""
    agent = db.identity_map.get(db.identity_key(Agent, agent_id))
    if agent is not None:
        db.expire(agent)


def find_team_by_category(db: Session, category: str) -> Team | None:
    return db.scalar(select(Team).where(Team.category == category))


def get_team(db: Session, team_id: UUID) -> Team | None:
    return db.get(Team, team_id)


def get_agent(db: Session, agent_id: UUID) -> Agent | None:
    return db.execute(
        select(Agent).where(Agent.id == agent_id).execution_options(populate_existing=True)
    ).scalar_one_or_none()


def is_team_member(db: Session, team_id: UUID, agent_id: UUID) -> bool:
    member_id = db.scalar(
        select(TeamMember.id).where(
            TeamMember.team_id == team_id,
            TeamMember.agent_id == agent_id,
            TeamMember.is_active.is_(True),
        )
    )
    return member_id is not None


def find_agents_by_team(db: Session, team_id: UUID) -> list[Agent]:
    """Active agents with an active membership, counters read fresh from the store."""
    stmt = (
        select(Agent)
        .join(TeamMember, TeamMember.agent_id == Agent.id)
        .where(
            TeamMember.team_id == team_id,
            TeamMember.is_active.is_(True),
            Agent.is_active.is_(True),
        )
        .order_by(Agent.created_at, Agent.id)
        .execution_options(populate_existing=True)
    )
    return list(db.execute(stmt).scalars().all())


def update_agent_counters(
    db: Session,
    agent_id: UUID,
    expected_version: int,
    now: datetime,
) -> bool:
    """
    Record one assignment for an agent if nobody else has since.

    Returns False when counter_version moved on (the caller re-reads and
    re-selects).
    """
    result = db.execute(
        update(Agent)
        .where(Agent.id == agent_id, Agent.counter_version == expected_version)
        .values(
            lifetime_assignments=Agent.lifetime_assignments + 1,
            active_conversations=Agent.active_conversations + 1,
            last_assigned_at=now,
            counter_version=Agent.counter_version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    _expire_cached_agent(db, agent_id)
    return result.rowcount == 1


def release_agent_slot(db: Session, agent_id: UUID) -> bool:
    """Give back one active-conversation slot (never below zero)."""
    result = db.execute(
        update(Agent)
        .where(Agent.id == agent_id, Agent.active_conversations > 0)
        .values(
            active_conversations=Agent.active_conversations - 1,
            counter_version=Agent.counter_version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    _expire_cached_agent(db, agent_id)
    return result.rowcount == 1


# =============================================================================
# Deals
# =============================================================================


def find_open_deal(db: Session, contact_id: UUID, team_category: str) -> Deal | None:
    return db.scalar(
        select(Deal).where(
            Deal.contact_id == contact_id,
            Deal.team_category == team_category,
            Deal.status == DealStatus.OPEN.value,
        )
    )


def create_deal(
    db: Session,
    *,
    contact_id: UUID,
    team_category: str,
    funnel_id: str,
    stage_id: str,
    name: str,
    assigned_agent_id: UUID | None = None,
) -> Deal:
    """Insert an open deal. Raises IntegrityError if one already exists."""
    deal = Deal(
        contact_id=contact_id,
        team_category=team_category,
        funnel_id=funnel_id,
        stage_id=stage_id,
        name=name,
        status=DealStatus.OPEN.value,
        assigned_agent_id=assigned_agent_id,
    )
    db.add(deal)
    db.flush()
    return deal
