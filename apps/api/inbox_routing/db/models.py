"""SQLAlchemy ORM models for inbox routing."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inbox_routing.db.base import Base
from inbox_routing.db.enums import (
    AlertSeverity,
    AlertStatus,
    ConversationStatus,
    DealStatus,
)
from inbox_routing.db.types import utc_now


# =============================================================================
# Contacts, Teams & Agents
# =============================================================================


class Contact(Base):
    """External person reaching us on one or more channels."""

    __tablename__ = "contacts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utc_now, server_default=func.now(), nullable=False
    )


class Team(Base):
    """
    Routing bucket (macrosetor), one row per registry category.

    Routing metadata mirrors the registry (synced by team_service.sync_teams);
    the row exists so conversations and memberships have something to point at.
    """

    __tablename__ = "teams"
    __table_args__ = (UniqueConstraint("category", name="uq_team_category"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(20), default="#6B7280", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    max_capacity: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=100, nullable=False)
    auto_assign: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=utc_now, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, server_default=func.now(), onupdate=utc_now, nullable=False
    )

    members: Mapped[list["TeamMember"]] = relationship(
        back_populates="team",
        cascade="all, delete-orphan",
    )


class Agent(Base):
    """
    Human user eligible for assignment.

    Counters are only written through a conditional UPDATE guarded by
    counter_version, never by read-modify-write on a loaded object.
    """

    __tablename__ = "agents"
    __table_args__ = (UniqueConstraint("email", name="uq_agent_email"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_online: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    active_conversations: Mapped[int] = mapped_column(
        Integer, default=0, server_default=text("0"), nullable=False
    )
    lifetime_assignments: Mapped[int] = mapped_column(
        Integer, default=0, server_default=text("0"), nullable=False
    )
    last_assigned_at: Mapped[datetime | None] = mapped_column(nullable=True)
    counter_version: Mapped[int] = mapped_column(
        Integer, default=1, server_default=text("1"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        default=utc_now, server_default=func.now(), nullable=False
    )

    memberships: Mapped[list["TeamMember"]] = relationship(back_populates="agent")


class TeamMember(Base):
    """Team membership - only members are assignment candidates."""

    __tablename__ = "team_members"
    __table_args__ = (
        UniqueConstraint("team_id", "agent_id", name="uq_team_member"),
        Index("idx_team_members_agent", "agent_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    team_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False
    )
    agent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=utc_now, server_default=func.now(), nullable=False
    )

    team: Mapped["Team"] = relationship(back_populates="members")
    agent: Mapped["Agent"] = relationship(back_populates="memberships")


# =============================================================================
# Conversations & Messages
# =============================================================================


class Conversation(Base):
    """
    Ongoing exchange with one contact on one channel.

    assigned_team_id is never cleared by routing; only a manual transfer
    changes it.
    """

    __tablename__ = "conversations"
    __table_args__ = (
        Index("idx_conversations_contact_channel", "contact_id", "channel", "status"),
        # One open conversation per contact+channel
        Index(
            "uq_conversations_open_contact_channel",
            "contact_id",
            "channel",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
        Index("idx_conversations_agent_status", "assigned_agent_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contact_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False
    )
    channel: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=ConversationStatus.OPEN.value, nullable=False
    )

    assigned_team_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True
    )
    team_category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    assigned_agent_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("agents.id", ondelete="SET NULL"), nullable=True
    )
    assignment_method: Mapped[str | None] = mapped_column(String(30), nullable=True)
    assigned_at: Mapped[datetime | None] = mapped_column(nullable=True)

    last_message_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utc_now, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, server_default=func.now(), onupdate=utc_now, nullable=False
    )

    contact: Mapped["Contact"] = relationship()


class Message(Base):
    """Inbound message as recorded by ingestion."""

    __tablename__ = "messages"
    __table_args__ = (Index("idx_messages_conversation_created", "conversation_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    provider_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    media_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utc_now, server_default=func.now(), nullable=False
    )


class DedupRecord(Base):
    """
    Marker that an artifact identity was already ingested for a conversation.

    Keyed by a sha256 digest of the raw value so long media URLs index cleanly.
    Records are never updated.
    """

    __tablename__ = "dedup_records"
    __table_args__ = (
        UniqueConstraint(
            "conversation_id", "key_type", "key_digest", name="uq_dedup_conversation_key"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    key_type: Mapped[str] = mapped_column(String(30), nullable=False)
    key_digest: Mapped[str] = mapped_column(String(64), nullable=False)
    key_value: Mapped[str] = mapped_column(Text, nullable=False)
    message_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utc_now, server_default=func.now(), nullable=False
    )


# =============================================================================
# Deals
# =============================================================================


class Deal(Base):
    """
    Pipeline record for one contact in one team category.

    At most one OPEN deal per (contact, category), enforced by a partial
    unique index so find-or-create never races into a duplicate.
    """

    __tablename__ = "deals"
    __table_args__ = (
        Index(
            "uq_deals_open_contact_category",
            "contact_id",
            "team_category",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
        Index("idx_deals_category_stage", "team_category", "stage_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contact_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    team_category: Mapped[str] = mapped_column(String(50), nullable=False)
    funnel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    stage_id: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=DealStatus.OPEN.value, nullable=False
    )
    assigned_agent_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("agents.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utc_now, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, server_default=func.now(), onupdate=utc_now, nullable=False
    )


# =============================================================================
# Operational Alerts
# =============================================================================


class RoutingAlert(Base):
    """
    Deduplicated routing alerts for operators.

    Alerts are grouped by dedupe_key (fingerprint hash).
    Occurrence count tracks how many times the same issue occurred.
    """

    __tablename__ = "routing_alerts"
    __table_args__ = (
        UniqueConstraint("dedupe_key", name="uq_routing_alerts_dedupe"),
        Index("ix_routing_alerts_status", "status", "severity"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    dedupe_key: Mapped[str] = mapped_column(String(64), nullable=False)
    scope_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    alert_type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(
        String(20), default=AlertSeverity.ERROR.value, nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), default=AlertStatus.OPEN.value, nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    occurrence_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    first_seen_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    last_seen_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
