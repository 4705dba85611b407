"""Pydantic schemas for the routing API."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from inbox_routing.db.enums import IngestionStage, IngestionStatus
from inbox_routing.schemas.artifacts import Artifact, TextArtifact


# =============================================================================
# Ingestion
# =============================================================================


class InboundMessage(BaseModel):
    """Inbound message handed over by a transport webhook handler."""
    conversation_id: UUID
    text: str | None = Field(None, max_length=20000)
    artifact: Artifact = Field(default_factory=TextArtifact)


class IngestionResponse(BaseModel):
    status: IngestionStatus
    stage: IngestionStage
    message_id: UUID | None = None
    duplicate_of: UUID | None = None
    team_category: str | None = None
    agent_id: UUID | None = None
    deal_id: UUID | None = None
    assignment: str | None = None
    confidence: int | None = None
    retryable: bool = False


# =============================================================================
# Conversations
# =============================================================================


class TransferRequest(BaseModel):
    """Manual transfer: bypasses fairness scoring."""
    team_category: str = Field(..., min_length=1, max_length=50)
    agent_id: UUID


class ConversationRead(BaseModel):
    id: UUID
    contact_id: UUID
    channel: str
    status: str
    assigned_team_id: UUID | None
    team_category: str | None
    assigned_agent_id: UUID | None
    assignment_method: str | None
    assigned_at: datetime | None
    last_message_at: datetime | None

    model_config = {"from_attributes": True}


# =============================================================================
# Teams
# =============================================================================


class StageRead(BaseModel):
    id: str
    name: str
    color: str
    order: int


class FunnelRead(BaseModel):
    id: str
    name: str
    category: str
    stages: list[StageRead]


class TeamRead(BaseModel):
    category: str
    name: str
    color: str
    is_active: bool
    max_capacity: int
    priority: int
    auto_assign: bool
    member_count: int = 0


class AgentEquityRead(BaseModel):
    agent_id: UUID
    display_name: str
    is_online: bool
    active_conversations: int
    lifetime_assignments: int
    fairness_score: int
    equity_ratio: float


class EquityStatsRead(BaseModel):
    team_category: str
    total_agents: int
    online_agents: int
    average_assignments: float
    standard_deviation: float
    equity_level: str
    agents: list[AgentEquityRead]


# =============================================================================
# Maintenance
# =============================================================================


class DealRepairRead(BaseModel):
    dry_run: bool
    scanned: int
    moved: int
    moved_by_category: dict[str, int]
    skipped_unknown_category: int


class AlertRead(BaseModel):
    id: UUID
    alert_type: str
    severity: str
    status: str
    title: str
    message: str | None
    scope_key: str | None
    details: dict | None
    occurrence_count: int
    first_seen_at: datetime
    last_seen_at: datetime
    resolved_at: datetime | None

    model_config = {"from_attributes": True}
