"""Enum definitions for application constants."""

from enum import Enum


class Channel(str, Enum):
    """Inbound channels a conversation can live on."""
    WHATSAPP = "whatsapp"
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    EMAIL = "email"
    SMS = "sms"


class ConversationStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class DealStatus(str, Enum):
    """Only OPEN deals count toward the one-open-deal-per-contact+category rule."""
    OPEN = "open"
    WON = "won"
    LOST = "lost"
    CLOSED = "closed"


class ArtifactKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    DOCUMENT = "document"


class DedupKeyType(str, Enum):
    """Dedup keys, in lookup priority order."""
    PROVIDER_MESSAGE_ID = "provider_message_id"
    MEDIA_URL = "media_url"
    CONTENT_HASH = "content_hash"
    FILE_SIGNATURE = "file_signature"  # fileName + fileSize, lowest confidence


class AssignmentMethod(str, Enum):
    AUTOMATIC = "automatic_equitable"
    OVERFLOW = "automatic_overflow"
    DEFERRED = "deferred_offline"
    MANUAL = "manual_transfer"


class IngestionStage(str, Enum):
    """Last step an inbound message reached."""
    RECEIVED = "received"
    DEDUP_CHECKED = "dedup_checked"
    DUPLICATE = "duplicate"
    CLASSIFIED = "classified"
    TEAM_RESOLVED = "team_resolved"
    AGENT_ASSIGNED = "agent_assigned"
    DEAL_SYNCED = "deal_synced"
    COMMITTED = "committed"


class IngestionStatus(str, Enum):
    DUPLICATE = "duplicate"
    UNROUTED = "unrouted"
    ROUTED = "routed"
    FAILED = "failed"


class AlertType(str, Enum):
    NO_TEAM_MEMBERS = "no_team_members"
    NO_ONLINE_AGENTS = "no_online_agents"
    ASSIGNMENT_OVERFLOW = "assignment_overflow"
    UNKNOWN_CATEGORY = "unknown_category"


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AlertStatus(str, Enum):
    OPEN = "open"
    RESOLVED = "resolved"
