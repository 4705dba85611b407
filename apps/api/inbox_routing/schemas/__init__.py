"""Pydantic schemas for API request/response models."""

from inbox_routing.schemas.artifacts import (
    Artifact,
    AudioArtifact,
    DocumentArtifact,
    ImageArtifact,
    TextArtifact,
    VideoArtifact,
)
from inbox_routing.schemas.routing import (
    AlertRead,
    ConversationRead,
    DealRepairRead,
    EquityStatsRead,
    FunnelRead,
    InboundMessage,
    IngestionResponse,
    TeamRead,
    TransferRequest,
)

__all__ = [
    "Artifact",
    "AudioArtifact",
    "DocumentArtifact",
    "ImageArtifact",
    "TextArtifact",
    "VideoArtifact",
    "AlertRead",
    "ConversationRead",
    "DealRepairRead",
    "EquityStatsRead",
    "FunnelRead",
    "InboundMessage",
    "IngestionResponse",
    "TeamRead",
    "TransferRequest",
]
