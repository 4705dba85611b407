"""Structured logging helpers (PII-safe)."""

from typing import Any
from uuid import UUID


def build_log_context(
    *,
    conversation_id: UUID | str | None = None,
    message_id: UUID | str | None = None,
    team_category: str | None = None,
    agent_id: UUID | str | None = None,
    stage: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict. Message text never goes in here."""
    context: dict[str, Any] = {}
    if conversation_id:
        context["conversation_id"] = str(conversation_id)
    if message_id:
        context["message_id"] = str(message_id)
    if team_category:
        context["team_category"] = team_category
    if agent_id:
        context["agent_id"] = str(agent_id)
    if stage:
        context["stage"] = stage
    return context
