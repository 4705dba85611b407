"""Agent presence lookup used by the assignment scheduler."""

from typing import Protocol
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from inbox_routing.db.models import Agent


class PresenceService(Protocol):
    def is_online(self, agent_id: UUID) -> bool: ...


class DatabasePresence:
    """Presence as last written to agents.is_online, read inside the caller's transaction."""

    def __init__(self, db: Session):
        self.db = db

    def is_online(self, agent_id: UUID) -> bool:
        agent = self.db.get(Agent, agent_id)
        return bool(agent and agent.is_online)


class StaticPresence:
    """Fixed set of online agents (CLI dry runs, tests)."""

    def __init__(self, online: set[UUID] | None = None):
        self.online = set(online or ())

    def is_online(self, agent_id: UUID) -> bool:
        return agent_id in self.online


def set_presence(db: Session, agent_id: UUID, is_online: bool) -> bool:
    """Persist an agent's online flag. Returns False for unknown agents."""
    result = db.execute(
        update(Agent)
        .where(Agent.id == agent_id)
        .values(is_online=is_online)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1
