"""
Equitable assignment scheduler.

Picks exactly one agent of a team for a conversation:

- online agents under the team's capacity: lowest fairness score
- every online agent at capacity: lowest fairness score anyway (overflow)
- nobody online: lowest active workload across the team (deferred)
- no members: NoTeamMembersError

Selection is a pure function over a snapshot of agent loads. The counter
write is a single conditional UPDATE on counter_version; when another worker
got there first the snapshot is re-read and selection re-run, a bounded
number of times.
"""

from __future__ import annotations

import logging
import math
import statistics
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Union
from uuid import UUID

from sqlalchemy.orm import Session

from inbox_routing.core.errors import TransientStoreError
from inbox_routing.core.structured_logging import build_log_context
from inbox_routing.db.models import Agent, Team
from inbox_routing.db.types import as_utc, utc_now
from inbox_routing.services import routing_store
from inbox_routing.services.presence_service import DatabasePresence, PresenceService

logger = logging.getLogger(__name__)

NO_ONLINE_AGENTS = "no_online_agents"
LIFETIME_WEIGHT = 10
TIME_PENALTY_HOURS = 10
NEVER_ASSIGNED = datetime.min.replace(tzinfo=timezone.utc)


class AssignmentError(Exception):
    """Base exception for assignment errors."""

    pass


class NoTeamMembersError(AssignmentError):
    """Team has no active members to assign to."""

    pass


class AgentNotFoundError(AssignmentError):
    """Agent not found or inactive."""

    pass


class AgentNotInTeamError(AssignmentError):
    """Agent is not an active member of the team."""

    pass


# =============================================================================
# Outcomes
# =============================================================================


@dataclass(frozen=True)
class Assigned:
    agent_id: UUID
    score: int


@dataclass(frozen=True)
class AssignedUnderOverflow:
    """All online agents were at capacity; balance kept anyway."""
    agent_id: UUID
    score: int


@dataclass(frozen=True)
class Deferred:
    """Pre-assigned to an agent who is not online; claimed on reconnect."""
    agent_id: UUID
    reason: str = NO_ONLINE_AGENTS


AssignmentOutcome = Union[Assigned, AssignedUnderOverflow, Deferred]


@dataclass(frozen=True)
class AgentLoad:
    """Point-in-time view of one candidate agent."""
    agent_id: UUID
    display_name: str
    is_online: bool
    active_conversations: int
    lifetime_assignments: int
    last_assigned_at: datetime | None
    counter_version: int

    @classmethod
    def from_agent(cls, agent: Agent, is_online: bool) -> "AgentLoad":
        return cls(
            agent_id=agent.id,
            display_name=agent.display_name,
            is_online=is_online,
            active_conversations=agent.active_conversations,
            lifetime_assignments=agent.lifetime_assignments,
            last_assigned_at=as_utc(agent.last_assigned_at),
            counter_version=agent.counter_version,
        )


# =============================================================================
# Scoring & Selection
# =============================================================================


def time_penalty(last_assigned_at: datetime | None, now: datetime) -> int:
    """
    Up to TIME_PENALTY_HOURS points for a recent assignment, one less per full hour.

    Agents never assigned carry no penalty.
    """
    if last_assigned_at is None:
        return 0
    hours = math.floor((now - as_utc(last_assigned_at)).total_seconds() / 3600)
    return max(0, TIME_PENALTY_HOURS - max(hours, 0))


def fairness_score(load: AgentLoad, now: datetime) -> int:
    """Lower is more eligible."""
    return (
        load.lifetime_assignments * LIFETIME_WEIGHT
        + load.active_conversations
        + time_penalty(load.last_assigned_at, now)
    )


def select_agent(
    loads: list[AgentLoad],
    max_capacity: int,
    now: datetime,
) -> AssignmentOutcome:
    """Pick an agent from a snapshot. Pure; raises NoTeamMembersError on an empty team."""
    if not loads:
        raise NoTeamMembersError("Team has no active members")

    online = [load for load in loads if load.is_online]
    if online:
        # Ties: whoever waited longest since the last assignment, then id
        def fairness_key(load: AgentLoad) -> tuple:
            return (
                fairness_score(load, now),
                load.last_assigned_at or NEVER_ASSIGNED,
                str(load.agent_id),
            )

        available = [load for load in online if load.active_conversations < max_capacity]
        if available:
            chosen = min(available, key=fairness_key)
            return Assigned(agent_id=chosen.agent_id, score=fairness_score(chosen, now))

        chosen = min(online, key=fairness_key)
        return AssignedUnderOverflow(agent_id=chosen.agent_id, score=fairness_score(chosen, now))

    chosen = min(
        loads,
        key=lambda load: (
            load.active_conversations,
            load.last_assigned_at or NEVER_ASSIGNED,
            str(load.agent_id),
        ),
    )
    return Deferred(agent_id=chosen.agent_id)


def load_team_snapshot(
    db: Session,
    team_id: UUID,
    presence: PresenceService | None = None,
) -> list[AgentLoad]:
    presence = presence or DatabasePresence(db)
    return [
        AgentLoad.from_agent(agent, presence.is_online(agent.id))
        for agent in routing_store.find_agents_by_team(db, team_id)
    ]


# =============================================================================
# Assignment
# =============================================================================


def assign(
    db: Session,
    conversation_id: UUID,
    team_id: UUID,
    *,
    max_capacity: int,
    presence: PresenceService | None = None,
    max_retries: int = 3,
    now: datetime | None = None,
) -> AssignmentOutcome:
    """
    Choose an agent and record the assignment on their counters.

    Counters move for every outcome, deferred included, so a pre-assigned
    conversation counts against the agent it waits for. Does not commit.

    Raises:
        NoTeamMembersError: team has no active members
        TransientStoreError: counters kept moving under us for max_retries attempts
    """
    attempts = max(1, max_retries)
    for attempt in range(1, attempts + 1):
        current = now or utc_now()
        loads = load_team_snapshot(db, team_id, presence)
        outcome = select_agent(loads, max_capacity, current)
        expected = next(load for load in loads if load.agent_id == outcome.agent_id)

        if routing_store.update_agent_counters(
            db, outcome.agent_id, expected.counter_version, current
        ):
            logger.info(
                "Assigned conversation (%s, attempt %s)",
                type(outcome).__name__,
                attempt,
                extra=build_log_context(
                    conversation_id=conversation_id,
                    agent_id=outcome.agent_id,
                    stage="agent_assigned",
                ),
            )
            return outcome

        logger.info(
            "Agent counters changed concurrently, retrying (attempt %s/%s)",
            attempt,
            attempts,
            extra=build_log_context(conversation_id=conversation_id, agent_id=outcome.agent_id),
        )

    raise TransientStoreError(
        f"Agent counters contended for team {team_id} after {attempts} attempts"
    )


def assign_manually(
    db: Session,
    conversation_id: UUID,
    team_id: UUID,
    agent_id: UUID,
    *,
    max_retries: int = 3,
    now: datetime | None = None,
) -> Assigned:
    """
    Assign a pre-chosen agent, bypassing fairness scoring.

    Same counter increments as the automatic path. Does not commit.
    """
    agent = routing_store.get_agent(db, agent_id)
    if not agent or not agent.is_active:
        raise AgentNotFoundError(f"Agent {agent_id} not found")
    if not routing_store.is_team_member(db, team_id, agent_id):
        raise AgentNotInTeamError(f"Agent {agent_id} is not a member of team {team_id}")

    attempts = max(1, max_retries)
    for _ in range(attempts):
        current = now or utc_now()
        load = AgentLoad.from_agent(agent, agent.is_online)
        if routing_store.update_agent_counters(db, agent_id, load.counter_version, current):
            logger.info(
                "Manually assigned conversation",
                extra=build_log_context(
                    conversation_id=conversation_id, agent_id=agent_id, stage="agent_assigned"
                ),
            )
            return Assigned(agent_id=agent_id, score=fairness_score(load, current))
        agent = routing_store.get_agent(db, agent_id)
        if agent is None:
            raise AgentNotFoundError(f"Agent {agent_id} not found")

    raise TransientStoreError(f"Agent {agent_id} counters contended after {attempts} attempts")


# =============================================================================
# Equity Statistics
# =============================================================================


def equity_level(standard_deviation: float) -> str:
    if standard_deviation > 5:
        return "poor"
    if standard_deviation > 3:
        return "moderate"
    if standard_deviation > 1.5:
        return "good"
    return "excellent"


def get_equity_stats(
    db: Session,
    team: Team,
    presence: PresenceService | None = None,
    now: datetime | None = None,
) -> dict:
    """Distribution of lifetime assignments across a team's members."""
    current = now or utc_now()
    loads = load_team_snapshot(db, team.id, presence)
    assignments = [load.lifetime_assignments for load in loads]
    average = statistics.fmean(assignments) if assignments else 0.0
    deviation = statistics.pstdev(assignments) if assignments else 0.0

    agents = []
    for load in loads:
        agents.append(
            {
                "agent_id": load.agent_id,
                "display_name": load.display_name,
                "is_online": load.is_online,
                "active_conversations": load.active_conversations,
                "lifetime_assignments": load.lifetime_assignments,
                "fairness_score": fairness_score(load, current),
                "equity_ratio": round(load.lifetime_assignments / average, 2) if average else 1.0,
            }
        )

    return {
        "team_category": team.category,
        "total_agents": len(loads),
        "online_agents": sum(1 for load in loads if load.is_online),
        "average_assignments": round(average, 2),
        "standard_deviation": round(deviation, 2),
        "equity_level": equity_level(deviation),
        "agents": agents,
    }
