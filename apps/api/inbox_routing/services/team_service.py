"""Team rows, agents and team membership."""

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inbox_routing.core.team_registry import TeamDefinition, TeamRegistry
from inbox_routing.db.models import Agent, Team, TeamMember

logger = logging.getLogger(__name__)


class TeamServiceError(Exception):
    """Base exception for team service errors."""

    pass


class TeamNotFoundError(TeamServiceError):
    """Team not found."""

    pass


class TeamMemberExistsError(TeamServiceError):
    """Agent is already a member of the team."""

    pass


class TeamMemberNotFoundError(TeamServiceError):
    """Team member not found."""

    pass


class DuplicateAgentEmailError(TeamServiceError):
    """Agent email already exists."""

    pass


# =============================================================================
# Teams
# =============================================================================


def _apply_definition(team: Team, definition: TeamDefinition) -> None:
    team.name = definition.name
    team.color = definition.color
    team.is_active = definition.is_active
    team.max_capacity = definition.max_capacity
    team.priority = definition.priority
    team.auto_assign = definition.auto_assign


def sync_teams(db: Session, registry: TeamRegistry, *, _retried: bool = False) -> dict[str, int]:
    """
    Upsert one team row per registry category.

    Rows whose category is no longer in the registry are deactivated, never
    deleted (conversations still reference them).
    """
    existing = {team.category: team for team in db.execute(select(Team)).scalars().all()}
    created = updated = deactivated = 0

    for definition in registry.teams:
        team = existing.get(definition.category)
        if team is None:
            team = Team(category=definition.category)
            db.add(team)
            created += 1
        else:
            updated += 1
        _apply_definition(team, definition)

    for category, team in existing.items():
        if category not in registry and team.is_active:
            team.is_active = False
            deactivated += 1

    try:
        db.commit()
    except IntegrityError:
        # Race condition: another process synced first
        db.rollback()
        if _retried:
            raise
        logger.warning("Team sync raced with another writer; retrying once")
        return sync_teams(db, registry, _retried=True)

    logger.info(
        "Synced teams: created=%s updated=%s deactivated=%s", created, updated, deactivated
    )
    return {"created": created, "updated": updated, "deactivated": deactivated}


def get_team_by_category(db: Session, category: str) -> Team:
    team = db.scalar(select(Team).where(Team.category == category.strip().lower()))
    if not team:
        raise TeamNotFoundError(f"Team '{category}' not found")
    return team


def list_teams(db: Session) -> list[tuple[Team, int]]:
    """Teams by priority with their active member counts."""
    member_count = (
        select(func.count(TeamMember.id))
        .where(TeamMember.team_id == Team.id, TeamMember.is_active.is_(True))
        .correlate(Team)
        .scalar_subquery()
    )
    rows = db.execute(
        select(Team, member_count).order_by(Team.priority, Team.category)
    ).all()
    return [(team, count) for team, count in rows]


# =============================================================================
# Agents
# =============================================================================


def get_agent_by_email(db: Session, email: str) -> Agent | None:
    return db.scalar(select(Agent).where(Agent.email == email.strip().lower()))


def create_agent(db: Session, email: str, display_name: str) -> Agent:
    agent = Agent(email=email.strip().lower(), display_name=display_name.strip())
    db.add(agent)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateAgentEmailError(f"Agent '{email}' already exists")
    db.refresh(agent)
    return agent


# =============================================================================
# Membership
# =============================================================================


def add_team_member(db: Session, team_id: UUID, agent_id: UUID) -> TeamMember:
    """Add an agent to a team (reactivates a previous membership)."""
    existing = (
        db.query(TeamMember)
        .filter(
            TeamMember.team_id == team_id,
            TeamMember.agent_id == agent_id,
        )
        .first()
    )
    if existing:
        if existing.is_active:
            raise TeamMemberExistsError("Agent is already a member of this team")
        existing.is_active = True
        db.commit()
        db.refresh(existing)
        return existing

    member = TeamMember(team_id=team_id, agent_id=agent_id)
    db.add(member)
    db.commit()
    db.refresh(member)
    return member


def remove_team_member(db: Session, team_id: UUID, agent_id: UUID) -> None:
    """Remove an agent from a team."""
    result = (
        db.query(TeamMember)
        .filter(
            TeamMember.team_id == team_id,
            TeamMember.agent_id == agent_id,
        )
        .delete()
    )

    if not result:
        raise TeamMemberNotFoundError("Member not found")

    db.commit()
