"""Team registry, funnel and equity endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from inbox_routing.core.deps import get_db, get_registry, verify_internal_secret
from inbox_routing.core.team_registry import TeamRegistry
from inbox_routing.schemas.routing import EquityStatsRead, FunnelRead, StageRead, TeamRead
from inbox_routing.services import assignment_service, team_service
from inbox_routing.services.team_service import TeamNotFoundError

router = APIRouter(
    prefix="/teams",
    tags=["teams"],
    dependencies=[Depends(verify_internal_secret)],
)


@router.get("", response_model=list[TeamRead])
def list_teams(db: Session = Depends(get_db)):
    """List team rows by priority, with active member counts."""
    return [
        TeamRead(
            category=team.category,
            name=team.name,
            color=team.color,
            is_active=team.is_active,
            max_capacity=team.max_capacity,
            priority=team.priority,
            auto_assign=team.auto_assign,
            member_count=member_count,
        )
        for team, member_count in team_service.list_teams(db)
    ]


@router.get("/{category}/funnel", response_model=FunnelRead)
def get_funnel(category: str, registry: TeamRegistry = Depends(get_registry)):
    team = registry.resolve(category)
    if not team:
        raise HTTPException(status_code=404, detail="Unknown team category")
    return FunnelRead(
        id=team.funnel.id,
        name=team.funnel.name,
        category=team.category,
        stages=[
            StageRead(id=stage.id, name=stage.name, color=stage.color, order=stage.order)
            for stage in registry.funnel_stages_for(team.category)
        ],
    )


@router.get("/{category}/equity", response_model=EquityStatsRead)
def get_equity(category: str, db: Session = Depends(get_db)):
    """Assignment distribution across the team's members."""
    try:
        team = team_service.get_team_by_category(db, category)
    except TeamNotFoundError:
        raise HTTPException(status_code=404, detail="Team not found")
    return assignment_service.get_equity_stats(db, team)
