"""
Internal endpoints for maintenance jobs and operators.

Protected by INTERNAL_SECRET header.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from inbox_routing.core.deps import get_db, get_registry, verify_internal_secret
from inbox_routing.core.team_registry import TeamRegistry
from inbox_routing.db.enums import AlertStatus
from inbox_routing.schemas.routing import AlertRead, DealRepairRead
from inbox_routing.services import alert_service, deal_service

router = APIRouter(
    prefix="/internal",
    tags=["internal"],
    dependencies=[Depends(verify_internal_secret)],
)


@router.post("/deals/repair", response_model=DealRepairRead)
def repair_deals(
    dry_run: bool = Query(True),
    db: Session = Depends(get_db),
    registry: TeamRegistry = Depends(get_registry),
):
    """
    Move deals whose stage is not in their category's funnel to its initial stage.

    Defaults to a dry run.
    """
    report = deal_service.repair_misplaced_deals(db, registry, dry_run=dry_run)
    return report.as_dict()


@router.get("/alerts", response_model=list[AlertRead])
def list_alerts(
    status: AlertStatus | None = Query(AlertStatus.OPEN),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return alert_service.list_alerts(db, status=status, limit=limit, offset=offset)


@router.post("/alerts/{alert_id}/resolve", response_model=AlertRead)
def resolve_alert(alert_id: UUID, db: Session = Depends(get_db)):
    alert = alert_service.resolve_alert(db, alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    return alert
