"""
Deal/funnel synchronizer.

Keeps exactly one open deal per (contact, team category). Find-or-create is
an insert under a partial unique index plus refetch on conflict, never a bare
check-then-insert.
"""

import logging
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inbox_routing.core.errors import TransientStoreError
from inbox_routing.core.structured_logging import build_log_context
from inbox_routing.core.team_registry import TeamRegistry
from inbox_routing.db.models import Contact, Deal
from inbox_routing.services import routing_store

logger = logging.getLogger(__name__)


class DealSyncError(Exception):
    """Base exception for deal synchronization errors."""

    pass


class UnknownCategoryError(DealSyncError):
    """Category has no team/funnel in the registry."""

    pass


def _deal_name(db: Session, contact_id: UUID, team_name: str) -> str:
    contact = db.get(Contact, contact_id)
    contact_name = contact.name if contact else "Contato"
    return f"{contact_name} - {team_name}"[:255]


def ensure_deal(
    db: Session,
    registry: TeamRegistry,
    contact_id: UUID,
    team_category: str,
    *,
    assigned_agent_id: UUID | None = None,
    max_retries: int = 3,
) -> tuple[Deal, bool]:
    """
    Return the open deal for (contact, category), creating it at the funnel's
    initial stage when missing.

    Returns (deal, created). An existing deal is returned unchanged. Does not
    commit.

    Raises:
        UnknownCategoryError: category not in the registry
        TransientStoreError: insert kept conflicting without a visible winner
    """
    team = registry.resolve(team_category)
    if team is None:
        raise UnknownCategoryError(f"Unknown team category '{team_category}'")

    attempts = max(1, max_retries)
    for attempt in range(1, attempts + 1):
        existing = routing_store.find_open_deal(db, contact_id, team.category)
        if existing:
            return existing, False

        stage = team.funnel.initial_stage
        try:
            with db.begin_nested():
                deal = routing_store.create_deal(
                    db,
                    contact_id=contact_id,
                    team_category=team.category,
                    funnel_id=team.funnel.id,
                    stage_id=stage.id,
                    name=_deal_name(db, contact_id, team.name),
                    assigned_agent_id=assigned_agent_id,
                )
        except IntegrityError:
            # Another worker created it between our lookup and insert
            logger.info(
                "Open deal insert conflicted, refetching (attempt %s/%s)",
                attempt,
                attempts,
                extra=build_log_context(team_category=team.category),
            )
            continue

        logger.info(
            "Created deal at stage %s",
            stage.id,
            extra=build_log_context(
                team_category=team.category, agent_id=assigned_agent_id, stage="deal_synced"
            ),
        )
        return deal, True

    existing = routing_store.find_open_deal(db, contact_id, team.category)
    if existing:
        return existing, False
    raise TransientStoreError(
        f"Could not create or find open deal for category '{team.category}'"
    )


# =============================================================================
# Repair
# =============================================================================


@dataclass
class DealRepairReport:
    dry_run: bool
    scanned: int = 0
    moved: int = 0
    moved_by_category: dict[str, int] = field(default_factory=dict)
    skipped_unknown_category: int = 0

    def as_dict(self) -> dict:
        return {
            "dry_run": self.dry_run,
            "scanned": self.scanned,
            "moved": self.moved,
            "moved_by_category": dict(self.moved_by_category),
            "skipped_unknown_category": self.skipped_unknown_category,
        }


def repair_misplaced_deals(
    db: Session,
    registry: TeamRegistry,
    *,
    dry_run: bool = False,
    batch_size: int = 500,
) -> DealRepairReport:
    """
    Backfill: move deals whose stage is not part of their category's funnel
    to that funnel's initial stage.

    Deals with categories missing from the registry are counted and left alone.
    Commits unless dry_run.
    """
    report = DealRepairReport(dry_run=dry_run)
    last_id: UUID | None = None

    while True:
        stmt = select(Deal).order_by(Deal.id).limit(batch_size)
        if last_id is not None:
            stmt = stmt.where(Deal.id > last_id)
        deals = list(db.execute(stmt).scalars().all())
        if not deals:
            break
        last_id = deals[-1].id

        for deal in deals:
            report.scanned += 1
            team = registry.resolve(deal.team_category)
            if team is None:
                report.skipped_unknown_category += 1
                continue
            funnel = team.funnel
            if deal.stage_id in funnel.stage_ids:
                continue

            report.moved += 1
            report.moved_by_category[team.category] = (
                report.moved_by_category.get(team.category, 0) + 1
            )
            if not dry_run:
                deal.stage_id = funnel.initial_stage.id
                deal.funnel_id = funnel.id

    if dry_run:
        db.rollback()
    else:
        db.commit()

    logger.info(
        "Deal repair finished: scanned=%s moved=%s skipped=%s dry_run=%s",
        report.scanned,
        report.moved,
        report.skipped_unknown_category,
        dry_run,
    )
    return report
