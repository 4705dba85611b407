"""
Routing alerts service.

Manages deduplicated, actionable alerts with fingerprinting.
"""
import hashlib
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from inbox_routing.db.models import RoutingAlert
from inbox_routing.db.enums import AlertType, AlertSeverity, AlertStatus


def fingerprint(alert_type: AlertType, scope_key: str | None) -> str:
    """
    Generate a stable, PII-safe fingerprint for alert deduplication.

    No timestamps or random IDs - ensures dedupe works correctly.
    """
    normalized = f"{alert_type.value}:{scope_key or 'default'}"
    return hashlib.sha256(normalized.encode()).hexdigest()[:16]


def create_or_update_alert(
    db: Session,
    alert_type: AlertType,
    severity: AlertSeverity,
    title: str,
    message: str | None = None,
    scope_key: str | None = None,
    details: dict | None = None,
) -> RoutingAlert:
    """
    Create a new alert or update an existing one if fingerprint matches.

    Updates: last_seen_at, occurrence_count, message, details
    Reopens resolved alerts if they recur. Flushes only; the caller's
    transaction decides whether the alert is kept.
    """
    dedupe_key = fingerprint(alert_type, scope_key)
    now = datetime.now(timezone.utc)

    existing = db.query(RoutingAlert).filter(RoutingAlert.dedupe_key == dedupe_key).first()

    if existing:
        existing.last_seen_at = now
        existing.occurrence_count += 1
        existing.message = message
        existing.severity = severity.value
        if details:
            existing.details = details
        if existing.status == AlertStatus.RESOLVED.value:
            existing.status = AlertStatus.OPEN.value
            existing.resolved_at = None
        db.flush()
        return existing

    alert = RoutingAlert(
        dedupe_key=dedupe_key,
        scope_key=scope_key,
        alert_type=alert_type.value,
        severity=severity.value,
        status=AlertStatus.OPEN.value,
        title=title[:255],
        message=message,
        details=details,
        first_seen_at=now,
        last_seen_at=now,
    )
    db.add(alert)
    db.flush()
    return alert


def list_alerts(
    db: Session,
    status: AlertStatus | None = None,
    severity: AlertSeverity | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[RoutingAlert]:
    """List alerts with optional filtering."""
    query = db.query(RoutingAlert)

    if status:
        query = query.filter(RoutingAlert.status == status.value)
    if severity:
        query = query.filter(RoutingAlert.severity == severity.value)

    return query.order_by(
        RoutingAlert.last_seen_at.desc()
    ).offset(offset).limit(limit).all()


def resolve_alert(db: Session, alert_id: UUID) -> RoutingAlert | None:
    """Resolve an alert."""
    alert = db.query(RoutingAlert).filter(RoutingAlert.id == alert_id).first()
    if not alert:
        return None

    alert.status = AlertStatus.RESOLVED.value
    alert.resolved_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(alert)
    return alert
