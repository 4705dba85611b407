"""
Deduplication guard for inbound artifacts.

Read-only: reports whether an artifact was already ingested in a
conversation. Writing the keys is the ingestion orchestrator's job.
Lookup failures fail open so real user content is never dropped.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inbox_routing.core.structured_logging import build_log_context
from inbox_routing.db.enums import DedupKeyType
from inbox_routing.db.session import statement_timeout
from inbox_routing.schemas.artifacts import Artifact
from inbox_routing.services import routing_store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DedupCheck:
    exists: bool
    existing_id: UUID | None = None
    matched_key: DedupKeyType | None = None
    failed_open: bool = False


NOT_DUPLICATE = DedupCheck(exists=False)


def check_duplicate(
    db: Session,
    conversation_id: UUID,
    artifact: Artifact,
    *,
    timeout_ms: int | None = None,
) -> DedupCheck:
    """
    Check the artifact's keys in priority order, stopping at the first match.

    Order: provider message id, media URL, content hash, then file name+size
    (only present when there is no hash). Recorded voice notes carry no keys
    and are always unique.
    """
    keys = artifact.dedup_keys()
    if not keys:
        return NOT_DUPLICATE

    try:
        # Savepoint so a failed or timed-out lookup leaves the outer transaction usable
        with db.begin_nested():
            with statement_timeout(db, timeout_ms):
                for key_type, value in keys:
                    record = routing_store.find_dedup_record(db, conversation_id, key_type, value)
                    if record:
                        return DedupCheck(
                            exists=True,
                            existing_id=record.message_id,
                            matched_key=key_type,
                        )
    except SQLAlchemyError as exc:
        logger.warning(
            "Dedup lookup failed, treating artifact as new: %s",
            exc.__class__.__name__,
            extra=build_log_context(conversation_id=conversation_id, stage="dedup_checked"),
        )
        return DedupCheck(exists=False, failed_open=True)

    return NOT_DUPLICATE


def record_keys(
    db: Session,
    conversation_id: UUID,
    artifact: Artifact,
    message_id: UUID,
) -> int:
    """Write every dedup key of the artifact. IntegrityError means another writer won."""
    keys = artifact.dedup_keys()
    for key_type, value in keys:
        routing_store.insert_dedup_record(db, conversation_id, key_type, value, message_id)
    return len(keys)
