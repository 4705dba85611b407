"""
Ingestion orchestrator.

Entry point per inbound message. Everything for one message runs in a single
transaction, with the conversation row locked first:

1. Record: dedup check, then the message row plus its dedup keys. A duplicate
   stops here with no writes.
2. Route: classify (only while the conversation has no team), resolve the
   team, assign an agent (only while it has none) and make sure an open deal
   exists.

The message, its dedup keys and the routing outcome commit together. A failed
step rolls all of it back, so a redelivery of the same message is ingested
again instead of being reported as a duplicate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from inbox_routing.core.errors import TransientStoreError
from inbox_routing.core.structured_logging import build_log_context
from inbox_routing.core.team_registry import TeamRegistry
from inbox_routing.db.enums import (
    AlertSeverity,
    AlertType,
    AssignmentMethod,
    IngestionStage,
    IngestionStatus,
)
from inbox_routing.db.models import Conversation, Team
from inbox_routing.db.types import utc_now
from inbox_routing.schemas.artifacts import Artifact, TextArtifact
from inbox_routing.services import (
    alert_service,
    assignment_service,
    dedup_service,
    deal_service,
    routing_store,
)
from inbox_routing.services.assignment_service import (
    Assigned,
    AssignedUnderOverflow,
    AssignmentOutcome,
    Deferred,
    NoTeamMembersError,
)
from inbox_routing.services.classification_service import TeamClassifier
from inbox_routing.services.conversation_service import ConversationNotFoundError
from inbox_routing.services.presence_service import DatabasePresence, PresenceService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestionResult:
    status: IngestionStatus
    stage: IngestionStage
    message_id: UUID | None = None
    duplicate_of: UUID | None = None
    team_category: str | None = None
    agent_id: UUID | None = None
    deal_id: UUID | None = None
    assignment: str | None = None
    confidence: int | None = None
    retryable: bool = False


def _duplicate(existing_id: UUID | None) -> IngestionResult:
    return IngestionResult(
        status=IngestionStatus.DUPLICATE,
        stage=IngestionStage.DUPLICATE,
        message_id=existing_id,
        duplicate_of=existing_id,
    )


def _method_for(outcome: AssignmentOutcome) -> AssignmentMethod:
    if isinstance(outcome, Assigned):
        return AssignmentMethod.AUTOMATIC
    if isinstance(outcome, AssignedUnderOverflow):
        return AssignmentMethod.OVERFLOW
    if isinstance(outcome, Deferred):
        return AssignmentMethod.DEFERRED
    raise TypeError(f"Unhandled assignment outcome {outcome!r}")


class IngestionOrchestrator:
    """Sequences dedup, classification, team resolution, assignment and deal sync."""

    def __init__(
        self,
        registry: TeamRegistry,
        classifier: TeamClassifier,
        *,
        presence_factory: Callable[[Session], PresenceService] = DatabasePresence,
        assignment_max_retries: int = 3,
        deal_max_retries: int = 3,
        dedup_timeout_ms: int | None = None,
    ):
        self.registry = registry
        self.classifier = classifier
        self.presence_factory = presence_factory
        self.assignment_max_retries = assignment_max_retries
        self.deal_max_retries = deal_max_retries
        self.dedup_timeout_ms = dedup_timeout_ms

    def handle(
        self,
        db: Session,
        conversation_id: UUID,
        message_text: str | None,
        artifact: Artifact | None = None,
    ) -> IngestionResult:
        """
        Ingest one inbound message.

        Raises ConversationNotFoundError for unknown conversations. Store
        failures are reported as FAILED results, never raised.
        """
        artifact = artifact or TextArtifact()

        # Serializes messages of one conversation until the final commit
        conversation = routing_store.find_conversation(db, conversation_id, for_update=True)
        if not conversation:
            db.rollback()
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")

        recorded = self._record(db, conversation, message_text, artifact)
        if isinstance(recorded, IngestionResult):
            return recorded

        return self._route(db, conversation, recorded, message_text)

    # -------------------------------------------------------------------------
    # Phase 1: dedup + record
    # -------------------------------------------------------------------------

    def _record(
        self,
        db: Session,
        conversation: Conversation,
        message_text: str | None,
        artifact: Artifact,
    ) -> IngestionResult | UUID:
        """Flush the message and its dedup keys; returns the message id or a terminal result."""
        conversation_id = conversation.id
        check = dedup_service.check_duplicate(
            db, conversation_id, artifact, timeout_ms=self.dedup_timeout_ms
        )
        if check.exists:
            db.rollback()
            return _duplicate(check.existing_id)

        try:
            message = routing_store.create_message(
                db,
                conversation_id,
                kind=artifact.kind,
                content=message_text,
                provider_message_id=artifact.provider_message_id,
                media_url=getattr(artifact, "media_url", None),
            )
            dedup_service.record_keys(db, conversation_id, artifact, message.id)
            routing_store.update_conversation(db, conversation, last_message_at=message.created_at)
            message_id = message.id
        except IntegrityError:
            # Same artifact committed by a concurrent delivery
            db.rollback()
            check = dedup_service.check_duplicate(
                db, conversation_id, artifact, timeout_ms=self.dedup_timeout_ms
            )
            db.rollback()
            if check.exists:
                return _duplicate(check.existing_id)
            logger.exception(
                "Message insert conflicted without a visible duplicate",
                extra=build_log_context(conversation_id=conversation_id, stage="dedup_checked"),
            )
            return IngestionResult(
                status=IngestionStatus.FAILED, stage=IngestionStage.DEDUP_CHECKED, retryable=True
            )
        except SQLAlchemyError:
            db.rollback()
            logger.exception(
                "Failed to record inbound message",
                extra=build_log_context(conversation_id=conversation_id, stage="dedup_checked"),
            )
            return IngestionResult(
                status=IngestionStatus.FAILED, stage=IngestionStage.DEDUP_CHECKED, retryable=True
            )

        return message_id

    # -------------------------------------------------------------------------
    # Phase 2: route
    # -------------------------------------------------------------------------

    def _route(
        self,
        db: Session,
        conversation: Conversation,
        message_id: UUID,
        message_text: str | None,
    ) -> IngestionResult:
        conversation_id = conversation.id
        stage = IngestionStage.DEDUP_CHECKED
        try:
            confidence: int | None = None
            if conversation.assigned_team_id is None:
                classification = self.classifier.classify(message_text)
                stage = IngestionStage.CLASSIFIED
                confidence = classification.confidence
                if not self.classifier.is_actionable(classification):
                    db.commit()
                    logger.info(
                        "Classification not actionable (confidence %s), leaving unrouted",
                        classification.confidence,
                        extra=build_log_context(
                            conversation_id=conversation_id, message_id=message_id, stage=stage.value
                        ),
                    )
                    return IngestionResult(
                        status=IngestionStatus.UNROUTED,
                        stage=stage,
                        message_id=message_id,
                        team_category=classification.team_category,
                        confidence=confidence,
                    )
                team = self._resolve_team(db, classification.team_category, message_id, conversation)
                if team is None:
                    db.commit()
                    return IngestionResult(
                        status=IngestionStatus.UNROUTED,
                        stage=stage,
                        message_id=message_id,
                        team_category=classification.team_category,
                        confidence=confidence,
                    )
                routing_store.update_conversation(
                    db, conversation, assigned_team_id=team.id, team_category=team.category
                )
            else:
                team = routing_store.get_team(db, conversation.assigned_team_id)
                category = team.category if team else conversation.team_category
                if team is None or not team.is_active or self.registry.resolve(category) is None:
                    self._alert_unknown_category(db, category, conversation)
                    db.commit()
                    return IngestionResult(
                        status=IngestionStatus.UNROUTED,
                        stage=IngestionStage.TEAM_RESOLVED,
                        message_id=message_id,
                        team_category=category,
                    )
            stage = IngestionStage.TEAM_RESOLVED

            outcome = None
            if conversation.assigned_agent_id is None and team.auto_assign:
                outcome = self._assign(db, conversation, team)
                if conversation.assigned_agent_id is not None:
                    stage = IngestionStage.AGENT_ASSIGNED

            deal, created = deal_service.ensure_deal(
                db,
                self.registry,
                conversation.contact_id,
                team.category,
                assigned_agent_id=conversation.assigned_agent_id,
                max_retries=self.deal_max_retries,
            )
            if deal.assigned_agent_id is None and conversation.assigned_agent_id is not None:
                deal.assigned_agent_id = conversation.assigned_agent_id
            stage = IngestionStage.DEAL_SYNCED

            agent_id = conversation.assigned_agent_id
            deal_id = deal.id
            db.commit()
        except (TransientStoreError, SQLAlchemyError, deal_service.DealSyncError) as exc:
            db.rollback()
            logger.exception(
                "Routing failed at %s, conversation left unchanged",
                stage.value,
                extra=build_log_context(
                    conversation_id=conversation_id, message_id=message_id, stage=stage.value
                ),
            )
            return IngestionResult(
                status=IngestionStatus.FAILED,
                stage=stage,
                retryable=not isinstance(exc, deal_service.DealSyncError),
            )

        logger.info(
            "Routed inbound message (deal %s)",
            "created" if created else "existing",
            extra=build_log_context(
                conversation_id=conversation_id,
                message_id=message_id,
                team_category=team.category,
                agent_id=agent_id,
                stage=IngestionStage.COMMITTED.value,
            ),
        )
        return IngestionResult(
            status=IngestionStatus.ROUTED,
            stage=IngestionStage.COMMITTED,
            message_id=message_id,
            team_category=team.category,
            agent_id=agent_id,
            deal_id=deal_id,
            assignment=_method_for(outcome).value if outcome else None,
            confidence=confidence,
        )

    def _resolve_team(
        self,
        db: Session,
        category: str | None,
        message_id: UUID,
        conversation: Conversation,
    ) -> Team | None:
        definition = self.registry.resolve(category)
        team = routing_store.find_team_by_category(db, definition.category) if definition else None
        if definition is None or team is None or not team.is_active:
            self._alert_unknown_category(db, category, conversation)
            return None
        return team

    def _alert_unknown_category(
        self,
        db: Session,
        category: str | None,
        conversation: Conversation,
    ) -> None:
        logger.error(
            "No active team for category",
            extra=build_log_context(conversation_id=conversation.id, team_category=category),
        )
        alert_service.create_or_update_alert(
            db,
            AlertType.UNKNOWN_CATEGORY,
            AlertSeverity.ERROR,
            title=f"No active team for category '{category}'",
            message="Conversations classified to this category stay unrouted.",
            scope_key=category,
            details={"last_conversation_id": str(conversation.id)},
        )

    def _assign(
        self,
        db: Session,
        conversation: Conversation,
        team: Team,
    ) -> AssignmentOutcome | None:
        try:
            outcome = assignment_service.assign(
                db,
                conversation.id,
                team.id,
                max_capacity=team.max_capacity,
                presence=self.presence_factory(db),
                max_retries=self.assignment_max_retries,
            )
        except NoTeamMembersError:
            logger.error(
                "Team has no members, conversation left without agent",
                extra=build_log_context(conversation_id=conversation.id, team_category=team.category),
            )
            alert_service.create_or_update_alert(
                db,
                AlertType.NO_TEAM_MEMBERS,
                AlertSeverity.ERROR,
                title=f"Team '{team.category}' has no members",
                message="Conversations routed to this team are not assigned to any agent.",
                scope_key=team.category,
                details={"last_conversation_id": str(conversation.id)},
            )
            return None

        if isinstance(outcome, Deferred):
            alert_service.create_or_update_alert(
                db,
                AlertType.NO_ONLINE_AGENTS,
                AlertSeverity.WARNING,
                title=f"No online agents in team '{team.category}'",
                message="Conversations are pre-assigned to offline agents.",
                scope_key=team.category,
                details={"last_agent_id": str(outcome.agent_id)},
            )
        elif isinstance(outcome, AssignedUnderOverflow):
            logger.warning(
                "All online agents at capacity, assigned under overflow",
                extra=build_log_context(
                    conversation_id=conversation.id,
                    team_category=team.category,
                    agent_id=outcome.agent_id,
                ),
            )
            alert_service.create_or_update_alert(
                db,
                AlertType.ASSIGNMENT_OVERFLOW,
                AlertSeverity.INFO,
                title=f"Team '{team.category}' assigning over capacity",
                message=f"All online agents are at {team.max_capacity} active conversations.",
                scope_key=team.category,
                details={"last_agent_id": str(outcome.agent_id)},
            )

        routing_store.update_conversation(
            db,
            conversation,
            assigned_agent_id=outcome.agent_id,
            assignment_method=_method_for(outcome).value,
            assigned_at=utc_now(),
        )
        return outcome
