"""Tests for the ingestion orchestrator (dedup → classify → assign → deal)."""

import uuid
from unittest.mock import patch

import pytest

from inbox_routing.core.errors import TransientStoreError
from inbox_routing.db.enums import (
    AlertSeverity,
    AlertType,
    AssignmentMethod,
    IngestionStage,
    IngestionStatus,
)
from inbox_routing.db.models import Agent, Conversation, Deal, DedupRecord, Message, RoutingAlert
from inbox_routing.schemas.artifacts import AudioArtifact, ImageArtifact, TextArtifact
from inbox_routing.services import dedup_service, deal_service
from inbox_routing.services.conversation_service import ConversationNotFoundError
from inbox_routing.services.dedup_service import DedupCheck

PRICING_QUESTION = "Qual o valor do curso de administração?"


def _conversation(db, conversation_id) -> Conversation:
    db.expire_all()
    return db.get(Conversation, conversation_id)


def _alert(db, alert_type: AlertType) -> RoutingAlert | None:
    return db.query(RoutingAlert).filter(RoutingAlert.alert_type == alert_type.value).first()


def test_pricing_question_is_routed_to_lowest_score_agent(
    db, orchestrator, teams, make_agent, make_conversation
):
    team = teams["comercial"]
    favourite = make_agent(team, lifetime=1, active=2)  # score 12
    make_agent(team, lifetime=3)  # score 30
    conversation = make_conversation()

    result = orchestrator.handle(db, conversation.id, PRICING_QUESTION)

    assert result.status == IngestionStatus.ROUTED
    assert result.stage == IngestionStage.COMMITTED
    assert result.team_category == "comercial"
    assert result.confidence >= 75
    assert result.agent_id == favourite.id
    assert result.assignment == AssignmentMethod.AUTOMATIC.value

    routed = _conversation(db, conversation.id)
    assert routed.assigned_team_id == team.id
    assert routed.team_category == "comercial"
    assert routed.assigned_agent_id == favourite.id
    assert routed.assignment_method == AssignmentMethod.AUTOMATIC.value
    assert routed.last_message_at is not None

    deal = db.get(Deal, result.deal_id)
    assert deal.stage_id == "prospecting"
    assert deal.assigned_agent_id == favourite.id


def test_second_message_does_not_reroute_or_duplicate_deal(
    db, orchestrator, teams, make_agent, make_conversation
):
    agent = make_agent(teams["comercial"])
    make_agent(teams["suporte"])
    conversation = make_conversation()

    first = orchestrator.handle(db, conversation.id, PRICING_QUESTION)
    second = orchestrator.handle(
        db, conversation.id, "Estou com problema no login, não consigo acessar"
    )

    assert second.status == IngestionStatus.ROUTED
    assert second.team_category == "comercial"
    assert second.agent_id == agent.id
    assert second.deal_id == first.deal_id
    assert second.assignment is None
    assert second.confidence is None
    assert db.query(Deal).count() == 1
    db.expire_all()
    assert db.get(Agent, agent.id).lifetime_assignments == 1


def test_replayed_message_is_a_duplicate_without_writes(
    db, orchestrator, teams, make_agent, make_conversation
):
    make_agent(teams["comercial"])
    conversation = make_conversation()
    artifact = TextArtifact(provider_message_id="wamid.ABC")

    first = orchestrator.handle(db, conversation.id, PRICING_QUESTION, artifact)
    replay = orchestrator.handle(db, conversation.id, PRICING_QUESTION, artifact)

    assert replay.status == IngestionStatus.DUPLICATE
    assert replay.stage == IngestionStage.DUPLICATE
    assert replay.duplicate_of == first.message_id
    assert replay.message_id == first.message_id
    assert db.query(Message).count() == 1
    assert db.query(DedupRecord).count() == 1


def test_same_image_hash_is_ingested_once(db, orchestrator, teams, make_conversation):
    conversation = make_conversation()
    image = ImageArtifact(content_hash="9f86d081884c7d65", media_url="https://cdn.example/1.jpg")
    again = ImageArtifact(content_hash="9f86d081884c7d65", media_url="https://cdn.example/2.jpg")

    first = orchestrator.handle(db, conversation.id, None, image)
    records_before = db.query(DedupRecord).count()
    second = orchestrator.handle(db, conversation.id, None, again)

    assert second.status == IngestionStatus.DUPLICATE
    assert second.duplicate_of == first.message_id
    assert db.query(Message).count() == 1
    assert db.query(DedupRecord).count() == records_before == 2


def test_voice_notes_are_never_duplicates(db, orchestrator, teams, make_conversation):
    conversation = make_conversation()
    voice = AudioArtifact(provider_message_id="ptt-1", is_recorded=True)

    orchestrator.handle(db, conversation.id, None, voice)
    result = orchestrator.handle(db, conversation.id, None, voice)

    assert result.status != IngestionStatus.DUPLICATE
    assert db.query(Message).count() == 2
    assert db.query(DedupRecord).count() == 0


def test_low_confidence_message_stays_unrouted(db, orchestrator, teams, make_conversation):
    conversation = make_conversation()

    result = orchestrator.handle(db, conversation.id, "bom dia")

    assert result.status == IngestionStatus.UNROUTED
    assert result.stage == IngestionStage.CLASSIFIED
    assert result.confidence == 0
    assert result.message_id is not None
    routed = _conversation(db, conversation.id)
    assert routed.assigned_team_id is None
    assert routed.assigned_agent_id is None
    assert db.query(Deal).count() == 0


def test_unrouted_conversation_is_routed_by_a_later_message(
    db, orchestrator, teams, make_agent, make_conversation
):
    make_agent(teams["financeiro"])
    conversation = make_conversation()

    orchestrator.handle(db, conversation.id, "oi")
    result = orchestrator.handle(db, conversation.id, "Preciso da segunda via do boleto")

    assert result.status == IngestionStatus.ROUTED
    assert result.team_category == "financeiro"


def test_team_without_members_keeps_team_and_raises_alert(
    db, orchestrator, teams, make_conversation
):
    conversation = make_conversation()

    result = orchestrator.handle(db, conversation.id, "Estou com problema no login, não consigo acessar")

    assert result.status == IngestionStatus.ROUTED
    assert result.stage == IngestionStage.COMMITTED
    assert result.agent_id is None
    routed = _conversation(db, conversation.id)
    assert routed.team_category == "suporte"
    assert routed.assigned_agent_id is None
    assert db.get(Deal, result.deal_id).assigned_agent_id is None

    alert = _alert(db, AlertType.NO_TEAM_MEMBERS)
    assert alert.severity == AlertSeverity.ERROR.value
    assert alert.scope_key == "suporte"


def test_offline_team_defers_to_lightest_agent(db, orchestrator, teams, make_agent, make_conversation):
    team = teams["suporte"]
    make_agent(team, online=False, active=3)
    lighter = make_agent(team, online=False, active=1)
    conversation = make_conversation()

    result = orchestrator.handle(db, conversation.id, "Deu erro, o sistema travou e não carrega")

    assert result.status == IngestionStatus.ROUTED
    assert result.agent_id == lighter.id
    assert result.assignment == AssignmentMethod.DEFERRED.value
    assert _conversation(db, conversation.id).assignment_method == AssignmentMethod.DEFERRED.value
    alert = _alert(db, AlertType.NO_ONLINE_AGENTS)
    assert alert.severity == AlertSeverity.WARNING.value


def test_two_new_contacts_share_single_agent_at_capacity(
    db, orchestrator, teams, make_agent, make_conversation
):
    team = teams["comercial"]
    team.max_capacity = 1
    db.commit()
    agent = make_agent(team, active=1)
    first_conversation = make_conversation()
    second_conversation = make_conversation()

    first = orchestrator.handle(db, first_conversation.id, PRICING_QUESTION)
    second = orchestrator.handle(db, second_conversation.id, "Quanto custa a mensalidade do curso?")

    assert first.agent_id == second.agent_id == agent.id
    assert first.assignment == second.assignment == AssignmentMethod.OVERFLOW.value
    db.expire_all()
    assert db.get(Agent, agent.id).active_conversations == 3
    alert = _alert(db, AlertType.ASSIGNMENT_OVERFLOW)
    assert alert.occurrence_count == 2
    assert alert.severity == AlertSeverity.INFO.value


def test_auto_assign_disabled_routes_team_only(db, orchestrator, teams, make_agent, make_conversation):
    team = teams["comercial"]
    team.auto_assign = False
    db.commit()
    make_agent(team)
    conversation = make_conversation()

    result = orchestrator.handle(db, conversation.id, PRICING_QUESTION)

    assert result.status == IngestionStatus.ROUTED
    assert result.agent_id is None
    assert result.stage == IngestionStage.COMMITTED
    assert result.deal_id is not None


def test_category_without_team_row_is_unrouted_with_alert(db, orchestrator, make_conversation):
    conversation = make_conversation()

    result = orchestrator.handle(db, conversation.id, PRICING_QUESTION)

    assert result.status == IngestionStatus.UNROUTED
    assert result.team_category == "comercial"
    assert _conversation(db, conversation.id).assigned_team_id is None
    alert = _alert(db, AlertType.UNKNOWN_CATEGORY)
    assert alert.scope_key == "comercial"


def test_failure_after_assignment_rolls_back_everything(
    db, orchestrator, teams, make_agent, make_conversation
):
    agent = make_agent(teams["comercial"])
    conversation = make_conversation()

    with patch.object(
        deal_service, "ensure_deal", side_effect=TransientStoreError("deal insert contended")
    ):
        result = orchestrator.handle(db, conversation.id, PRICING_QUESTION)

    assert result.status == IngestionStatus.FAILED
    assert result.retryable
    assert result.stage == IngestionStage.AGENT_ASSIGNED
    assert result.message_id is None
    routed = _conversation(db, conversation.id)
    assert routed.assigned_team_id is None
    assert routed.assigned_agent_id is None
    assert db.get(Agent, agent.id).lifetime_assignments == 0
    assert db.query(Deal).count() == 0
    assert db.query(Message).count() == 0
    assert db.query(DedupRecord).count() == 0

    retry = orchestrator.handle(db, conversation.id, "Quero saber mais sobre o curso")
    assert retry.status == IngestionStatus.ROUTED
    assert retry.agent_id == agent.id


def test_redelivery_after_failure_is_routed_not_duplicate(
    db, orchestrator, teams, make_agent, make_conversation
):
    agent = make_agent(teams["comercial"])
    conversation = make_conversation()
    artifact = TextArtifact(provider_message_id="wamid.RETRY")

    with patch.object(
        deal_service, "ensure_deal", side_effect=TransientStoreError("deal insert contended")
    ):
        failed = orchestrator.handle(db, conversation.id, PRICING_QUESTION, artifact)
    redelivered = orchestrator.handle(db, conversation.id, PRICING_QUESTION, artifact)
    replayed = orchestrator.handle(db, conversation.id, PRICING_QUESTION, artifact)

    assert failed.status == IngestionStatus.FAILED
    assert failed.retryable
    assert redelivered.status == IngestionStatus.ROUTED
    assert redelivered.team_category == "comercial"
    assert redelivered.agent_id == agent.id
    assert replayed.status == IngestionStatus.DUPLICATE
    assert replayed.duplicate_of == redelivered.message_id
    assert db.query(Message).count() == 1
    assert db.get(Agent, agent.id).lifetime_assignments == 1


def test_deactivated_team_stops_routing_existing_conversation(
    db, orchestrator, teams, make_agent, make_conversation
):
    make_agent(teams["suporte"])
    conversation = make_conversation()
    first = orchestrator.handle(db, conversation.id, "Estou com problema no login, não consigo acessar")
    assert first.status == IngestionStatus.ROUTED

    routed = _conversation(db, conversation.id)
    routed.assigned_agent_id = None
    teams["suporte"].is_active = False
    db.commit()
    deals_before = db.query(Deal).count()

    result = orchestrator.handle(db, conversation.id, "Ainda não funciona")

    assert result.status == IngestionStatus.UNROUTED
    assert result.stage == IngestionStage.TEAM_RESOLVED
    assert result.team_category == "suporte"
    assert _conversation(db, conversation.id).assigned_agent_id is None
    assert db.query(Deal).count() == deals_before
    alert = _alert(db, AlertType.UNKNOWN_CATEGORY)
    assert alert.scope_key == "suporte"


def test_concurrent_delivery_of_same_artifact_reports_duplicate(
    db, orchestrator, teams, make_conversation
):
    conversation = make_conversation()
    artifact = TextArtifact(provider_message_id="wamid.RACE")
    first = orchestrator.handle(db, conversation.id, "oi", artifact)

    real_check = dedup_service.check_duplicate
    checks = []

    def stale_then_real(*args, **kwargs):
        checks.append(args)
        if len(checks) == 1:
            return DedupCheck(exists=False)
        return real_check(*args, **kwargs)

    with patch.object(dedup_service, "check_duplicate", side_effect=stale_then_real):
        result = orchestrator.handle(db, conversation.id, "oi", artifact)

    assert result.status == IngestionStatus.DUPLICATE
    assert result.duplicate_of == first.message_id
    assert len(checks) == 2
    assert db.query(Message).count() == 1


def test_unknown_conversation_raises(db, orchestrator):
    with pytest.raises(ConversationNotFoundError):
        orchestrator.handle(db, uuid.uuid4(), PRICING_QUESTION)
