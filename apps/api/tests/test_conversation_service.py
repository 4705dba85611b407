"""Tests for conversation upsert, manual transfer and close."""

import uuid
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from inbox_routing.db.enums import AssignmentMethod, Channel, ConversationStatus
from inbox_routing.db.models import Agent, Conversation, Deal
from inbox_routing.services import conversation_service, routing_store
from inbox_routing.services.assignment_service import AgentNotInTeamError
from inbox_routing.services.conversation_service import (
    ContactNotFoundError,
    ConversationClosedError,
    ConversationNotFoundError,
)
from inbox_routing.services.team_service import TeamNotFoundError


def _agent(db, agent_id) -> Agent:
    db.expire_all()
    return db.get(Agent, agent_id)


def test_get_or_create_conversation_reuses_open_one(db, make_contact):
    contact = make_contact()

    first = conversation_service.get_or_create_conversation(db, contact.id, Channel.WHATSAPP)
    again = conversation_service.get_or_create_conversation(db, contact.id, Channel.WHATSAPP)
    other_channel = conversation_service.get_or_create_conversation(db, contact.id, Channel.INSTAGRAM)

    assert again.id == first.id
    assert other_channel.id != first.id
    assert first.status == ConversationStatus.OPEN.value


def test_closed_conversation_is_not_reused(db, make_contact):
    contact = make_contact()
    first = conversation_service.get_or_create_conversation(db, contact.id, Channel.EMAIL)
    conversation_service.close_conversation(db, first.id)

    second = conversation_service.get_or_create_conversation(db, contact.id, Channel.EMAIL)

    assert second.id != first.id


def test_concurrent_first_message_refetches_the_winner(db, make_contact):
    contact = make_contact()
    winner = conversation_service.get_or_create_conversation(db, contact.id, Channel.WHATSAPP)

    real_find = routing_store.find_open_conversation
    lookups = []

    def stale_then_real(session, contact_id, channel):
        lookups.append(channel)
        if len(lookups) == 1:
            return None
        return real_find(session, contact_id, channel)

    with patch.object(routing_store, "find_open_conversation", side_effect=stale_then_real):
        conversation = conversation_service.get_or_create_conversation(
            db, contact.id, Channel.WHATSAPP
        )

    assert conversation.id == winner.id
    assert len(lookups) == 2
    assert db.query(Conversation).filter(Conversation.contact_id == contact.id).count() == 1


def test_second_open_conversation_for_same_channel_is_rejected(db, make_contact):
    contact = make_contact()
    db.add(Conversation(contact_id=contact.id, channel=Channel.SMS.value))
    db.commit()

    db.add(Conversation(contact_id=contact.id, channel=Channel.SMS.value))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_get_or_create_conversation_requires_contact(db):
    with pytest.raises(ContactNotFoundError):
        conversation_service.get_or_create_conversation(db, uuid.uuid4(), Channel.SMS)


def test_transfer_moves_team_agent_and_counters(
    db, orchestrator, teams, make_agent, make_conversation
):
    original = make_agent(teams["comercial"])
    target = make_agent(teams["financeiro"], online=False)
    conversation = make_conversation()
    routed = orchestrator.handle(db, conversation.id, "Qual o valor do curso de administração?")
    assert routed.agent_id == original.id

    transferred = conversation_service.transfer_conversation(
        db, conversation.id, "financeiro", target.id
    )

    assert transferred.team_category == "financeiro"
    assert transferred.assigned_team_id == teams["financeiro"].id
    assert transferred.assigned_agent_id == target.id
    assert transferred.assignment_method == AssignmentMethod.MANUAL.value
    assert _agent(db, target.id).lifetime_assignments == 1
    assert _agent(db, target.id).active_conversations == 1
    assert _agent(db, original.id).active_conversations == 0
    assert _agent(db, original.id).lifetime_assignments == 1
    # Deals stay where they were
    deal = db.get(Deal, routed.deal_id)
    assert deal.team_category == "comercial"


def test_transfer_to_non_member_is_rejected_without_changes(
    db, teams, make_agent, make_conversation
):
    outsider = make_agent(teams["suporte"])
    conversation = make_conversation()

    with pytest.raises(AgentNotInTeamError):
        conversation_service.transfer_conversation(db, conversation.id, "comercial", outsider.id)

    assert _agent(db, outsider.id).lifetime_assignments == 0


def test_transfer_to_unknown_team(db, teams, make_agent, make_conversation):
    agent = make_agent(teams["comercial"])
    conversation = make_conversation()

    with pytest.raises(TeamNotFoundError):
        conversation_service.transfer_conversation(db, conversation.id, "marketing", agent.id)


def test_transfer_unknown_conversation(db, teams, make_agent):
    agent = make_agent(teams["comercial"])

    with pytest.raises(ConversationNotFoundError):
        conversation_service.transfer_conversation(db, uuid.uuid4(), "comercial", agent.id)


def test_close_releases_agent_slot_once(db, orchestrator, teams, make_agent, make_conversation):
    agent = make_agent(teams["comercial"])
    conversation = make_conversation()
    orchestrator.handle(db, conversation.id, "Qual o valor do curso de administração?")
    assert _agent(db, agent.id).active_conversations == 1

    closed = conversation_service.close_conversation(db, conversation.id)
    conversation_service.close_conversation(db, conversation.id)

    assert closed.status == ConversationStatus.CLOSED.value
    assert _agent(db, agent.id).active_conversations == 0
    assert _agent(db, agent.id).lifetime_assignments == 1


def test_transfer_of_closed_conversation_is_rejected(
    db, orchestrator, teams, make_agent, make_conversation
):
    original = make_agent(teams["comercial"])
    target = make_agent(teams["financeiro"])
    conversation = make_conversation()
    orchestrator.handle(db, conversation.id, "Qual o valor do curso de administração?")
    conversation_service.close_conversation(db, conversation.id)

    with pytest.raises(ConversationClosedError):
        conversation_service.transfer_conversation(db, conversation.id, "financeiro", target.id)

    assert _agent(db, target.id).active_conversations == 0
    assert _agent(db, target.id).lifetime_assignments == 0
    assert _agent(db, original.id).active_conversations == 0
