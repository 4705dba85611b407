"""Tests for the deal/funnel synchronizer and the misplaced-deal repair."""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from inbox_routing.core.errors import TransientStoreError
from inbox_routing.db.enums import DealStatus
from inbox_routing.db.models import Deal
from inbox_routing.services import deal_service, routing_store
from inbox_routing.services.deal_service import UnknownCategoryError


def _open_deals(db, contact_id, category):
    return (
        db.query(Deal)
        .filter(
            Deal.contact_id == contact_id,
            Deal.team_category == category,
            Deal.status == DealStatus.OPEN.value,
        )
        .all()
    )


def test_creates_deal_at_initial_stage(db, registry, make_contact):
    contact = make_contact("Ana Souza")

    deal, created = deal_service.ensure_deal(db, registry, contact.id, "comercial")
    db.commit()

    assert created
    assert deal.stage_id == "prospecting"
    assert deal.funnel_id == "funnel_comercial"
    assert deal.status == DealStatus.OPEN.value
    assert deal.name == "Ana Souza - Comercial"


def test_existing_open_deal_is_returned_unchanged(db, registry, make_contact):
    contact = make_contact()
    first, _ = deal_service.ensure_deal(db, registry, contact.id, "suporte")
    first.stage_id = "em_andamento"
    db.commit()

    second, created = deal_service.ensure_deal(db, registry, contact.id, "suporte")

    assert not created
    assert second.id == first.id
    assert second.stage_id == "em_andamento"
    assert len(_open_deals(db, contact.id, "suporte")) == 1


def test_closed_deal_does_not_block_a_new_one(db, registry, make_contact):
    contact = make_contact()
    old, _ = deal_service.ensure_deal(db, registry, contact.id, "comercial")
    old.status = DealStatus.WON.value
    db.commit()

    new, created = deal_service.ensure_deal(db, registry, contact.id, "comercial")
    db.commit()

    assert created
    assert new.id != old.id


def test_categories_are_independent(db, registry, make_contact):
    contact = make_contact()

    comercial, _ = deal_service.ensure_deal(db, registry, contact.id, "comercial")
    financeiro, _ = deal_service.ensure_deal(db, registry, contact.id, "financeiro")

    assert comercial.id != financeiro.id
    assert financeiro.stage_id == "solicitacao_recebida"


def test_unknown_category_raises(db, registry, make_contact):
    contact = make_contact()

    with pytest.raises(UnknownCategoryError):
        deal_service.ensure_deal(db, registry, contact.id, "marketing")


def test_database_rejects_second_open_deal(db, registry, make_contact):
    contact = make_contact()
    deal_service.ensure_deal(db, registry, contact.id, "comercial")
    db.commit()

    with pytest.raises(IntegrityError):
        routing_store.create_deal(
            db,
            contact_id=contact.id,
            team_category="comercial",
            funnel_id="funnel_comercial",
            stage_id="prospecting",
            name="duplicate",
        )
    db.rollback()


def test_insert_conflict_refetches_the_winner(db, registry, make_contact):
    """Lookup misses, insert conflicts with a concurrent winner, refetch returns it."""
    contact = make_contact()
    winner, _ = deal_service.ensure_deal(db, registry, contact.id, "tutoria")
    db.commit()

    real_find = routing_store.find_open_deal
    lookups = []

    def stale_then_real(session, contact_id, category):
        lookups.append(category)
        if len(lookups) == 1:
            return None
        return real_find(session, contact_id, category)

    with patch.object(routing_store, "find_open_deal", side_effect=stale_then_real):
        deal, created = deal_service.ensure_deal(db, registry, contact.id, "tutoria")

    assert not created
    assert deal.id == winner.id
    assert len(lookups) == 2
    assert len(_open_deals(db, contact.id, "tutoria")) == 1


def test_persistent_conflict_surfaces_transient_error(db, registry, make_contact):
    contact = make_contact()
    deal_service.ensure_deal(db, registry, contact.id, "tutoria")
    db.commit()

    with patch.object(routing_store, "find_open_deal", return_value=None):
        with pytest.raises(TransientStoreError):
            deal_service.ensure_deal(db, registry, contact.id, "tutoria", max_retries=2)


def test_deal_mirrors_assigned_agent(db, registry, make_contact, make_agent):
    contact = make_contact()
    agent = make_agent()

    deal, _ = deal_service.ensure_deal(
        db, registry, contact.id, "comercial", assigned_agent_id=agent.id
    )

    assert deal.assigned_agent_id == agent.id


# =============================================================================
# Repair
# =============================================================================


def _deal(db, contact, category, stage_id, funnel_id=None, status=DealStatus.OPEN.value):
    deal = Deal(
        contact_id=contact.id,
        name="Legado",
        team_category=category,
        funnel_id=funnel_id or f"funnel_{category}",
        stage_id=stage_id,
        status=status,
    )
    db.add(deal)
    db.commit()
    return deal


def test_repair_moves_deals_outside_their_funnel(db, registry, make_contact):
    misplaced = _deal(db, make_contact(), "secretaria_pos", "em_analise", "funnel_secretaria")
    correct = _deal(db, make_contact(), "secretaria", "em_analise")
    lost = _deal(db, make_contact(), "comercial", "solicitacao", status=DealStatus.LOST.value)
    orphan = _deal(db, make_contact(), "marketing", "anything")

    report = deal_service.repair_misplaced_deals(db, registry)

    assert report.scanned == 4
    assert report.moved == 2
    assert report.moved_by_category == {"secretaria_pos": 1, "comercial": 1}
    assert report.skipped_unknown_category == 1

    db.expire_all()
    assert db.get(Deal, misplaced.id).stage_id == "documentos_pendentes"
    assert db.get(Deal, misplaced.id).funnel_id == "funnel_secretaria_pos"
    assert db.get(Deal, correct.id).stage_id == "em_analise"
    assert db.get(Deal, lost.id).stage_id == "prospecting"
    assert db.get(Deal, orphan.id).stage_id == "anything"


def test_repair_dry_run_changes_nothing(db, registry, make_contact):
    misplaced = _deal(db, make_contact(), "suporte", "prospecting")

    report = deal_service.repair_misplaced_deals(db, registry, dry_run=True)

    assert report.dry_run
    assert report.moved == 1
    db.expire_all()
    assert db.get(Deal, misplaced.id).stage_id == "prospecting"


def test_repair_walks_all_batches(db, registry, make_contact):
    for _ in range(5):
        _deal(db, make_contact(), "cobranca", "fora_do_funil")

    report = deal_service.repair_misplaced_deals(db, registry, batch_size=2)

    assert report.scanned == 5
    assert report.moved == 5
