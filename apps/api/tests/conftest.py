"""
Test configuration and fixtures.

Provides:
- Fresh in-memory SQLite database per test (schema from the ORM models)
- Registry / classifier / orchestrator built from the built-in team table
- Factories for contacts, agents and conversations
- HTTPX AsyncClient with the internal secret header
"""
import os
import uuid
from datetime import datetime
from typing import AsyncGenerator, Generator

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["INTERNAL_SECRET"] = "test-internal-secret"
os.environ["SYNC_TEAMS_ON_STARTUP"] = "false"
os.environ["RATE_LIMIT_WEBHOOK"] = "0"

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.orm import Session, sessionmaker

from inbox_routing.core.deps import get_db, get_orchestrator, get_registry
from inbox_routing.core.team_registry import TeamRegistry, load_registry
from inbox_routing.db.base import Base
from inbox_routing.db.enums import Channel
from inbox_routing.db.models import Agent, Contact, Conversation, Team, TeamMember
from inbox_routing.db.session import build_engine
from inbox_routing.main import app
from inbox_routing.services import team_service
from inbox_routing.services.classification_service import TeamClassifier
from inbox_routing.services.ingestion_service import IngestionOrchestrator

INTERNAL_SECRET = "test-internal-secret"


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def engine():
    test_engine = build_engine("sqlite://")
    Base.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="function")
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# Routing Components
# =============================================================================

@pytest.fixture(scope="function")
def registry() -> TeamRegistry:
    return load_registry()


@pytest.fixture(scope="function")
def classifier(registry: TeamRegistry) -> TeamClassifier:
    return TeamClassifier(registry, min_confidence=30, unmatched_category="comercial")


@pytest.fixture(scope="function")
def orchestrator(registry: TeamRegistry, classifier: TeamClassifier) -> IngestionOrchestrator:
    return IngestionOrchestrator(registry, classifier)


@pytest.fixture(scope="function")
def teams(db: Session, registry: TeamRegistry) -> dict[str, Team]:
    """Team rows synced from the built-in table, keyed by category."""
    team_service.sync_teams(db, registry)
    return {team.category: team for team in db.query(Team).all()}


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture(scope="function")
def make_contact(db: Session):
    def _make(name: str = "Maria Silva") -> Contact:
        contact = Contact(name=name, phone=f"+5511{uuid.uuid4().int % 10**9:09d}")
        db.add(contact)
        db.commit()
        return contact

    return _make


@pytest.fixture(scope="function")
def make_agent(db: Session):
    def _make(
        team: Team | None = None,
        *,
        name: str | None = None,
        online: bool = True,
        active: int = 0,
        lifetime: int = 0,
        last_assigned_at: datetime | None = None,
    ) -> Agent:
        suffix = uuid.uuid4().hex[:8]
        agent = Agent(
            email=f"agent-{suffix}@test.com",
            display_name=name or f"Agent {suffix}",
            is_online=online,
            active_conversations=active,
            lifetime_assignments=lifetime,
            last_assigned_at=last_assigned_at,
        )
        db.add(agent)
        db.flush()
        if team is not None:
            db.add(TeamMember(team_id=team.id, agent_id=agent.id))
        db.commit()
        return agent

    return _make


@pytest.fixture(scope="function")
def make_conversation(db: Session, make_contact):
    def _make(contact: Contact | None = None, channel: Channel = Channel.WHATSAPP) -> Conversation:
        contact = contact or make_contact()
        conversation = Conversation(contact_id=contact.id, channel=channel.value)
        db.add(conversation)
        db.commit()
        return conversation

    return _make


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(
    db: Session,
    registry: TeamRegistry,
    orchestrator: IngestionOrchestrator,
) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient with the internal secret header and test dependencies."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Internal-Secret": INTERNAL_SECRET},
    ) as c:
        yield c

    app.dependency_overrides.clear()
