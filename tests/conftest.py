"""Pytest configuration and shared fixtures."""

import os
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing settings
os.environ["TESTING"] = "true"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["OPENAI_API_KEY"] = "test-key"

from config.settings import ConsolidationConfig, ReasoningConfig
from project_engine.managers.project_store import ProjectStore
from project_engine.models import Base
from project_engine.services.reasoning_client import ReasoningClient
from project_engine.utils.prompt_manager import PromptManager

from tests.helpers import OWNER, FakeChatModel


@pytest.fixture
def db_engine():
    """Create in-memory database engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine)


@pytest.fixture
def store(session_factory):
    return ProjectStore(session_factory=session_factory)


@pytest.fixture
def owner_id():
    return OWNER


@pytest.fixture
def prompt_manager():
    """Prompts from the repository's YAML file."""
    return PromptManager()


@pytest.fixture
def reasoning_config():
    return ReasoningConfig(max_attempts=3, base_delay=1.0, backoff_factor=2.0, max_delay=4.0, timeout=5.0)


@pytest.fixture
def consolidation_config():
    return ConsolidationConfig()


@pytest.fixture
def no_sleep():
    """Skip real backoff waits; the mock records requested delays."""
    with patch("project_engine.utils.retry_logic.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


@pytest.fixture
def make_client(reasoning_config, no_sleep):
    """Build a ReasoningClient over a scripted fake model."""

    def _make(*responses):
        llm = FakeChatModel(*responses)
        return ReasoningClient(llm=llm, config=reasoning_config), llm

    return _make


@pytest.fixture
def make_project(store, owner_id):
    def _make(name, updates=None, context=None, status="open", last_update=""):
        return store.create_project(
            owner_id=owner_id,
            name=name,
            status=status,
            last_update=last_update,
            context=context,
            updates=updates or [],
        )

    return _make


@pytest.fixture
def make_task(store, owner_id):
    def _make(task, meeting_id=1, project_id=None, owner="Alex", priority="medium"):
        return store.create_task(
            owner_id=owner_id,
            meeting_id=meeting_id,
            task=task,
            owner=owner,
            project_id=project_id,
            priority=priority,
        )

    return _make
