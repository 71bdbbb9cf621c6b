"""
Pytest configuration and fixtures for testing.

This module provides shared fixtures and configuration for all tests. Every
test gets its own in-memory SQLite database.
"""

import os
import sys
import pytest
from pathlib import Path
from unittest.mock import MagicMock

# Add the project root directory to the Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set testing environment
os.environ["TESTING"] = "true"

from bisna.adapters.database import PersistenceContext
from bisna.adapters.database.factory import PersistenceContextFactory
from bisna.models.base import Base
from bisna.services.entity_service import EntityService
from bisna.services.notification import NotificationService
from bisna.utils.config import Settings
from tests.fixtures.models import Group, Phonenumber, User


@pytest.fixture
def settings() -> Settings:
    """Settings pointing at an in-memory database."""
    return Settings(DATABASE_URL="sqlite://", DEBUG=False)


@pytest.fixture
def factory(settings):
    """Context factory with the test tables created."""
    factory = PersistenceContextFactory(settings)
    factory.create_tables(Base.metadata)
    yield factory
    factory.dispose()


@pytest.fixture
def context(factory):
    """A fresh persistence context."""
    context = factory.create_context()
    yield context
    context.close()


@pytest.fixture
def notifications():
    """Notification service recording every exception event."""
    service = NotificationService()
    service.received = []
    service.subscribe("exception", lambda event_name, error: service.received.append((event_name, error)))
    return service


@pytest.fixture
def user_service(context, notifications) -> EntityService:
    """User service on a single context, reporting to ``notifications``."""
    return EntityService(User, context, observer=notifications)


@pytest.fixture
def users(factory):
    """Seed users, groups and phonenumbers; returns the user ids by name."""
    with factory.create_context() as seed:
        admins = Group(name="admins")
        staff = Group(name="staff")
        alice = User(name="alice", email="alice@example.com", active=True, group=admins)
        bob = User(name="bob", email="bob@example.com", active=False, group=staff)
        carol = User(name="carol", email="carol@example.com", active=True, group=staff)
        dave = User(name="dave", email="dave@example.com", active=True)
        alice.phonenumbers = [Phonenumber(number="555-0100"), Phonenumber(number="555-0101")]
        carol.phonenumbers = [Phonenumber(number="555-0300")]

        seed.session.add_all([admins, staff, alice, bob, carol, dave])
        seed.session.commit()
        return {user.name: user.id for user in (alice, bob, carol, dave)}


@pytest.fixture
def mock_context():
    """
    Mocked persistence context.

    ``transactional`` runs the real implementation against the mocked
    primitives so begin/flush/commit/rollback calls can be asserted.
    """
    mock = MagicMock(spec=PersistenceContext)
    mock.transactional.side_effect = lambda callback: PersistenceContext.transactional(mock, callback)
    mock.get_identifier.return_value = None
    return mock
