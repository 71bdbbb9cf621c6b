"""
Integration tests for the entity service against SQLite.

These tests verify that:
1. Saves and deletes are committed and visible to other contexts
2. Failed writes are rolled back, reported once and leave no partial data
3. Deletes load only a reference to the entity
4. Reads and writes are routed to their configured contexts
"""

import warnings

import pytest
from sqlalchemy import event

from bisna.exceptions import PersistenceFailure
from bisna.models.base import Base
from bisna.services.entity_service import EntityService, ServiceContexts
from tests.fixtures.models import Phonenumber, User


def test_save_new_entity(factory, user_service):
    """Test that a new entity gets an identifier once committed."""
    user = User(name="erin", email="erin@example.com")

    assert user_service.save(user) is True
    assert user.id is not None

    with factory.create_context() as other:
        assert other.find(User, user.id).name == "erin"


def test_save_updates_existing_entity(factory, user_service, users):
    """Test that changes to a loaded entity are committed."""
    bob = user_service.get(users["bob"])
    bob.name = "robert"

    assert user_service.save(bob) is True

    with factory.create_context() as other:
        assert other.find(User, users["bob"]).name == "robert"


def test_save_new_entity_failure(factory, user_service, notifications):
    """Test that a failed insert is rolled back and reported as a new entity."""
    user = User(name="erin", email=None)

    with pytest.raises(PersistenceFailure) as exc_info:
        user_service.save(user)

    assert "new entity" in str(exc_info.value)
    assert exc_info.value.entity_id is None
    assert len(notifications.received) == 1
    assert notifications.received[0][1] is exc_info.value.cause
    assert user.id is None
    assert user_service.contexts.write.in_transaction() is False

    with factory.create_context() as other:
        assert other.get_repository(User).count() == 0


def test_save_new_entity_failure_after_insert(factory, user_service, notifications):
    """Test that a failed cascaded insert still reports a new entity without identifier."""
    user = User(name="erin", email="erin@example.com", phonenumbers=[Phonenumber(number=None)])

    with pytest.raises(PersistenceFailure) as exc_info:
        user_service.save(user)

    assert str(exc_info.value) == "Unable to save new entity."
    assert exc_info.value.entity_id is None
    assert user.id is None
    assert len(notifications.received) == 1

    with factory.create_context() as other:
        assert other.get_repository(User).count() == 0


def test_save_retry_after_failed_insert(factory, user_service):
    """Test that an entity can be saved again once the failing child is fixed."""
    phone = Phonenumber(number=None)
    user = User(name="erin", email="erin@example.com", phonenumbers=[phone])

    with pytest.raises(PersistenceFailure):
        user_service.save(user)

    phone.number = "555-0400"
    assert user_service.save(user) is True
    assert user.id is not None

    with factory.create_context() as other:
        assert [p.number for p in other.find(User, user.id).phonenumbers] == ["555-0400"]


def test_save_existing_entity_failure(factory, user_service, users, notifications):
    """Test that a failed update names the entity and keeps stored data."""
    bob = user_service.get(users["bob"])
    bob.email = "alice@example.com"

    with pytest.raises(PersistenceFailure, match=f"Unable to save entity with ID: {users['bob']}"):
        user_service.save(bob)

    assert len(notifications.received) == 1
    with factory.create_context() as other:
        assert other.find(User, users["bob"]).email == "bob@example.com"


def test_get_missing_returns_none(user_service, users, notifications):
    """Test that a missing entity is not a failure."""
    assert user_service.get(999) is None
    assert notifications.received == []


def test_filter_without_criteria_returns_all(user_service, users):
    """Test the default filter over every user."""
    assert sorted(user.name for user in user_service.filter()) == ["alice", "bob", "carol", "dave"]


def test_filter_with_criteria(user_service, users):
    """Test filtering with criteria built by the service."""
    criteria = user_service.build_filter_criteria("u") \
        .where("u.active = 1") \
        .order_by("u.name") \
        .set_max_results(2)

    assert criteria.root_alias == "u"
    assert [user.name for user in user_service.filter(criteria)] == ["alice", "carol"]


def test_filter_backend_failure(user_service, users, notifications):
    """Test that an invalid fragment fails at execution and is wrapped."""
    criteria = user_service.build_filter_criteria("u").where("u.no_such_column = 1")

    with pytest.raises(PersistenceFailure, match="Unable to retrieve entities."):
        user_service.filter(criteria)

    assert len(notifications.received) == 1


def test_delete(factory, user_service, users):
    """Test that a delete is committed."""
    assert user_service.delete(users["dave"]) is True

    with factory.create_context() as other:
        assert other.find(User, users["dave"]) is None


def test_delete_does_not_fetch_entity(factory, user_service, users):
    """Test that deleting issues no SELECT for the entity."""
    statements = []
    engine = factory.get_engine()

    def record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(engine, "before_cursor_execute", record)
    try:
        user_service.delete(users["dave"])
        with warnings.catch_warnings():
            # Deleting a missing row only warns that no row matched
            warnings.simplefilter("ignore")
            assert user_service.delete(42) is True
    finally:
        event.remove(engine, "before_cursor_execute", record)

    assert statements
    assert not [statement for statement in statements if statement.lstrip().upper().startswith("SELECT")]


def test_delete_constraint_violation(factory, user_service, users, notifications):
    """Test that a refused delete is rolled back and names the identifier."""
    with pytest.raises(PersistenceFailure) as exc_info:
        user_service.delete(users["alice"])

    assert str(exc_info.value) == f"Unable to delete entity with ID: {users['alice']}"
    assert exc_info.value.operation == "delete"
    assert len(notifications.received) == 1

    with factory.create_context() as other:
        assert other.find(User, users["alice"]) is not None
        assert other.get_repository(Phonenumber).count() == 3


def test_service_recovers_after_failure(factory, user_service):
    """Test that the context is usable again after a rolled back write."""
    with pytest.raises(PersistenceFailure):
        user_service.save(User(name="erin", email=None))

    user = User(name="frank", email="frank@example.com")
    assert user_service.save(user) is True
    assert user_service.get(user.id).name == "frank"


def test_transactional_commits_all_or_nothing(factory, user_service):
    """Test that several saves share one transaction."""
    def save_two(repository):
        repository.save(User(name="gina", email="gina@example.com"))
        repository.save(User(name="hank", email="gina@example.com"))

    with pytest.raises(PersistenceFailure, match="Unable to complete transaction."):
        user_service.transactional(save_two)

    with factory.create_context() as other:
        assert other.get_repository(User).count() == 0


def test_from_factory_uses_one_context_by_default(factory):
    """Test that default settings use the same context for reads and writes."""
    service = EntityService.from_factory(User, factory)

    assert service.contexts.read is service.contexts.write
    assert service.save(User(name="ivy", email="ivy@example.com")) is True


def test_reads_and_writes_use_their_own_contexts(factory):
    """Test routing reads to a separate read database."""
    factory.register("read", "sqlite://")
    factory.create_tables(Base.metadata, "read")
    service = EntityService(
        User,
        ServiceContexts(read=factory.create_context("read"), write=factory.create_context()),
    )

    user = User(name="jane", email="jane@example.com")
    service.save(user)

    assert service.filter() == []
    assert service.get(user.id) is None
    with factory.create_context() as primary:
        assert primary.find(User, user.id) is not None
