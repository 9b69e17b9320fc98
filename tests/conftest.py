"""
Shared test fixtures.

Storage and orchestrator tests run against the in-memory fakes in
tests/fakes.py, so no MongoDB server or network access is needed.
"""
import pytest

from billwatch.database.storage import BillStore, SnapshotStore

from tests.fakes import FakeCongressApi, FakeDatabase


@pytest.fixture
def fake_db():
    """Empty in-memory database."""
    return FakeDatabase()


@pytest.fixture
def store(fake_db):
    """BillStore using generation swaps (no transactions)."""
    return BillStore(fake_db, use_transactions=False)


@pytest.fixture
def snapshots(fake_db):
    return SnapshotStore(fake_db)


@pytest.fixture
def fake_api():
    """Fake Congress.gov client with a test API key and no bills."""
    return FakeCongressApi()
