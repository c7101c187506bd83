"""Test configuration and fixtures."""

import os
import tempfile

import pytest

# Point the indexer at a throwaway SQLite file BEFORE lineage_indexer.config
# is imported. DATABASE_URL overrides the POSTGRES_* composition.
_db_dir = tempfile.mkdtemp(prefix="lineage-indexer-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'indexer.db')}"
os.environ["GENESIS_BLOCK"] = "0"
os.environ["CONFIRMATION_BLOCKS"] = "0"
os.environ["BLOCK_BATCH_SIZE"] = "100"

from lineage_indexer.database import Base, SessionLocal, engine
import lineage_indexer.models  # noqa: F401 - registers tables

from tests.factories import FakeLedgerSource


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database tables before tests."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    yield

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(autouse=True)
def clean_tables():
    """Empty every table after each test, children first."""
    yield
    db = SessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        db.commit()
    finally:
        db.close()


@pytest.fixture
def db():
    """Database session fixture."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def ledger():
    """In-memory ledger the tests append logs to."""
    return FakeLedgerSource()


@pytest.fixture
def indexer(ledger):
    from lineage_indexer.indexer import LineageIndexer

    return LineageIndexer(source=ledger)
