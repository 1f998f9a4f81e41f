"""Pytest configuration and fixtures for ledger tests."""

import random

import pytest
from sqlalchemy.orm import sessionmaker, scoped_session

from src.models.base import Base
from src.services.database import create_database_engine, init_database
from src.utils.config import get_config, reset_config


@pytest.fixture(autouse=True)
def ledger_config():
    """Fresh configuration per test with retry backoff disabled."""
    reset_config()
    config = get_config()
    config.configure_ledger(retry_backoff_seconds=0)
    yield config
    reset_config()


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database (with the SAVEPOINT-ready hooks)
    2. Creates all tables
    3. Provides the database to the test
    4. Drops all tables after the test completes
    """
    engine = create_database_engine("sqlite:///:memory:")
    init_database(engine)

    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    # Monkey-patch the global session factory for tests
    import src.services.database as db_module

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    yield Session

    # Cleanup
    Session.remove()
    Base.metadata.drop_all(engine)
    engine.dispose()

    # Restore original session factory
    db_module.get_session_factory = original_get_session


@pytest.fixture
def catalog(test_db):
    """Seed the compound catalog.

    nk5 (Nk-5): cover, 90 kg per batch
    nk8 (NK-8): cover, 100 kg per batch
    sk2 (Sk-2): skim, 50 kg per batch
    """
    from src.services.compound_catalog_service import create_compound_master

    return {
        "nk5": create_compound_master("nk5", "Nk-5", "90", category="cover"),
        "nk8": create_compound_master("nk8", "NK-8", "100", category="cover"),
        "sk2": create_compound_master("sk2", "Sk-2", "50", category="skim"),
    }


@pytest.fixture
def single_batch_lots(ledger_config):
    """Auto-created batches hold exactly one mixer batch (90 kg for nk5)."""
    ledger_config.configure_ledger(batch_count_min=1, batch_count_max=1)
    return ledger_config.ledger


@pytest.fixture
def rng():
    return random.Random(1234)
