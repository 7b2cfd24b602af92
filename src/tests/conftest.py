"""Pytest configuration and fixtures for service and API tests."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session
from sqlalchemy.pool import StaticPool

import src.services.database as db_module
from src.models import InventoryItem, Patient, StaffMember
from src.models.base import Base
from src.utils.config import reset_config


def _memory_engine():
    # One shared connection so API worker threads see the same database
    return create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


def _patch_session_factory(Session):
    original = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session
    return original


@pytest.fixture(autouse=True)
def fresh_config():
    """Rebuild configuration from the environment for every test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Provides the database to the test
    4. Drops all tables after the test completes
    """
    engine = _memory_engine()
    Base.metadata.create_all(engine)

    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    original_get_session = _patch_session_factory(Session)

    yield Session

    Session.remove()
    Base.metadata.drop_all(engine)
    engine.dispose()
    db_module.get_session_factory = original_get_session


@pytest.fixture(scope="function")
def unprovisioned_db():
    """Provide a database with no tables, as before migrations are applied."""
    engine = _memory_engine()
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    original_get_session = _patch_session_factory(Session)

    yield Session

    Session.remove()
    engine.dispose()
    db_module.get_session_factory = original_get_session


@pytest.fixture
def optimistic_locking(monkeypatch):
    """Turn on compare-and-swap stock writes for one test."""
    monkeypatch.setenv("CLINIC_OPTIMISTIC_LOCKING", "true")
    reset_config()
    yield
    reset_config()


def _add(session, obj):
    session.add(obj)
    session.commit()
    session.refresh(obj)
    # Drop the identity map so later reads hit the database
    session.close()
    return obj


@pytest.fixture
def doctor(test_db):
    return _add(
        test_db(),
        StaffMember(full_name="Dr. Amina Yusuf", email="amina@clinic.test", role="doctor"),
    )


@pytest.fixture
def admin(test_db):
    return _add(
        test_db(),
        StaffMember(full_name="Sam Okafor", email="sam@clinic.test", role="admin"),
    )


@pytest.fixture
def receptionist(test_db):
    return _add(
        test_db(),
        StaffMember(full_name="Lee Park", email="lee@clinic.test", role="receptionist"),
    )


@pytest.fixture
def nurse(test_db):
    return _add(
        test_db(),
        StaffMember(full_name="Ruth Mensah", email="ruth@clinic.test", role="nurse"),
    )


@pytest.fixture
def patient(test_db):
    return _add(test_db(), Patient(full_name="Jordan Blake", mrn="MRN-0001"))


@pytest.fixture
def paracetamol(test_db):
    return _add(
        test_db(),
        InventoryItem(name="Paracetamol 500mg", unit="tabs", quantity=100, low_stock_threshold=20),
    )


@pytest.fixture
def amoxicillin(test_db):
    return _add(
        test_db(),
        InventoryItem(name="Amoxicillin 250mg", unit="caps", quantity=5, low_stock_threshold=10),
    )


@pytest.fixture
def gauze(test_db):
    return _add(
        test_db(),
        InventoryItem(name="Gauze pads", unit="box", quantity=10, low_stock_threshold=3),
    )


@pytest.fixture
def client(test_db):
    """TestClient over a fresh app bound to the test database."""
    from fastapi.testclient import TestClient

    from src.api import create_app

    with TestClient(create_app()) as test_client:
        yield test_client
