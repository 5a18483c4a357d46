"""Pytest configuration and shared fixtures."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from procureflow.core.config import Settings
from procureflow.db.base import Base
from procureflow.db.session import SessionLocal, configure_engine, init_db
from procureflow.workers.dispatcher import SideEffectDispatcher

from tests.fakes import NOW, InMemoryApprovalRepository, InlineExecutor, RecordingCollaborator


@pytest.fixture
def now():
    """Fixed instant used as the engine's clock."""
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def app_settings():
    """Settings with defaults only, independent of the environment."""
    return Settings(
        _env_file=None,
        default_ceo_approval_threshold=Decimal("15000"),
        delegation_scope="PO_APPROVAL",
        side_effect_workers=2,
    )


@pytest.fixture
def org_id():
    return uuid4()


@pytest.fixture
def repo():
    """Empty in-memory approval repository."""
    return InMemoryApprovalRepository()


@pytest.fixture
def inline_dispatcher():
    """Dispatcher that runs side effects synchronously on the calling thread."""
    return SideEffectDispatcher(executor=InlineExecutor())


@pytest.fixture
def notifier():
    return RecordingCollaborator()


@pytest.fixture
def emails():
    return RecordingCollaborator()


@pytest.fixture
def documents():
    return RecordingCollaborator(result="https://docs.example.com/po.pdf")


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database shared by every session in the test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_engine(engine)
    init_db(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Session bound to the per-test database."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(engine, inline_dispatcher, emails):
    """API test client on the per-test database, running side effects inline."""
    from fastapi import Depends
    from fastapi.testclient import TestClient

    from procureflow.api.deps import get_approval_service, get_db
    from procureflow.api.main import app
    from procureflow.core.approval import ApprovalService
    from procureflow.db.repository import SqlAlchemyApprovalRepository
    from procureflow.services import NotificationService

    def approval_service(db=Depends(get_db)):
        return ApprovalService(
            SqlAlchemyApprovalRepository(db),
            notifier=NotificationService(SessionLocal, app_base_url=""),
            emails=emails,
            dispatcher=inline_dispatcher,
        )

    app.dependency_overrides[get_approval_service] = approval_service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def sample_config():
    """Sample organisation workflow configuration dictionary."""
    return {
        "organisation": {
            "name": "Acme Property",
            "slug": "acme",
        },
        "thresholds": {
            "use_custom_workflows": True,
            "auto_approve_below_amount": 2000,
            "require_ceo_above_amount": 15000,
        },
        "workflows": [
            {
                "name": "Standard PO",
                "document_type": "PO",
                "default": True,
                "steps": [
                    {"role": "PROPERTY_MANAGER", "max_amount": 5000},
                    {"role": "MD"},
                    {"role": "CEO", "min_amount": 15000},
                ],
            },
            {
                "name": "Invoices",
                "document_type": "INVOICE",
                "default": True,
                "steps": [{"role": "MD"}],
            },
        ],
    }
