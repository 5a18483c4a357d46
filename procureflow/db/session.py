"""Database engine and session factory.

The engine is created on first use from Settings.database_url, so importing
this module never opens a connection.
"""

import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from procureflow.core.config import get_settings
from procureflow.db.base import Base

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_session_factory = sessionmaker(autocommit=False, autoflush=False)


def get_engine() -> Engine:
    """Get the process-wide engine, creating it on first call."""
    global _engine
    if _engine is None:
        url = get_settings().database_url
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        configure_engine(create_engine(url, pool_pre_ping=True, connect_args=connect_args))
    return _engine


def configure_engine(engine: Engine) -> None:
    """Bind the session factory to an engine (used by tests and tools)."""
    global _engine
    _engine = engine
    _session_factory.configure(bind=engine)
    logger.debug(f"Database engine configured: {engine.url.render_as_string(hide_password=True)}")


def SessionLocal() -> Session:
    """Open a new session on the configured engine."""
    get_engine()
    return _session_factory()


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables that do not exist yet."""
    import procureflow.db.models  # noqa: F401  registers every model on Base

    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")
