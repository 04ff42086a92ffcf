"""SQLAlchemy persistence for chat sessions and messages.

Defines the two tables the conversation memory writes to. Any SQLAlchemy URL
works; SQLite is the local default, Postgres in production.
"""

import os
from datetime import datetime, timezone

import structlog
from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = structlog.get_logger(__name__)

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatSessionRow(Base):
    """One continuous conversation of a user."""
    __tablename__ = "chat_sessions"

    id = Column(String(36), primary_key=True)
    user_id = Column(String, index=True, nullable=False)
    title = Column(String, nullable=True)
    equipment_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)


class ChatMessageRow(Base):
    """Persisted chat message. Text only, images are replaced by a marker."""
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)
    role = Column(String, nullable=False)  # "user" or "assistant"
    content = Column(Text, nullable=False)
    tools_used = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)


def init_db(database_url: str) -> sessionmaker:
    """Create engine + tables and return a session factory.

    Args:
        database_url: SQLAlchemy connection string.

    Returns:
        sessionmaker bound to the new engine.
    """
    kwargs = {}
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        # one shared connection so worker threads see the same in-memory db
        kwargs = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    elif database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        db_path = make_url(database_url).database
        if db_path and os.path.dirname(db_path):
            os.makedirs(os.path.dirname(db_path), exist_ok=True)

    engine = create_engine(database_url, echo=False, **kwargs)
    Base.metadata.create_all(engine)
    logger.info("db.initialized", url=database_url.split("://")[0] + "://***")
    return sessionmaker(bind=engine, expire_on_commit=False)


def ping(session_factory: sessionmaker) -> bool:
    """Return True if the database answers a trivial query."""
    try:
        with session_factory() as session:
            session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error("db.ping_failed", error=str(e))
        return False
