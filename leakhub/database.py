"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for users, requests and leaks.
"""

import enum
from datetime import datetime
from functools import lru_cache
from pathlib import Path

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

Base = declarative_base()


class TargetType(str, enum.Enum):
    """Kind of thing a leak or request targets."""

    MODEL = "model"
    APP = "app"
    TOOL = "tool"
    AGENT = "agent"
    PLUGIN = "plugin"
    CUSTOM = "custom"


class ClosedBy(str, enum.Enum):
    """Why a request was closed."""

    USER = "user"
    VERIFICATION = "verification"


def _enum_column(enum_cls):
    return Enum(
        enum_cls,
        native_enum=False,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class User(Base):
    """Account that submits leaks, opens requests and earns points."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True)
    image = Column(String, nullable=False, default="")
    points = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class Request(Base):
    """Open call for a leak of a specific target."""

    __tablename__ = "requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    target_name = Column(String, nullable=False)
    provider = Column(String, nullable=False)
    target_type = Column(_enum_column(TargetType), nullable=False)
    target_url = Column(String, nullable=False)
    closed = Column(Boolean, nullable=False, default=False)
    closed_by = Column(_enum_column(ClosedBy), nullable=True)
    submitted_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    # Submission order == leak id order
    leaks = relationship("Leak", back_populates="request", order_by="Leak.id")


class Leak(Base):
    """Candidate text for a target, submitted by a user or imported as trusted."""

    __tablename__ = "leaks"
    __table_args__ = (
        UniqueConstraint("request_id", "submitted_by", name="uq_leak_request_submitter"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey("requests.id"), nullable=True, index=True)
    leak_text = Column(Text, nullable=False)
    target_name = Column(String, nullable=False)
    provider = Column(String, nullable=False, index=True)
    target_type = Column(_enum_column(TargetType), nullable=False)
    leak_context = Column(Text, nullable=True)
    url = Column(String, nullable=True)
    access_notes = Column(Text, nullable=True)
    requires_login = Column(Boolean, nullable=True)
    is_paid = Column(Boolean, nullable=True)
    has_tool_prompts = Column(Boolean, nullable=True)
    submitted_by = Column(Integer, ForeignKey("users.id"), nullable=True)  # None for trusted imports
    is_fully_verified = Column(Boolean, nullable=False, default=False, index=True)
    verified_by = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    request = relationship("Request", back_populates="leaks")


@lru_cache(maxsize=None)
def get_engine(db_path: Path):
    """
    Get (and cache) the engine for a database file.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy engine
    """
    # Writers wait on the SQLite lock instead of failing immediately
    return create_engine(f"sqlite:///{db_path}", connect_args={"timeout": 30})


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(get_engine(db_path))


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    Session = sessionmaker(bind=get_engine(db_path))
    return Session()
