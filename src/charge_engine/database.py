"""Database connection and session management."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from charge_engine.models.base import Base

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine


def get_engine(database_url: str) -> Engine:
    """Create database engine."""
    if database_url.startswith("sqlite"):
        # Request threads share the engine
        return create_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False},
        )
    return create_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def init_db(database_url: str) -> tuple[Engine, sessionmaker[Session]]:
    """Create the engine, make sure the tables exist and return a session factory."""
    engine = get_engine(database_url)
    Base.metadata.create_all(engine)
    factory = sessionmaker(engine, expire_on_commit=False, autoflush=False)
    return engine, factory
