"""
Dataroom Database Base — SQLAlchemy declarative base, mixins, and engine registry.

Provides:
- Base: SQLAlchemy declarative base for all models
- AuditMixin: created_at, updated_at
- EngineRegistry: Named engines + session factories
- new_id(): opaque primary keys for tree rows
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime, create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool


def new_id() -> str:
    """Opaque 32-char identifier used for every tree row."""
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all dataroom models."""
    pass


class AuditMixin:
    """Adds created_at and updated_at columns."""
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


class EngineRegistry:
    """
    Registry of named SQLAlchemy engines.

    Usage:
        registry = EngineRegistry()
        registry.register("dataroom_core", "postgresql://...")
        session = registry.get_session("dataroom_core")
    """

    def __init__(self):
        self._engines: Dict[str, Any] = {}
        self._session_factories: Dict[str, sessionmaker] = {}

    def register(
        self,
        name: str,
        url: str,
        pool_size: int = 10,
        max_overflow: int = 20,
        pool_timeout: int = 30,
        pool_recycle: int = 1800,
        pool_pre_ping: bool = True,
        **kwargs: Any,
    ) -> None:
        """Register a new database engine."""
        if url.startswith("sqlite"):
            # In-memory SQLite must share one connection across sessions.
            engine = create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool if ":memory:" in url or url == "sqlite://" else None,
                **kwargs,
            )
        else:
            engine = create_engine(
                url,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_recycle=pool_recycle,
                pool_pre_ping=pool_pre_ping,
                **kwargs,
            )
        self._engines[name] = engine
        self._session_factories[name] = sessionmaker(bind=engine, expire_on_commit=False)

    def get(self, name: str) -> Any:
        """Get a registered engine by name."""
        if name not in self._engines:
            raise KeyError(f"Engine '{name}' not registered. Available: {list(self._engines.keys())}")
        return self._engines[name]

    def get_session_factory(self, name: str) -> sessionmaker:
        if name not in self._session_factories:
            raise KeyError(f"Session factory '{name}' not found. Available: {list(self._session_factories.keys())}")
        return self._session_factories[name]

    def get_session(self, name: str = "dataroom_core") -> Session:
        """Get a new session for a registered engine."""
        return self.get_session_factory(name)()

    def dispose(self, name: Optional[str] = None) -> None:
        """Dispose one or all engines (close connection pools)."""
        if name:
            if name in self._engines:
                self._engines.pop(name).dispose()
                self._session_factories.pop(name, None)
        else:
            for engine in self._engines.values():
                engine.dispose()
            self._engines.clear()
            self._session_factories.clear()

    @property
    def registered_names(self) -> list:
        return list(self._engines.keys())

    def health_check(self, name: str) -> bool:
        """Check if an engine can connect."""
        try:
            engine = self.get(name)
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except (KeyError, SQLAlchemyError):
            return False


# Global engine registry singleton
engine_registry = EngineRegistry()
