"""Key/value stores for checkpointed collector state.

The engine only needs ``get``/``put`` on JSON documents. Production runs use
the SQLAlchemy-backed store; tests and dry runs use the in-memory one.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import select

from . import CollectorState
from .database import DatabaseManager

logger = logging.getLogger(__name__)


class StateStore(Protocol):
    def get(self, key: str) -> dict[str, Any] | None: ...

    def put(self, key: str, value: dict[str, Any]) -> None: ...


class InMemoryStateStore:
    """Dict-backed store. Values are deep-copied on the way in and out."""

    def __init__(self, initial: dict[str, dict[str, Any]] | None = None):
        self._data: dict[str, dict[str, Any]] = copy.deepcopy(initial or {})

    def get(self, key: str) -> dict[str, Any] | None:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    def put(self, key: str, value: dict[str, Any]) -> None:
        self._data[key] = copy.deepcopy(value)


class SQLAlchemyStateStore:
    """Stores each document as one JSON row in ``collector_state``."""

    def __init__(self, db: DatabaseManager | None = None):
        self.db = db or DatabaseManager()

    def get(self, key: str) -> dict[str, Any] | None:
        with self.db.get_session() as session:
            row = session.execute(
                select(CollectorState).where(CollectorState.key == key)
            ).scalar_one_or_none()
            if row is None:
                return None
            return copy.deepcopy(row.value)

    def put(self, key: str, value: dict[str, Any]) -> None:
        with self.db.get_session() as session:
            row = session.get(CollectorState, key)
            if row is None:
                session.add(CollectorState(key=key, value=copy.deepcopy(value)))
            else:
                row.value = copy.deepcopy(value)
                row.updated_at = datetime.utcnow()
        logger.debug(f"Persisted collector state '{key}'")
