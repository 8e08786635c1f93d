"""
Storage collaborator interface and the in-process implementation.

Rows are plain JSON-ready dicts keyed by an ``id`` column, mirroring what the
Supabase client returns in ``result.data``. Unique constraints are enforced
here and surfaced as ConflictError.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from app.core.errors import ConflictError, NotFoundError
from app.modules.teams.models import (
    TEAMS_TABLE, TEAMS_UNIQUE, TEAM_MEMBERS_TABLE, TEAM_MEMBERS_UNIQUE
)
from app.modules.users.models import USERS_TABLE, USERS_UNIQUE

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

UNIQUE_CONSTRAINTS: Dict[str, List[Tuple[str, ...]]] = {
    USERS_TABLE: USERS_UNIQUE,
    TEAMS_TABLE: TEAMS_UNIQUE,
    TEAM_MEMBERS_TABLE: TEAM_MEMBERS_UNIQUE,
}


class Storage(ABC):
    """CRUD + filtered select + transactional scope, per table."""

    @abstractmethod
    def insert(self, table: str, row: Row) -> Row:
        ...

    @abstractmethod
    def get(self, table: str, row_id: str) -> Optional[Row]:
        ...

    @abstractmethod
    def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        desc: bool = False,
    ) -> List[Row]:
        ...

    @abstractmethod
    def update(self, table: str, row_id: str, changes: Row) -> Row:
        ...

    @abstractmethod
    def delete(self, table: str, row_id: str) -> bool:
        ...

    @abstractmethod
    def delete_where(self, table: str, filters: Dict[str, Any]) -> int:
        ...

    @abstractmethod
    def transaction(self):
        """Context manager; an exception inside rolls back every write made in it."""


def _matches(row: Row, filters: Optional[Dict[str, Any]]) -> bool:
    if not filters:
        return True
    return all(row.get(key) == value for key, value in filters.items())


def _ordered(rows: List[Row], order_by: Optional[str], desc: bool) -> List[Row]:
    if not order_by:
        return rows
    # None sorts first ascending, like Postgres NULLS FIRST on DESC
    return sorted(rows, key=lambda r: (r.get(order_by) is not None, r.get(order_by) or ""), reverse=desc)


class InMemoryStorage(Storage):
    """Thread-safe dict-backed storage with snapshot rollback.

    A transaction holds the storage lock for its whole duration, so
    concurrent writers are serialized and readers never see uncommitted rows
    from another thread.
    """

    def __init__(self, unique_constraints: Optional[Dict[str, Sequence[Tuple[str, ...]]]] = None):
        self._tables: Dict[str, Dict[str, Row]] = {}
        self._unique = UNIQUE_CONSTRAINTS if unique_constraints is None else unique_constraints
        self._lock = threading.RLock()
        self._depth = 0
        self._snapshot: Optional[Dict[str, Dict[str, Row]]] = None

    def _table(self, table: str) -> Dict[str, Row]:
        return self._tables.setdefault(table, {})

    def _check_unique(self, table: str, row: Row, ignore_id: Optional[str] = None) -> None:
        for columns in self._unique.get(table, []):
            values = tuple(row.get(c) for c in columns)
            if any(v is None for v in values):
                continue
            for existing in self._table(table).values():
                if existing["id"] == ignore_id:
                    continue
                if tuple(existing.get(c) for c in columns) == values:
                    raise ConflictError(
                        "Unique constraint violated",
                        {"table": table, "columns": list(columns)},
                    )

    def insert(self, table: str, row: Row) -> Row:
        with self._lock:
            if row["id"] in self._table(table):
                raise ConflictError("Duplicate primary key", {"table": table})
            self._check_unique(table, row)
            self._table(table)[row["id"]] = copy.deepcopy(row)
            return copy.deepcopy(row)

    def get(self, table: str, row_id: str) -> Optional[Row]:
        with self._lock:
            row = self._table(table).get(row_id)
            return copy.deepcopy(row) if row is not None else None

    def select(self, table, filters=None, order_by=None, desc=False) -> List[Row]:
        with self._lock:
            rows = [copy.deepcopy(r) for r in self._table(table).values() if _matches(r, filters)]
        return _ordered(rows, order_by, desc)

    def update(self, table: str, row_id: str, changes: Row) -> Row:
        with self._lock:
            current = self._table(table).get(row_id)
            if current is None:
                raise NotFoundError("Row not found", {"table": table})
            updated = {**current, **changes, "id": row_id}
            self._check_unique(table, updated, ignore_id=row_id)
            self._table(table)[row_id] = copy.deepcopy(updated)
            return copy.deepcopy(updated)

    def delete(self, table: str, row_id: str) -> bool:
        with self._lock:
            return self._table(table).pop(row_id, None) is not None

    def delete_where(self, table: str, filters: Dict[str, Any]) -> int:
        with self._lock:
            doomed = [rid for rid, r in self._table(table).items() if _matches(r, filters)]
            for rid in doomed:
                del self._table(table)[rid]
            return len(doomed)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._snapshot = copy.deepcopy(self._tables)
            self._depth += 1
            try:
                yield
            except BaseException:
                if outermost:
                    self._tables = self._snapshot
                    logger.debug("In-memory transaction rolled back")
                raise
            finally:
                self._depth -= 1
                if outermost:
                    self._snapshot = None
