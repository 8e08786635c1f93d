"""
Storage adapter over Supabase (PostgREST) tables.

PostgREST offers no multi-statement transactions, so ``transaction()`` is
best-effort: every write records a compensating action and, when the block
raises, the compensations run in reverse order. A failure during
compensation is logged and the original error still propagates.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

from postgrest.exceptions import APIError
from supabase import Client

from app.core.errors import ConflictError, NotFoundError, UnavailableError
from app.database.storage import Row, Storage

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


class SupabaseStorage(Storage):
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self._local = threading.local()

    def _execute(self, table: str, query) -> List[Row]:
        try:
            result = query.execute()
        except APIError as e:
            if getattr(e, "code", None) == UNIQUE_VIOLATION:
                raise ConflictError("Unique constraint violated", {"table": table})
            logger.error(f"Supabase error on {table}: {e}")
            raise UnavailableError("Storage unavailable", {"table": table})
        except Exception as e:
            logger.error(f"Supabase request on {table} failed: {e}")
            raise UnavailableError("Storage unavailable", {"table": table})
        return result.data or []

    def _remember(self, undo: Callable[[], Any]) -> None:
        journal = getattr(self._local, "journal", None)
        if journal is not None:
            journal.append(undo)

    def insert(self, table: str, row: Row) -> Row:
        data = self._execute(table, self.supabase.table(table).insert(row))
        if not data:
            raise UnavailableError("Insert returned no row", {"table": table})
        row_id = data[0]["id"]
        self._remember(lambda: self.supabase.table(table).delete().eq("id", row_id).execute())
        return data[0]

    def get(self, table: str, row_id: str) -> Optional[Row]:
        data = self._execute(
            table,
            self.supabase.table(table).select("*").eq("id", row_id).limit(1),
        )
        return data[0] if data else None

    def select(self, table, filters=None, order_by=None, desc=False) -> List[Row]:
        query = self.supabase.table(table).select("*")
        for column, value in (filters or {}).items():
            query = query.is_(column, "null") if value is None else query.eq(column, value)
        if order_by:
            query = query.order(order_by, desc=desc)
        return self._execute(table, query)

    def update(self, table: str, row_id: str, changes: Row) -> Row:
        previous = self.get(table, row_id)
        if previous is None:
            raise NotFoundError("Row not found", {"table": table})
        data = self._execute(table, self.supabase.table(table).update(changes).eq("id", row_id))
        if not data:
            raise NotFoundError("Row not found", {"table": table})
        restore = {k: previous.get(k) for k in changes}
        self._remember(lambda: self.supabase.table(table).update(restore).eq("id", row_id).execute())
        return data[0]

    def delete(self, table: str, row_id: str) -> bool:
        data = self._execute(table, self.supabase.table(table).delete().eq("id", row_id))
        for row in data:
            self._remember(lambda row=row: self.supabase.table(table).insert(row).execute())
        return len(data) > 0

    def delete_where(self, table: str, filters: Dict[str, Any]) -> int:
        query = self.supabase.table(table).delete()
        for column, value in filters.items():
            query = query.eq(column, value)
        data = self._execute(table, query)
        if data:
            self._remember(lambda: self.supabase.table(table).insert(data).execute())
        return len(data)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if getattr(self._local, "journal", None) is not None:
            yield
            return
        self._local.journal = []
        try:
            yield
        except BaseException:
            self._compensate(self._local.journal)
            raise
        finally:
            self._local.journal = None

    def _compensate(self, journal: List[Callable[[], Any]]) -> None:
        for undo in reversed(journal):
            try:
                undo()
            except Exception as e:
                logger.error(f"Compensating write failed, manual repair may be needed: {e}")
        logger.warning(f"Rolled back {len(journal)} write(s) by compensation")
