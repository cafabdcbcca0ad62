"""
Base class of the scoped table services.

Every row this backend reads or writes belongs either to a repository
(`files`) or to a chat session (`credentials`, `editor_sessions`). A
subclass names its table and the column that scopes it; `_query()` and the
update helpers always filter on that column, so one service instance can
never touch another repository's or session's rows.

Usage:
    class FileCatalogService(BaseDbService):
        table_name = "files"
        scope_field = "repository_id"

        def get_file(self, path: str) -> Optional[dict]:
            return self._get_one({"path": path})
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from supabase import Client

logger = logging.getLogger(__name__)

# PostgREST caps every response at this many rows (Supabase max_rows default)
PAGE_SIZE = 1000


def utc_now() -> str:
    """ISO timestamp for timestamptz columns."""
    return datetime.now(timezone.utc).isoformat()


def fetch_all_pages(build_query: Callable[[], Any], page_size: int = PAGE_SIZE) -> List[dict]:
    """
    Every row of a select, read page by page with .range().

    build_query returns a fresh, ordered builder on each call; a builder
    cannot be executed twice with different ranges.
    """
    rows: List[dict] = []
    start = 0

    while True:
        page = build_query().range(start, start + page_size - 1).execute().data or []
        if not page:
            break

        rows.extend(page)

        if len(page) < page_size:
            break

        start += page_size

    return rows


class BaseDbService:
    table_name: str = ""
    scope_field: str = ""

    def __init__(self, supabase: Client, scope_id: Any):
        self.supabase = supabase
        self.scope_id = scope_id

    def _table(self):
        return self.supabase.table(self.table_name)

    def _query(self, select: str = "*"):
        """SELECT restricted to this instance's scope."""
        return self._table().select(select).eq(self.scope_field, self.scope_id)

    def _get_one(self, filters: Dict[str, Any], select: str = "*") -> Optional[dict]:
        """
        First matching row, or None.

        .limit(1) rather than .single(): postgrest answers an empty .single()
        with PGRST116 instead of an empty list.
        """
        query = self._query(select)
        for column, value in filters.items():
            query = query.eq(column, value)

        try:
            response = query.limit(1).execute()
        except Exception as e:
            if "PGRST116" in str(e):
                return None
            logger.error(
                f"Lookup in {self.table_name} failed",
                extra={"error": str(e)},
            )
            raise

        if response.data:
            return self._row_to_dict(response.data[0])
        return None

    def _update_one(
        self,
        record_id: Any,
        updates: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None,
    ) -> Optional[dict]:
        """
        Update one scoped row and stamp updated_at.

        `expected` turns this into a compare-and-set: the row must still hold
        those column values, otherwise nothing is written and None returned.
        """
        payload = {
            key: value.isoformat() if isinstance(value, datetime) else value
            for key, value in updates.items()
        }
        payload.setdefault("updated_at", utc_now())

        query = (
            self._table()
            .update(payload)
            .eq("id", record_id)
            .eq(self.scope_field, self.scope_id)
        )
        for column, value in (expected or {}).items():
            query = query.eq(column, value)

        response = query.execute()
        if response.data:
            return self._row_to_dict(response.data[0])
        return None

    def _delete_one(self, record_id: Any) -> bool:
        response = (
            self._table()
            .delete()
            .eq("id", record_id)
            .eq(self.scope_field, self.scope_id)
            .execute()
        )
        return bool(response.data)

    def _row_to_dict(self, row: dict) -> dict:
        return row
