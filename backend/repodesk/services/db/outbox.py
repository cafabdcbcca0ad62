"""
Tracking outbox.

Rows are inserted by the `register_repository` function in the same
transaction as the registration, so a row exists if and only if the
registration committed. Workers claim rows with a conditional
pending -> processing update; only the claiming worker delivers a row.
"""

import logging
from enum import Enum
from typing import List, Optional

from supabase import Client

from .base import fetch_all_pages, utc_now

logger = logging.getLogger(__name__)


class OutboxStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DELIVERED = "delivered"
    FAILED = "failed"


class TrackingOutboxService:
    """Service for tracking_outbox rows."""

    table_name = "tracking_outbox"

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _table(self):
        return self.supabase.table(self.table_name)

    def claim_pending(self, limit: int = 50) -> List[dict]:
        """Claim up to `limit` pending rows for this worker, oldest first."""
        response = (
            self._table()
            .select("id")
            .eq("status", OutboxStatus.PENDING.value)
            .order("created_at")
            .limit(limit)
            .execute()
        )

        claimed = []
        for row in response.data or []:
            row = self._transition(row["id"], OutboxStatus.PENDING, OutboxStatus.PROCESSING)
            if row:
                claimed.append(row)
        return claimed

    def mark_delivered(self, entry_id: int) -> Optional[dict]:
        return self._transition(
            entry_id,
            OutboxStatus.PROCESSING,
            OutboxStatus.DELIVERED,
            {"delivered_at": utc_now(), "error": None},
        )

    def mark_failed(self, entry_id: int, error: str) -> Optional[dict]:
        return self._transition(
            entry_id,
            OutboxStatus.PROCESSING,
            OutboxStatus.FAILED,
            {"error": error[:1000]},
        )

    def count_by_status(self, status: OutboxStatus) -> int:
        rows = fetch_all_pages(
            lambda: self._table().select("id").eq("status", status.value).order("id")
        )
        return len(rows)

    def _transition(
        self,
        entry_id: int,
        from_status: OutboxStatus,
        to_status: OutboxStatus,
        extra: Optional[dict] = None,
    ) -> Optional[dict]:
        response = (
            self._table()
            .update({"status": to_status.value, **(extra or {})})
            .eq("id", entry_id)
            .eq("status", from_status.value)
            .execute()
        )
        if response.data:
            return response.data[0]
        return None
