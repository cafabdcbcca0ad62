"""
Tracking subsystem notifier.

After a repository registration commits, the tracker is told to start
watching the repository for the session. Notifications are taken from the
tracking_outbox table, so nothing is sent for a registration that rolled
back. A failed delivery is logged and recorded on the outbox row; it is not
retried.
"""

import logging
import os
from typing import Optional

import httpx
from dotenv import load_dotenv
from supabase import Client

from repodesk.exceptions import ConfigurationError, RemoteError
from repodesk.services.db.outbox import TrackingOutboxService

load_dotenv()

logger = logging.getLogger(__name__)

TRACKER_URL = os.environ.get("TRACKER_URL", "")
TRACKER_TIMEOUT = float(os.environ.get("TRACKER_TIMEOUT", "10"))


class TrackingClient:
    """HTTP client of the tracking subsystem."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = TRACKER_URL if base_url is None else base_url
        self.timeout = TRACKER_TIMEOUT if timeout is None else timeout
        self.transport = transport

    def add_tracking_repo(self, repository_url: str, session_id: str) -> None:
        """
        Raises:
            ConfigurationError: TRACKER_URL not set
            RemoteError: tracker unreachable or answered with an error
        """
        if not self.base_url:
            raise ConfigurationError("Tracker", "URL")

        try:
            with httpx.Client(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                response = client.post(
                    "/tracking-repos",
                    json={"link": repository_url, "session_id": session_id},
                )
        except httpx.TimeoutException as e:
            raise RemoteError("Tracker", "timeout") from e
        except httpx.HTTPError as e:
            raise RemoteError("Tracker", f"connection error: {e}") from e

        if response.status_code >= 400:
            raise RemoteError("Tracker", f"status {response.status_code}")

        logger.info(
            f"Tracker notified for {repository_url}",
            extra={"session_id": session_id},
        )


def deliver_pending_notifications(
    supabase: Client,
    client: Optional[TrackingClient] = None,
    limit: int = 50,
) -> dict:
    """
    Deliver claimed outbox rows once each.

    Returns:
        dict with claimed, delivered, failed counts
    """
    outbox = TrackingOutboxService(supabase)
    client = client or TrackingClient()

    entries = outbox.claim_pending(limit=limit)
    delivered = failed = 0

    for entry in entries:
        try:
            client.add_tracking_repo(entry["repository_url"], entry["session_id"])
        except (RemoteError, ConfigurationError) as e:
            logger.warning(
                f"Tracking notification {entry['id']} failed",
                extra={"session_id": entry["session_id"], "error": e.message},
            )
            outbox.mark_failed(entry["id"], e.message)
            failed += 1
            continue

        outbox.mark_delivered(entry["id"])
        delivered += 1

    return {"claimed": len(entries), "delivered": delivered, "failed": failed}
