"""
Per-session GitHub token storage.

Tokens are encrypted with services.encryption before they reach the
`credentials` table and decrypted on read.
"""

import logging
from typing import Optional

from supabase import Client

from repodesk.exceptions import CredentialMissingError
from repodesk.services.encryption import decrypt, encrypt
from .base import BaseDbService, utc_now

logger = logging.getLogger(__name__)


class CredentialService(BaseDbService):
    """Credential row of one session."""

    table_name = "credentials"
    scope_field = "session_id"

    def __init__(self, supabase: Client, session_id: str):
        super().__init__(supabase, session_id)
        self.session_id = session_id

    def save_token(self, token: str) -> None:
        """Store (or replace) the session's token. Caller validates it first."""
        # created_at is left to the column default so a replacement keeps it
        self._table().upsert(
            {
                "session_id": self.session_id,
                "token_encrypted": encrypt(token),
                "last_validated_at": utc_now(),
            },
            on_conflict="session_id",
        ).execute()
        logger.info("Saved GitHub token", extra={"session_id": self.session_id})

    def get_token(self) -> Optional[str]:
        row = self._get_one({})
        if not row or not row.get("token_encrypted"):
            return None
        try:
            return decrypt(row["token_encrypted"])
        except ValueError:
            # Secret rotated or row corrupted: the user must provide the token again
            logger.warning(
                "Stored token could not be decrypted",
                extra={"session_id": self.session_id},
            )
            return None

    def require_token(self) -> str:
        """
        Raises:
            CredentialMissingError: no usable token for the session
        """
        token = self.get_token()
        if not token:
            raise CredentialMissingError()
        return token

    def has_token(self) -> bool:
        return self._get_one({}, select="session_id") is not None
