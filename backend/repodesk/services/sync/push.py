"""
Push of locally cached files to GitHub.

Only ADDED rows that carry a cache key are eligible, so untouched files cost
no API calls. Each file is pushed independently:

    1. read bytes from the cache (remote download + re-cache on failure)
    2. read the current remote blob sha
    3. create (no sha) or update conditioned on that sha
    4. classify as success / conflict / error

Per-file failures never stop the batch. Only the preconditions (token,
branch resolution) fail the whole call.

Known limitation: steps 2 and 3 are separate GitHub calls. A remote commit
landing between them is not detected and is overwritten.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from supabase import Client

from repodesk.exceptions import AppException, ConflictError
from repodesk.services.github_client import RemoteRepository
from repodesk.services.storage import ObjectCacheStore
from .file_sync import FileSyncService

logger = logging.getLogger(__name__)


class PushOutcome(str, Enum):
    SUCCESS = "success"
    CONFLICT = "conflict"
    ERROR = "error"


@dataclass
class PushFileResult:
    path: str
    outcome: PushOutcome
    detail: str = ""

    def to_dict(self) -> dict:
        return {"path": self.path, "outcome": self.outcome.value, "detail": self.detail}


@dataclass
class PushReport:
    branch: str
    results: List[PushFileResult] = field(default_factory=list)

    def _count(self, outcome: PushOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def succeeded(self) -> int:
        return self._count(PushOutcome.SUCCESS)

    @property
    def conflicts(self) -> int:
        return self._count(PushOutcome.CONFLICT)

    @property
    def errors(self) -> int:
        return self._count(PushOutcome.ERROR)

    @property
    def nothing_to_push(self) -> bool:
        return not self.results

    def render(self) -> str:
        """Single text message for a chat surface."""
        if self.nothing_to_push:
            return "No locally changed files to push"

        lines = [
            f"Pushed to {self.branch}: {self.succeeded} succeeded, "
            f"{self.conflicts} conflicts, {self.errors} errors"
        ]
        for result in self.results:
            if result.outcome == PushOutcome.CONFLICT:
                lines.append(f"conflict  {result.path}: {result.detail}")
            elif result.outcome == PushOutcome.ERROR:
                lines.append(f"error     {result.path}: {result.detail}")
        if self.conflicts:
            lines.append("Resolve the conflicts on GitHub, then push again.")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "branch": self.branch,
            "succeeded": self.succeeded,
            "conflicts": self.conflicts,
            "errors": self.errors,
            "results": [r.to_dict() for r in self.results],
            "message": self.render(),
        }


class PushService:
    """Pushes one repository's cached files."""

    def __init__(
        self,
        supabase: Client,
        repository: dict,
        remote: RemoteRepository,
        github_token: Optional[str],
        store: Optional[ObjectCacheStore] = None,
    ):
        self.files = FileSyncService(
            supabase, repository, remote, github_token=github_token, store=store
        )
        self.remote = remote

    def push(self) -> PushReport:
        """
        Raises:
            CredentialMissingError / CredentialInvalidError / RemoteError:
                precondition failed before any file was touched
        """
        files = self.files
        token = files.require_token()
        branch = files.resolve_branch()
        report = PushReport(branch=branch)

        rows = files.catalog.list_cached_files()
        logger.info(f"Pushing {len(rows)} cached file(s) of {files.owner}/{files.name}@{branch}")

        for row in rows:
            report.results.append(self._push_file(token, branch, row))

        logger.info(
            f"Push of {files.owner}/{files.name} finished: "
            f"{report.succeeded} ok, {report.conflicts} conflicts, {report.errors} errors"
        )
        return report

    def _push_file(self, token: str, branch: str, row: dict) -> PushFileResult:
        files = self.files
        path = row["path"]
        try:
            content = files.read_row(row)
            sha = self.remote.get_file_sha(token, files.owner, files.name, path, branch)
            message = f"Update {path}" if sha else f"Add {path}"
            self.remote.write_file(
                token, files.owner, files.name, path, content, message,
                sha=sha, branch=branch,
            )
        except ConflictError as e:
            logger.warning(f"Push conflict on {path}", extra={"error": e.message})
            return PushFileResult(path, PushOutcome.CONFLICT, e.message)
        except AppException as e:
            logger.warning(f"Push of {path} failed", extra={"error": e.message})
            return PushFileResult(path, PushOutcome.ERROR, e.message)
        except Exception as e:
            logger.exception(f"Unexpected error pushing {path}")
            return PushFileResult(path, PushOutcome.ERROR, str(e) or type(e).__name__)

        return PushFileResult(path, PushOutcome.SUCCESS)
