"""
GitHub REST client used by the sync engine.

Wraps the handful of GitHub endpoints the engine needs (repository metadata,
recursive git tree, contents read/write, /user) behind the RemoteRepository
protocol so the engine can be exercised against a scripted double.

All calls are blocking; timeouts come from the underlying httpx.Client.
"""

import base64
import logging
import os
import re
from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple, runtime_checkable
from urllib.parse import quote, unquote, urlparse

import httpx
from dotenv import load_dotenv

from repodesk.exceptions import (
    ConflictError,
    CredentialInvalidError,
    NotFoundError,
    RateLimitError,
    RemoteError,
    ValidationError,
)

load_dotenv()

logger = logging.getLogger(__name__)

GITHUB_API_URL = os.environ.get("GITHUB_API_URL", "https://api.github.com")
GITHUB_TIMEOUT = float(os.environ.get("GITHUB_TIMEOUT", "30"))
GITHUB_API_VERSION = "2022-11-28"
SERVICE_NAME = "GitHub API"

GITHUB_HOSTS = ('github.com', 'www.github.com')


# =============================================================================
# Repository URL parsing
# =============================================================================

def parse_repository_url(url: str) -> Tuple[str, str]:
    """
    Parse a GitHub repository URL into (owner, name).

    Accepts https://github.com/<owner>/<name>[.git][/anything].

    Raises:
        ValidationError: not a GitHub repository URL
    """
    parsed = urlparse(unquote((url or "").strip()))

    if parsed.netloc.lower() not in GITHUB_HOSTS:
        raise ValidationError(f"Not a GitHub repository URL: {url}")

    parts = [p for p in parsed.path.split('/') if p]
    if len(parts) < 2:
        raise ValidationError(f"Repository URL must contain owner and name: {url}")

    owner, name = parts[0], parts[1].removesuffix('.git')

    # GitHub username rules: alphanumeric and single hyphens, max 39 chars
    if not re.match(r'^[a-zA-Z0-9]([a-zA-Z0-9-]{0,37}[a-zA-Z0-9])?$', owner):
        raise ValidationError(f"Invalid repository owner: {owner}")
    if not re.match(r'^[a-zA-Z0-9._-]+$', name):
        raise ValidationError(f"Invalid repository name: {name}")

    return owner, name


# =============================================================================
# Capability contract
# =============================================================================

@dataclass(frozen=True)
class TreeEntry:
    """One entry of a recursive git tree listing."""
    path: str
    kind: str  # "file" | "dir"
    sha: str = ""

    @property
    def is_file(self) -> bool:
        return self.kind == "file"


@runtime_checkable
class RemoteRepository(Protocol):
    """Operations the sync engine consumes from the remote hosting API."""

    def validate_token(self, token: str) -> bool:
        ...

    def resolve_default_branch(self, token: str, owner: str, repo: str) -> str:
        ...

    def fetch_tree(self, token: str, owner: str, repo: str, branch: str) -> List[TreeEntry]:
        ...

    def download_file(self, token: str, owner: str, repo: str, path: str, branch: str) -> bytes:
        ...

    def get_file_sha(self, token: str, owner: str, repo: str, path: str, branch: str) -> Optional[str]:
        ...

    def write_file(
        self,
        token: str,
        owner: str,
        repo: str,
        path: str,
        content: bytes,
        message: str,
        sha: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> str:
        ...


# =============================================================================
# httpx implementation
# =============================================================================

class GitHubClient:
    """Blocking GitHub REST v3 client."""

    def __init__(
        self,
        base_url: str = GITHUB_API_URL,
        timeout: float = GITHUB_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": GITHUB_API_VERSION,
            },
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Transport helpers
    # -------------------------------------------------------------------------

    def _request(
        self,
        method: str,
        url: str,
        token: str,
        accept: Optional[str] = None,
        **kwargs,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}"}
        if accept:
            headers["Accept"] = accept

        try:
            return self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise RemoteError(SERVICE_NAME, "timeout") from e
        except httpx.HTTPError as e:
            raise RemoteError(SERVICE_NAME, f"connection error: {e}") from e

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        return (
            response.status_code == 403
            and response.headers.get("x-ratelimit-remaining") == "0"
        )

    def _raise_for_status(self, response: httpx.Response, resource: str) -> None:
        """Map GitHub status codes onto the application error kinds."""
        if response.status_code < 400:
            return
        if self._is_rate_limited(response):
            raise RateLimitError(SERVICE_NAME)
        if response.status_code in (401, 403):
            raise CredentialInvalidError("GitHub")
        if response.status_code == 404:
            raise NotFoundError(resource)
        raise RemoteError(SERVICE_NAME, f"status {response.status_code}")

    @staticmethod
    def _contents_url(owner: str, repo: str, path: str) -> str:
        return f"/repos/{owner}/{repo}/contents/{quote(path, safe='/')}"

    # -------------------------------------------------------------------------
    # RemoteRepository operations
    # -------------------------------------------------------------------------

    def validate_token(self, token: str) -> bool:
        """Return False for a rejected token; rate limits and outages still raise."""
        response = self._request("GET", "/user", token)
        if self._is_rate_limited(response):
            raise RateLimitError(SERVICE_NAME)
        if response.status_code in (401, 403):
            return False
        self._raise_for_status(response, "GitHub user")
        return True

    def resolve_default_branch(self, token: str, owner: str, repo: str) -> str:
        response = self._request("GET", f"/repos/{owner}/{repo}", token)
        self._raise_for_status(response, f"Repository {owner}/{repo}")
        return response.json().get("default_branch") or "main"

    def fetch_tree(self, token: str, owner: str, repo: str, branch: str) -> List[TreeEntry]:
        response = self._request(
            "GET",
            f"/repos/{owner}/{repo}/git/trees/{quote(branch, safe='')}",
            token,
            params={"recursive": "1"},
        )
        self._raise_for_status(response, f"Branch {branch} of {owner}/{repo}")
        body = response.json()

        if body.get("truncated"):
            logger.warning(f"Tree listing for {owner}/{repo}@{branch} was truncated by GitHub")

        entries = []
        for node in body.get("tree") or []:
            path, node_type = node.get("path"), node.get("type")
            if not path or not node_type:
                continue
            if node_type == "blob":
                entries.append(TreeEntry(path=path, kind="file", sha=node.get("sha") or ""))
            elif node_type == "tree":
                entries.append(TreeEntry(path=path, kind="dir", sha=node.get("sha") or ""))
            # "commit" entries are submodules, not part of this repository's files

        return entries

    def download_file(self, token: str, owner: str, repo: str, path: str, branch: str) -> bytes:
        response = self._request(
            "GET",
            self._contents_url(owner, repo, path),
            token,
            accept="application/vnd.github.raw+json",
            params={"ref": branch},
        )
        self._raise_for_status(response, f"File {path}")

        # Some proxies ignore the raw media type and answer with the JSON envelope
        if response.headers.get("content-type", "").startswith("application/json"):
            body = response.json()
            if isinstance(body, dict) and "content" in body:
                return base64.b64decode(re.sub(r"\s", "", body["content"] or ""))
        return response.content

    def get_file_sha(self, token: str, owner: str, repo: str, path: str, branch: str) -> Optional[str]:
        """Current blob sha of path on branch, or None if the file does not exist."""
        response = self._request(
            "GET",
            self._contents_url(owner, repo, path),
            token,
            params={"ref": branch},
        )
        if response.status_code == 404:
            return None
        self._raise_for_status(response, f"File {path}")

        body = response.json()
        # A list means path is a directory: there is no file blob to condition on
        if isinstance(body, dict):
            return body.get("sha")
        return None

    def write_file(
        self,
        token: str,
        owner: str,
        repo: str,
        path: str,
        content: bytes,
        message: str,
        sha: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> str:
        """
        Create or update a file through the contents API.

        With sha set the write only succeeds if the remote blob still has that
        sha; without it the write only succeeds if the file does not exist.

        Returns:
            The new blob sha

        Raises:
            ConflictError: the remote file changed under us
        """
        payload = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
        }
        if sha:
            payload["sha"] = sha
        if branch:
            payload["branch"] = branch

        response = self._request("PUT", self._contents_url(owner, repo, path), token, json=payload)

        if response.status_code == 409:
            raise ConflictError(path, "remote file was changed by someone else")
        if response.status_code == 422:
            detail = _error_message(response)
            # "sha" wasn't supplied / does not match: the file exists with other content
            if "sha" in detail.lower():
                raise ConflictError(path, detail)
            raise RemoteError(SERVICE_NAME, f"rejected write of {path}: {detail}")
        self._raise_for_status(response, f"Repository {owner}/{repo} or path {path}")

        logger.info(f"Wrote {path} to {owner}/{repo}" + (f"@{branch}" if branch else ""))
        return ((response.json() or {}).get("content") or {}).get("sha", "")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or "")
    return ""
