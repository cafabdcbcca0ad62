"""
Shared fixtures: in-memory doubles of Supabase (postgrest tables, rpc,
storage bucket) and of the GitHub client.
"""

import copy
import hashlib
import itertools
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from repodesk.exceptions import ConflictError, CredentialInvalidError, NotFoundError
from repodesk.services.github_client import TreeEntry


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SimulatedDatabaseError(Exception):
    pass


class FakeStorageError(Exception):
    def __init__(self, message: str, status: int = 500):
        super().__init__(message)
        self.status = status


# =============================================================================
# Postgrest double
# =============================================================================

UNIQUE_KEYS = {
    "repositories": [("url",)],
    "files": [("repository_id", "path")],
    "credentials": [("session_id",)],
    "session_repositories": [("session_id", "repository_id")],
}

DEFAULTS = {
    "files": lambda: {"state": "added", "storage_key": None, "created_at": _now(), "updated_at": _now()},
    "tracking_outbox": lambda: {"status": "pending", "error": None, "created_at": _now(), "delivered_at": None},
    "repositories": lambda: {"created_at": _now()},
    "session_repositories": lambda: {"added_at": _now()},
    "credentials": lambda: {"created_at": _now(), "last_validated_at": None},
}


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.op = "select"
        self.payload = None
        self.on_conflict = None
        self.filters = []
        self.orders = []
        self.limit_n = None
        self.range_bounds = None
        self.ignore_duplicates = False
        self._negate = False

    # -- operations ----------------------------------------------------------

    def select(self, *_columns):
        self.op = "select"
        return self

    def insert(self, payload):
        self.op, self.payload = "insert", payload
        return self

    def upsert(self, payload, on_conflict=None, ignore_duplicates=False):
        self.op, self.payload, self.on_conflict = "upsert", payload, on_conflict
        self.ignore_duplicates = ignore_duplicates
        return self

    def update(self, payload):
        self.op, self.payload = "update", payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    # -- filters -------------------------------------------------------------

    def _add(self, predicate):
        if self._negate:
            self._negate = False
            self.filters.append(lambda row: not predicate(row))
        else:
            self.filters.append(predicate)
        return self

    @property
    def not_(self):
        self._negate = True
        return self

    def eq(self, column, value):
        return self._add(lambda row: row.get(column) == value)

    def in_(self, column, values):
        values = list(values)
        return self._add(lambda row: row.get(column) in values)

    def is_(self, column, value):
        expected = None if value in ("null", None) else value
        return self._add(lambda row: row.get(column) is expected)

    def order(self, column, desc=False):
        self.orders.append((column, desc))
        return self

    def limit(self, n):
        self.limit_n = n
        return self

    def range(self, start, end):
        self.range_bounds = (start, end)
        return self

    # -- execution -----------------------------------------------------------

    def _matches(self, row):
        return all(f(row) for f in self.filters)

    def execute(self):
        self.db.check_failure(self.table_name, self.op)
        rows = self.db.tables.setdefault(self.table_name, [])

        if self.op == "select":
            result = [copy.deepcopy(r) for r in rows if self._matches(r)]
            for column, desc in reversed(self.orders):
                result.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
            if self.range_bounds is not None:
                start, end = self.range_bounds
                result = result[start:end + 1]
            if self.limit_n is not None:
                result = result[:self.limit_n]
            if self.db.max_rows is not None:
                result = result[:self.db.max_rows]
            return SimpleNamespace(data=result)

        if self.op == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = [self.db.insert_row(self.table_name, dict(p)) for p in payload]
            return SimpleNamespace(data=copy.deepcopy(inserted))

        if self.op == "upsert":
            keys = tuple(k.strip() for k in self.on_conflict.split(","))
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            out = []
            for p in payload:
                existing = next((r for r in rows if all(r.get(k) == p.get(k) for k in keys)), None)
                if existing and self.ignore_duplicates:
                    continue
                if existing:
                    existing.update(p)
                    out.append(existing)
                else:
                    out.append(self.db.insert_row(self.table_name, dict(p)))
            return SimpleNamespace(data=copy.deepcopy(out))

        if self.op == "update":
            updated = []
            for r in rows:
                if self._matches(r):
                    r.update(copy.deepcopy(self.payload))
                    updated.append(copy.deepcopy(r))
            return SimpleNamespace(data=updated)

        if self.op == "delete":
            removed = [r for r in rows if self._matches(r)]
            self.db.tables[self.table_name] = [r for r in rows if not self._matches(r)]
            return SimpleNamespace(data=copy.deepcopy(removed))

        raise AssertionError(f"unsupported op {self.op}")


class FakeRpc:
    def __init__(self, db, name, params):
        self.db, self.name, self.params = db, name, params

    def execute(self):
        return SimpleNamespace(data=self.db.run_rpc(self.name, self.params))


class FakeBucket:
    def __init__(self, storage: "FakeStorage"):
        self.storage = storage

    def upload(self, path, file, file_options=None):
        if self.storage.fail_put:
            raise FakeStorageError("connection refused")
        self.storage.objects[path] = bytes(file)
        self.storage.content_types[path] = (file_options or {}).get("content-type")
        return SimpleNamespace(path=path)

    def download(self, path):
        if self.storage.fail_get:
            raise FakeStorageError("connection refused")
        if path not in self.storage.objects:
            raise FakeStorageError("Object not found", status=404)
        return self.storage.objects[path]

    def remove(self, paths):
        if self.storage.fail_delete:
            raise FakeStorageError("connection refused")
        removed = []
        for path in paths:
            if self.storage.objects.pop(path, None) is not None:
                removed.append({"name": path})
        return removed


class FakeStorage:
    def __init__(self):
        self.objects = {}
        self.content_types = {}
        self.fail_put = False
        self.fail_get = False
        self.fail_delete = False

    def from_(self, bucket):
        return FakeBucket(self)


class FakeSupabase:
    """Enough of supabase.Client for the services under test."""

    def __init__(self):
        self.tables = {}
        self._ids = {}
        self.storage = FakeStorage()
        self.failures = set()
        self.fail_rpc_before_commit = False
        # Server-side cap on rows per select response, like PostgREST max_rows
        self.max_rows = None

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params):
        return FakeRpc(self, name, params)

    # -- helpers used by the doubles ------------------------------------------

    def fail(self, table, op):
        self.failures.add((table, op))

    def check_failure(self, table, op):
        if (table, op) in self.failures:
            raise SimulatedDatabaseError(f"simulated {op} failure on {table}")

    def next_id(self, table):
        counter = self._ids.setdefault(table, itertools.count(1))
        return next(counter)

    def insert_row(self, table, row):
        rows = self.tables.setdefault(table, [])
        full = {**DEFAULTS.get(table, dict)(), **row}
        for key in UNIQUE_KEYS.get(table, []):
            if any(all(r.get(k) == full.get(k) for k in key) for r in rows):
                raise SimulatedDatabaseError(f'23505 duplicate key value violates unique constraint on {table}')
        if table not in ("credentials", "session_repositories"):
            full.setdefault("id", self.next_id(table))
        rows.append(full)
        return full

    def rows(self, table):
        return self.tables.get(table, [])

    def run_rpc(self, name, params):
        assert name == "register_repository"
        snapshot = copy.deepcopy(self.tables)
        try:
            repo = next((r for r in self.rows("repositories") if r["url"] == params["p_url"]), None)
            if repo is None:
                repo = self.insert_row("repositories", {
                    "url": params["p_url"], "owner": params["p_owner"], "name": params["p_name"],
                })
            link = next(
                (r for r in self.rows("session_repositories")
                 if r["session_id"] == params["p_session_id"] and r["repository_id"] == repo["id"]),
                None,
            )
            if link:
                link["added_at"] = _now()
            else:
                self.insert_row("session_repositories", {
                    "session_id": params["p_session_id"], "repository_id": repo["id"],
                })
            self.insert_row("tracking_outbox", {
                "repository_url": repo["url"], "session_id": params["p_session_id"],
            })
            if self.fail_rpc_before_commit:
                raise SimulatedDatabaseError("simulated failure before commit")
        except Exception:
            self.tables = snapshot
            raise
        return copy.deepcopy(repo)


# =============================================================================
# GitHub double
# =============================================================================

def blob_sha(content: bytes) -> str:
    return hashlib.sha1(b"blob %d\0" % len(content) + content).hexdigest()


class FakeGitHub:
    """Scripted RemoteRepository with a single branch."""

    def __init__(self, files=None, branch="main", token="ghp_valid"):
        self.branch = branch
        self.valid_tokens = {token}
        self.files = {}
        for path, content in (files or {}).items():
            self.files[path] = (content, blob_sha(content))
        self.calls = []
        self.before_write = None
        self.write_errors = {}
        self.fail_branch = None

    def _auth(self, token):
        if token not in self.valid_tokens:
            raise CredentialInvalidError("GitHub")

    def validate_token(self, token):
        self.calls.append(("validate_token",))
        return token in self.valid_tokens

    def resolve_default_branch(self, token, owner, repo):
        self.calls.append(("resolve_default_branch", owner, repo))
        self._auth(token)
        if self.fail_branch:
            raise self.fail_branch
        return self.branch

    def fetch_tree(self, token, owner, repo, branch):
        self.calls.append(("fetch_tree", branch))
        self._auth(token)
        entries, dirs = [], set()
        for path, (_, sha) in sorted(self.files.items()):
            entries.append(TreeEntry(path=path, kind="file", sha=sha))
            parts = path.split("/")[:-1]
            for i in range(1, len(parts) + 1):
                dirs.add("/".join(parts[:i]))
        entries.extend(TreeEntry(path=d, kind="dir") for d in sorted(dirs))
        return entries

    def download_file(self, token, owner, repo, path, branch):
        self.calls.append(("download_file", path))
        self._auth(token)
        if path not in self.files:
            raise NotFoundError(f"File {path}")
        return self.files[path][0]

    def get_file_sha(self, token, owner, repo, path, branch):
        self.calls.append(("get_file_sha", path))
        self._auth(token)
        entry = self.files.get(path)
        return entry[1] if entry else None

    def write_file(self, token, owner, repo, path, content, message, sha=None, branch=None):
        self.calls.append(("write_file", path, message, sha))
        self._auth(token)
        if self.before_write:
            self.before_write(path)
        if path in self.write_errors:
            raise self.write_errors[path]
        current = self.files.get(path)
        if (current is None and sha is not None) or (current is not None and current[1] != sha):
            raise ConflictError(path, "sha does not match")
        new_sha = blob_sha(content)
        self.files[path] = (content, new_sha)
        return new_sha

    def calls_named(self, name):
        return [c for c in self.calls if c[0] == name]


# =============================================================================
# Fixtures
# =============================================================================

TOKEN = "ghp_valid"


@pytest.fixture
def supabase():
    return FakeSupabase()


@pytest.fixture
def github():
    return FakeGitHub(files={
        "README.md": b"# demo\n",
        "src/app.py": b"print('hi')\n",
        "src/lib/util.py": b"def f():\n    return 1\n",
    })


@pytest.fixture
def repository(supabase):
    return supabase.insert_row("repositories", {
        "url": "https://github.com/octo/demo", "owner": "octo", "name": "demo",
    })


@pytest.fixture(autouse=True)
def encryption_secret(monkeypatch):
    monkeypatch.setenv("ENCRYPTION_SECRET", "x" * 40)
