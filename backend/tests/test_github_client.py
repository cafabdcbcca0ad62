import base64
import json

import httpx
import pytest

from repodesk.exceptions import (
    ConflictError,
    CredentialInvalidError,
    NotFoundError,
    RateLimitError,
    RemoteError,
    ValidationError,
)
from repodesk.services.github_client import GitHubClient, RemoteRepository, parse_repository_url


def client_for(handler):
    return GitHubClient(base_url="https://api.github.test", transport=httpx.MockTransport(handler))


def respond(status, body=None, headers=None):
    def handler(request):
        return httpx.Response(status, json=body, headers=headers)
    return handler


# =============================================================================
# URL parsing
# =============================================================================

@pytest.mark.parametrize("url,expected", [
    ("https://github.com/octo/demo", ("octo", "demo")),
    ("https://github.com/octo/demo.git", ("octo", "demo")),
    ("https://www.github.com/octo/demo/tree/main/src", ("octo", "demo")),
    ("  https://github.com/my-org/my.repo_2  ", ("my-org", "my.repo_2")),
])
def test_parse_repository_url(url, expected):
    assert parse_repository_url(url) == expected


@pytest.mark.parametrize("url", [
    "", "https://gitlab.com/a/b", "https://github.com/", "https://github.com/only-owner",
    "https://github.com/-bad/repo", "https://github.com/octo/bad name",
])
def test_parse_repository_url_rejects(url):
    with pytest.raises(ValidationError):
        parse_repository_url(url)


# =============================================================================
# Requests
# =============================================================================

def test_client_satisfies_protocol():
    assert isinstance(client_for(respond(200)), RemoteRepository)


def test_requests_carry_token_and_api_version():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"default_branch": "trunk"})

    assert client_for(handler).resolve_default_branch("t0k", "octo", "demo") == "trunk"
    assert seen[0].url.path == "/repos/octo/demo"
    assert seen[0].headers["Authorization"] == "Bearer t0k"
    assert seen[0].headers["X-GitHub-Api-Version"] == "2022-11-28"


def test_default_branch_falls_back_to_main():
    assert client_for(respond(200, {})).resolve_default_branch("t", "o", "r") == "main"


def test_fetch_tree_keeps_blobs_and_trees_only():
    body = {"truncated": False, "tree": [
        {"path": "src", "type": "tree", "sha": "t1"},
        {"path": "src/a.py", "type": "blob", "sha": "b1"},
        {"path": "vendor/lib", "type": "commit", "sha": "c1"},
    ]}
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=body)

    entries = client_for(handler).fetch_tree("t", "o", "r", "main")

    assert [(e.path, e.kind, e.is_file) for e in entries] == [
        ("src", "dir", False), ("src/a.py", "file", True),
    ]
    assert seen[0].url.params["recursive"] == "1"


def test_download_file_raw_and_json_envelope():
    raw = client_for(lambda r: httpx.Response(200, content=b"\x00\x01", headers={"content-type": "application/octet-stream"}))
    assert raw.download_file("t", "o", "r", "a.bin", "main") == b"\x00\x01"

    encoded = base64.b64encode(b"hello").decode()
    envelope = client_for(respond(200, {"content": encoded[:3] + "\n" + encoded[3:]}))
    assert envelope.download_file("t", "o", "r", "a.txt", "main") == b"hello"


def test_get_file_sha():
    assert client_for(respond(200, {"sha": "abc"})).get_file_sha("t", "o", "r", "a", "main") == "abc"
    assert client_for(respond(404, {"message": "Not Found"})).get_file_sha("t", "o", "r", "a", "main") is None
    assert client_for(respond(200, [{"name": "x"}])).get_file_sha("t", "o", "r", "dir", "main") is None


def test_write_file_sends_base64_and_sha():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"content": {"sha": "new"}})

    sha = client_for(handler).write_file("t", "o", "r", "a b.txt", b"hi", "Update a b.txt", sha="old", branch="main")

    assert sha == "new"
    assert seen[0] == {
        "message": "Update a b.txt",
        "content": base64.b64encode(b"hi").decode(),
        "sha": "old",
        "branch": "main",
    }


def test_write_file_without_sha_omits_it():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(201, json={"content": {"sha": "new"}})

    client_for(handler).write_file("t", "o", "r", "a.txt", b"hi", "Add a.txt")
    assert "sha" not in seen[0]


@pytest.mark.parametrize("status,body", [
    (409, {"message": "a.txt does not match abc"}),
    (422, {"message": "Invalid request.\n\n\"sha\" wasn't supplied."}),
])
def test_write_file_conflicts(status, body):
    with pytest.raises(ConflictError):
        client_for(respond(status, body)).write_file("t", "o", "r", "a.txt", b"x", "m", sha="s")


def test_write_file_other_422_is_remote_error():
    with pytest.raises(RemoteError, match="path is invalid"):
        client_for(respond(422, {"message": "path is invalid"})).write_file("t", "o", "r", "a", b"x", "m")


# =============================================================================
# Error mapping
# =============================================================================

@pytest.mark.parametrize("status,headers,error", [
    (401, None, CredentialInvalidError),
    (403, None, CredentialInvalidError),
    (403, {"x-ratelimit-remaining": "0"}, RateLimitError),
    (429, None, RateLimitError),
    (404, None, NotFoundError),
    (500, None, RemoteError),
])
def test_status_mapping(status, headers, error):
    with pytest.raises(error):
        client_for(respond(status, {"message": "x"}, headers)).resolve_default_branch("t", "o", "r")


def test_timeout_is_remote_error():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(RemoteError, match="timeout"):
        client_for(handler).fetch_tree("t", "o", "r", "main")


def test_validate_token():
    assert client_for(respond(200, {"login": "octo"})).validate_token("t") is True
    assert client_for(respond(401, {"message": "Bad credentials"})).validate_token("t") is False
    with pytest.raises(RateLimitError):
        client_for(respond(429, {})).validate_token("t")
