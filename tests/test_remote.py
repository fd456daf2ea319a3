"""Tests for the GitHub API client and the repository fetcher."""

import io
import zipfile
from pathlib import Path

import httpx
import pytest

from cfgsync.errors import (
    LocalIOError,
    NetworkError,
    NotFoundError,
    RateLimitedError,
    UnauthorizedError,
)
from cfgsync.remote.fetcher import RepositoryFetcher, extract_archive, find_kind_dirs
from cfgsync.remote.github import GitHubApi, mask_token, raise_for_status, send_get
from cfgsync.store.ssot import composite_hash, git_blob_sha

from conftest import AGENT_MD, RESET_AT, SKILL_MD


def _zip(entries: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in entries.items():
            archive.writestr(name, content)
    return buffer.getvalue()


# --- Status Mapping Tests ---


def test_raise_for_status_mapping():
    with pytest.raises(NotFoundError):
        raise_for_status(httpx.Response(404), "x")
    with pytest.raises(UnauthorizedError):
        raise_for_status(httpx.Response(401), "x")
    with pytest.raises(UnauthorizedError):
        raise_for_status(httpx.Response(403, headers={"x-ratelimit-remaining": "12"}), "x")
    with pytest.raises(RateLimitedError):
        raise_for_status(httpx.Response(429), "x")
    with pytest.raises(NetworkError):
        raise_for_status(httpx.Response(502), "x")
    raise_for_status(httpx.Response(200), "x")


def test_rate_limit_error_carries_quota():
    response = httpx.Response(
        403,
        headers={
            "x-ratelimit-limit": "60",
            "x-ratelimit-remaining": "0",
            "x-ratelimit-reset": str(RESET_AT),
        },
    )
    with pytest.raises(RateLimitedError) as excinfo:
        raise_for_status(response, "x")
    error = excinfo.value
    assert (error.limit, error.remaining, error.reset_at) == (60, 0, RESET_AT)
    assert error.reset_time.timestamp() == RESET_AT
    assert "0/60 requests left" in error.user_message()


@pytest.mark.asyncio
async def test_send_get_maps_transport_failures():
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    def stall(request):
        raise httpx.ReadTimeout("slow", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(refuse)) as client:
        with pytest.raises(NetworkError):
            await send_get(client, "https://example.test/", "thing", 1.0)
    async with httpx.AsyncClient(transport=httpx.MockTransport(stall)) as client:
        with pytest.raises(NetworkError, match="Timed out"):
            await send_get(client, "https://example.test/", "thing", 1.0)


def test_mask_token():
    assert mask_token("") == ""
    assert mask_token("short") == "*****"
    assert mask_token("ghp_abcdefghijklmnop") == "ghp_...mnop"


# --- API Tests ---


@pytest.mark.asyncio
async def test_file_sha_matches_blob_sha(github, settings):
    async with github.client() as client:
        api = GitHubApi(client, settings)
        sha = await api.get_file_sha("acme", "commands", "commands/sc/agent.md", "main")
    assert sha == git_blob_sha(AGENT_MD.encode())


@pytest.mark.asyncio
async def test_directory_hash_covers_only_the_prefix(github, settings):
    async with github.client() as client:
        api = GitHubApi(client, settings)
        value = await api.get_directory_hash("acme", "commands", "skills/pdf", "main")
        with pytest.raises(NotFoundError):
            await api.get_directory_hash("acme", "commands", "skills/missing", "main")

    assert value == composite_hash(
        [
            ("SKILL.md", git_blob_sha(SKILL_MD.encode())),
            ("scripts/extract.py", git_blob_sha(b"print('pdf')\n")),
        ]
    )


@pytest.mark.asyncio
async def test_latest_commit_and_default_branch(github, settings):
    async with github.client() as client:
        api = GitHubApi(client, settings)
        message, timestamp = await api.get_latest_commit(
            "acme", "commands", "commands/sc/agent.md", "main"
        )
        branch = await api.get_default_branch("acme", "commands")
    assert message == "Update commands/sc/agent.md"
    assert timestamp == 1767323045
    assert branch == "main"


@pytest.mark.asyncio
async def test_api_sends_token(github, settings):
    async with github.client() as client:
        api = GitHubApi(client, settings, token="ghp_secret")
        await api.get_default_branch("acme", "commands")
    assert github.requests[-1].headers["Authorization"] == "Bearer ghp_secret"


@pytest.mark.asyncio
async def test_rate_limited_api(github, settings):
    github.rate_limited = True
    async with github.client() as client:
        api = GitHubApi(client, settings)
        with pytest.raises(RateLimitedError):
            await api.get_file_sha("acme", "commands", "commands/sc/agent.md", "main")


@pytest.mark.asyncio
async def test_validate_token(github, settings):
    async with github.client() as client:
        api = GitHubApi(client, settings)
        info = await api.validate_token("good-token")
        assert info.authenticated
        assert info.remaining == 4999
        with pytest.raises(UnauthorizedError):
            await api.validate_token("bad-token")


# --- Archive Tests ---


def test_extract_archive_strips_root_folder(tmp_path):
    data = _zip(
        {
            "repo-main/": "",
            "repo-main/commands/a.md": "a",
            "repo-main/../evil.md": "x",
        }
    )
    assert extract_archive(data, tmp_path) == 1
    assert (tmp_path / "commands" / "a.md").read_text() == "a"
    assert not (tmp_path.parent / "evil.md").exists()


def test_extract_archive_rejects_garbage(tmp_path):
    with pytest.raises(LocalIOError):
        extract_archive(b"not a zip", tmp_path)


def test_find_kind_dirs_assigns_namespaces(tmp_path):
    for rel in ("commands", "plugins/git/commands", "a/b/c/commands", ".hidden/commands"):
        (tmp_path / rel).mkdir(parents=True)
    (tmp_path / "commands" / "nested" / "commands").mkdir(parents=True)

    found = [(p.relative_to(tmp_path).as_posix(), ns) for p, ns in find_kind_dirs(tmp_path, "commands")]
    assert found == [("commands", ""), ("plugins/git/commands", "git")]


# --- Fetcher Tests ---


@pytest.mark.asyncio
async def test_download_snapshot(github, settings):
    async with github.client() as client:
        fetcher = RepositoryFetcher(client, settings)
        snapshot = await fetcher.download_snapshot("acme", "commands", "main")
        with snapshot:
            assert snapshot.branch == "main"
            assert (snapshot.local_path / "commands" / "sc" / "agent.md").read_text() == AGENT_MD
            local = snapshot.local_path
    assert not Path(local).exists()


@pytest.mark.asyncio
async def test_download_snapshot_falls_back_to_master(github, settings):
    github.add_repo("acme", "legacy", {"commands/x.md": "x"}, branch="master")
    async with github.client() as client:
        fetcher = RepositoryFetcher(client, settings)
        with await fetcher.download_snapshot("acme", "legacy", "develop") as snapshot:
            assert snapshot.branch == "master"
            assert (snapshot.local_path / "commands" / "x.md").exists()


@pytest.mark.asyncio
async def test_download_snapshot_missing_repo(github, settings):
    async with github.client() as client:
        fetcher = RepositoryFetcher(client, settings)
        with pytest.raises(NotFoundError):
            await fetcher.download_snapshot("acme", "nothing", "main")


@pytest.mark.asyncio
async def test_fetch_raw(github, settings):
    async with github.client() as client:
        fetcher = RepositoryFetcher(client, settings)
        data = await fetcher.fetch_raw("acme", "commands", "main", "commands/sc/agent.md")
        with pytest.raises(NotFoundError):
            await fetcher.fetch_raw("acme", "commands", "main", "commands/none.md")
    assert data == AGENT_MD.encode()
