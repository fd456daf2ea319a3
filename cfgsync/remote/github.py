"""GitHub REST client -- blob SHAs, trees, commits, default branch, rate limit.

Only metadata calls live here; content downloads go through
``cfgsync.remote.fetcher``. All calls are async and carry the configured
API timeout. HTTP failures are mapped onto the cfgsync error taxonomy by
``raise_for_status``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx

from cfgsync.config import Settings
from cfgsync.errors import NetworkError, NotFoundError, RateLimitedError, UnauthorizedError
from cfgsync.models import RateLimitInfo
from cfgsync.store.ssot import composite_hash, is_skipped

logger = logging.getLogger(__name__)

TOKEN_SETTING = "github_pat"


def mask_token(token: str) -> str:
    """Render a token as ``abcd...wxyz`` for display."""
    if not token:
        return ""
    if len(token) <= 8:
        return "*" * len(token)
    return f"{token[:4]}...{token[-4:]}"


def _header_int(response: httpx.Response, name: str) -> int:
    try:
        return int(response.headers.get(name, "0"))
    except ValueError:
        return 0


def raise_for_status(response: httpx.Response, what: str) -> None:
    """Translate an unsuccessful response into a ``CfgSyncError``."""
    if response.is_success:
        return
    status = response.status_code
    remaining = response.headers.get("x-ratelimit-remaining")
    if status == 429 or (status == 403 and remaining == "0"):
        raise RateLimitedError(
            f"GitHub API quota exhausted while fetching {what}",
            limit=_header_int(response, "x-ratelimit-limit"),
            remaining=_header_int(response, "x-ratelimit-remaining"),
            reset_at=_header_int(response, "x-ratelimit-reset"),
        )
    if status in (401, 403):
        raise UnauthorizedError(f"GitHub rejected the request for {what} (HTTP {status})")
    if status == 404:
        raise NotFoundError(f"{what} not found")
    raise NetworkError(f"HTTP {status} while fetching {what}")


async def send_get(
    client: httpx.AsyncClient,
    url: str,
    what: str,
    timeout: float,
    params: dict | None = None,
    headers: dict | None = None,
) -> httpx.Response:
    """GET with transport failures mapped to ``NetworkError``."""
    logger.debug("GET %s %s", url, params or "")
    try:
        response = await client.get(
            url, params=params, headers=headers, timeout=timeout, follow_redirects=True
        )
    except httpx.TimeoutException as e:
        raise NetworkError(f"Timed out after {timeout:.0f}s fetching {what}") from e
    except httpx.TransportError as e:
        raise NetworkError(f"Could not fetch {what}: {e}") from e
    raise_for_status(response, what)
    return response


class GitHubApi:
    """Thin async wrapper over the handful of REST endpoints the engines need."""

    def __init__(self, client: httpx.AsyncClient, settings: Settings, token: str = ""):
        self.client = client
        self.base_url = settings.api_base_url.rstrip("/")
        self.timeout = settings.api_timeout
        self.token = token

    def _headers(self, token: str | None = None) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        token = self.token if token is None else token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _get_json(self, path: str, what: str, params: dict | None = None) -> Any:
        response = await send_get(
            self.client,
            f"{self.base_url}{path}",
            what,
            self.timeout,
            params=params,
            headers=self._headers(),
        )
        return response.json()

    # -- Hashes -----------------------------------------------------------

    async def get_file_sha(self, owner: str, repo: str, path: str, branch: str) -> str:
        """Blob SHA of a single file at ``branch``."""
        what = f"{owner}/{repo}:{path}@{branch}"
        data = await self._get_json(
            f"/repos/{owner}/{repo}/contents/{quote(path)}", what, params={"ref": branch}
        )
        if not isinstance(data, dict) or data.get("type", "file") != "file":
            raise NotFoundError(f"{what} is not a file")
        return data["sha"]

    async def get_directory_hash(self, owner: str, repo: str, path: str, branch: str) -> str:
        """Composite hash over every blob below ``path`` at ``branch``."""
        what = f"{owner}/{repo}:{path}@{branch}"
        data = await self._get_json(
            f"/repos/{owner}/{repo}/git/trees/{quote(branch, safe='')}",
            what,
            params={"recursive": "1"},
        )
        if data.get("truncated"):
            logger.warning("Tree listing for %s/%s@%s is truncated", owner, repo, branch)

        prefix = path.strip("/") + "/"
        blobs = []
        for entry in data.get("tree", []):
            entry_path = entry.get("path", "")
            if entry.get("type") != "blob" or not entry_path.startswith(prefix):
                continue
            relative = entry_path[len(prefix):]
            if not is_skipped(relative):
                blobs.append((relative, entry["sha"]))
        if not blobs:
            raise NotFoundError(f"{what} not found")
        return composite_hash(blobs)

    # -- Repository metadata ----------------------------------------------

    async def get_latest_commit(
        self, owner: str, repo: str, path: str, branch: str
    ) -> tuple[str, int | None] | None:
        """First line of the latest commit message touching ``path`` and its time."""
        data = await self._get_json(
            f"/repos/{owner}/{repo}/commits",
            f"commits of {owner}/{repo}:{path}",
            params={"sha": branch, "path": path, "per_page": "1"},
        )
        if not data:
            return None
        commit = data[0].get("commit", {})
        message = (commit.get("message") or "").splitlines()[0] if commit.get("message") else ""
        date = (commit.get("committer") or {}).get("date")
        timestamp = None
        if date:
            timestamp = int(datetime.fromisoformat(date.replace("Z", "+00:00")).timestamp())
        return message, timestamp

    async def get_default_branch(self, owner: str, repo: str) -> str:
        data = await self._get_json(f"/repos/{owner}/{repo}", f"repository {owner}/{repo}")
        return data.get("default_branch") or "main"

    # -- Quota ------------------------------------------------------------

    async def get_rate_limit(self, token: str | None = None) -> RateLimitInfo:
        response = await send_get(
            self.client,
            f"{self.base_url}/rate_limit",
            "rate limit",
            self.timeout,
            headers=self._headers(token),
        )
        core = response.json().get("resources", {}).get("core") or response.json().get("rate", {})
        return RateLimitInfo(
            limit=int(core.get("limit", 0)),
            remaining=int(core.get("remaining", 0)),
            reset_at=int(core.get("reset", 0)),
            authenticated=bool(self.token if token is None else token),
        )

    async def validate_token(self, token: str) -> RateLimitInfo:
        """Check a token against the rate-limit endpoint; raises UnauthorizedError if rejected."""
        return await self.get_rate_limit(token=token)
