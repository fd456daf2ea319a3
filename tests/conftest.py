"""Shared fixtures: an in-memory GitHub and isolated settings."""

from __future__ import annotations

import io
import json
import re
import zipfile
from pathlib import Path

import httpx
import pytest
import pytest_asyncio

from cfgsync.config import Settings
from cfgsync.context import SyncContext
from cfgsync.store.database import Database
from cfgsync.store.ssot import git_blob_sha

RESET_AT = 1_900_000_000

AGENT_MD = """---
name: agent
description: Spins up a helper agent
category: workflow
allowedTools: Read, Write
---
Run the agent.
"""

REVIEW_MD = """---
name: review
description: Review the current diff
---
Review everything.
"""

HOOK_JSON = json.dumps(
    {
        "name": "guard-bash",
        "description": "Block rm -rf",
        "event_type": "PreToolUse",
        "rules": [
            {"matcher": "Bash", "hooks": [{"type": "command", "command": "guard.sh"}]}
        ],
        "priority": 50,
    },
    indent=2,
)

AGGREGATE_HOOKS_JSON = json.dumps(
    {
        "hooks": {
            "PreToolUse": [
                {"matcher": "Edit", "hooks": [{"type": "command", "command": "fmt.sh", "timeout": 30}]}
            ],
            "PostToolUse": [
                {"matcher": "", "hooks": [{"type": "command", "command": "log.sh"}]}
            ],
            "SessionStart": [
                {"matcher": "", "hooks": [{"type": "command", "command": "hello.sh"}]}
            ],
        }
    }
)

SKILL_MD = """---
name: pdf
description: Work with PDF files
---
Use the scripts.
"""


class FakeGitHub:
    """Serves branch archives, raw files and the REST endpoints cfgsync calls."""

    def __init__(self):
        # (owner, name) -> {"default_branch": str, "branches": {branch: {path: bytes}}}
        self.repos: dict[tuple[str, str], dict] = {}
        self.requests: list[httpx.Request] = []
        self.rate_limited = False
        self.fail_archives: set[tuple[str, str]] = set()

    def add_repo(self, owner: str, name: str, files: dict, branch: str = "main", default_branch: str | None = None):
        repo = self.repos.setdefault(
            (owner, name), {"default_branch": default_branch or branch, "branches": {}}
        )
        if default_branch:
            repo["default_branch"] = default_branch
        repo["branches"][branch] = {
            path: content.encode() if isinstance(content, str) else content
            for path, content in files.items()
        }

    def set_file(self, owner: str, name: str, path: str, content: str, branch: str = "main"):
        self.repos[(owner, name)]["branches"][branch][path] = content.encode()

    def delete_file(self, owner: str, name: str, path: str, branch: str = "main"):
        del self.repos[(owner, name)]["branches"][branch][path]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    def count(self, host: str) -> int:
        return sum(1 for r in self.requests if r.url.host == host)

    # -- Routing ----------------------------------------------------------

    def _files(self, owner: str, name: str, branch: str) -> dict | None:
        repo = self.repos.get((owner, name))
        if repo is None:
            return None
        return repo["branches"].get(branch)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host, path = request.url.host, request.url.path

        if host == "github.com":
            return self._archive(path)
        if host == "raw.githubusercontent.com":
            owner, name, branch, file_path = path.lstrip("/").split("/", 3)
            files = self._files(owner, name, branch)
            if files is None or file_path not in files:
                return httpx.Response(404, text="404: Not Found")
            return httpx.Response(200, content=files[file_path])
        if host == "api.github.com":
            if self.rate_limited:
                return httpx.Response(
                    403,
                    json={"message": "API rate limit exceeded"},
                    headers={
                        "x-ratelimit-limit": "60",
                        "x-ratelimit-remaining": "0",
                        "x-ratelimit-reset": str(RESET_AT),
                    },
                )
            return self._api(request, path)
        return httpx.Response(404)

    def _archive(self, path: str) -> httpx.Response:
        match = re.match(r"^/([^/]+)/([^/]+)/archive/refs/heads/(.+)\.zip$", path)
        if not match:
            return httpx.Response(404)
        owner, name, branch = match.groups()
        if (owner, name) in self.fail_archives:
            return httpx.Response(500, text="boom")
        files = self._files(owner, name, branch)
        if files is None:
            return httpx.Response(404)
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            root = f"{name}-{branch}/"
            archive.writestr(root, "")
            for file_path, content in files.items():
                archive.writestr(root + file_path, content)
        return httpx.Response(200, content=buffer.getvalue())

    def _api(self, request: httpx.Request, path: str) -> httpx.Response:
        params = request.url.params
        if path == "/rate_limit":
            if request.headers.get("Authorization") == "Bearer bad-token":
                return httpx.Response(401, json={"message": "Bad credentials"})
            core = {"limit": 5000, "remaining": 4999, "reset": RESET_AT}
            return httpx.Response(200, json={"resources": {"core": core}, "rate": core})

        match = re.match(r"^/repos/([^/]+)/([^/]+)(/.*)?$", path)
        if not match:
            return httpx.Response(404)
        owner, name, rest = match.group(1), match.group(2), match.group(3) or ""
        repo = self.repos.get((owner, name))
        if repo is None:
            return httpx.Response(404, json={"message": "Not Found"})

        if rest == "":
            return httpx.Response(200, json={"default_branch": repo["default_branch"]})

        if rest.startswith("/contents/"):
            files = self._files(owner, name, params.get("ref", repo["default_branch"]))
            file_path = rest[len("/contents/"):]
            if files is None or file_path not in files:
                return httpx.Response(404, json={"message": "Not Found"})
            content = files[file_path]
            return httpx.Response(
                200,
                json={"type": "file", "path": file_path, "sha": git_blob_sha(content), "size": len(content)},
            )

        if rest.startswith("/git/trees/"):
            files = self._files(owner, name, rest[len("/git/trees/"):])
            if files is None:
                return httpx.Response(404, json={"message": "Not Found"})
            tree = [
                {"path": p, "type": "blob", "sha": git_blob_sha(c)} for p, c in sorted(files.items())
            ]
            return httpx.Response(200, json={"tree": tree, "truncated": False})

        if rest == "/commits":
            files = self._files(owner, name, params.get("sha", ""))
            if files is None:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(
                200,
                json=[
                    {
                        "sha": "abc123",
                        "commit": {
                            "message": f"Update {params.get('path')}\n\nLonger body",
                            "committer": {"date": "2026-01-02T03:04:05Z"},
                        },
                    }
                ],
            )
        return httpx.Response(404)


def make_settings(root: Path) -> Settings:
    return Settings(
        data_root=root / "data",
        app_dirs={app: root / app for app in ("claude", "codex", "gemini")},
    )


def make_context(root: Path, github: FakeGitHub) -> SyncContext:
    settings = make_settings(root)
    return SyncContext(settings, db=Database(settings.database_path), client=github.client())


@pytest.fixture
def github() -> FakeGitHub:
    fake = FakeGitHub()
    fake.add_repo(
        "acme",
        "commands",
        {
            "README.md": "# acme commands",
            "commands/sc/agent.md": AGENT_MD,
            "commands/sc/review.md": REVIEW_MD,
            "commands/sc/README.md": "not a command",
            "hooks/guard-bash.json": HOOK_JSON,
            "hooks/formatting.json": AGGREGATE_HOOKS_JSON,
            "skills/pdf/SKILL.md": SKILL_MD,
            "skills/pdf/scripts/extract.py": "print('pdf')\n",
        },
    )
    return fake


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest_asyncio.fixture
async def ctx(tmp_path: Path, github: FakeGitHub):
    """A context wired to the fake GitHub with acme/commands registered."""
    context = make_context(tmp_path, github)
    context.repos.add("acme", "commands")
    yield context
    await context.client.aclose()
    await context.aclose()
