"""Source repository registry backed by the ``source_repos`` table.

Builtin repositories are seeded from ``builtin_repos.yaml`` shipped with
the package. Seeding never overwrites a user's enabled flag or branch.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

import yaml

from cfgsync.errors import ConflictError, NotFoundError, ValidationError
from cfgsync.kinds import ALL_KINDS
from cfgsync.models import LocalizedDescription, SourceRepo
from cfgsync.store.database import Database

logger = logging.getLogger(__name__)

BUILTIN_MANIFEST = Path(__file__).parent / "builtin_repos.yaml"

_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def load_builtin_manifest(path: str | Path = BUILTIN_MANIFEST) -> list[SourceRepo]:
    """Read the bundled manifest into ``SourceRepo`` records (builtin=True)."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    repos = []
    for item in data.get("repos", []):
        desc = item.get("description") or {}
        if isinstance(desc, str):
            desc = {"en": desc}
        repos.append(
            SourceRepo(
                owner=item["owner"],
                name=item["name"],
                branch=item.get("branch", "main"),
                enabled=item.get("enabled", True),
                builtin=True,
                description=LocalizedDescription(
                    zh=desc.get("zh", ""), en=desc.get("en", ""), ja=desc.get("ja", "")
                ),
            )
        )
    return repos


def parse_repo_spec(spec: str) -> tuple[str, str, str | None]:
    """Parse ``owner/name`` or ``owner/name@branch`` (GitHub URLs accepted)."""
    text = spec.strip()
    text = re.sub(r"^https?://github\.com/", "", text).removesuffix(".git").strip("/")
    branch = None
    if "@" in text:
        text, branch = text.rsplit("@", 1)
    parts = text.split("/")
    if len(parts) != 2 or not all(_NAME_RE.match(p) for p in parts):
        raise ValidationError(f"Expected owner/name[@branch], got {spec!r}")
    return parts[0], parts[1], branch or None


class RepoRegistry:
    """CRUD over source repositories."""

    def __init__(self, db: Database, manifest_path: str | Path = BUILTIN_MANIFEST):
        self.db = db
        self.manifest_path = Path(manifest_path)

    def seed_builtin(self) -> int:
        """Insert builtin repositories that are not yet registered."""
        added = 0
        for repo in load_builtin_manifest(self.manifest_path):
            existing = self.db.get_repo(repo.owner, repo.name)
            if existing is None:
                self.db.save_repo(repo)
                added += 1
            elif not existing.builtin or existing.description != repo.description:
                existing.builtin = True
                existing.description = repo.description
                self.db.save_repo(existing)
        if added:
            logger.info("Seeded %d builtin repositories", added)
        return added

    def list(self, enabled_only: bool = False) -> list[SourceRepo]:
        repos = self.db.list_repos()
        return [r for r in repos if r.enabled] if enabled_only else repos

    def get(self, owner: str, name: str) -> SourceRepo:
        repo = self.db.get_repo(owner, name)
        if repo is None:
            raise NotFoundError(f"Repository {owner}/{name} is not registered")
        return repo

    def add(self, owner: str, name: str, branch: str = "main", description: str = "") -> SourceRepo:
        """Register (or update the branch of) a user repository."""
        existing = self.db.get_repo(owner, name)
        if existing is not None:
            existing.branch = branch
            existing.enabled = True
            self.db.save_repo(existing)
            return existing
        repo = SourceRepo(
            owner=owner,
            name=name,
            branch=branch,
            description=LocalizedDescription(en=description),
        )
        self.db.save_repo(repo)
        return repo

    def remove(self, owner: str, name: str) -> None:
        repo = self.get(owner, name)
        if repo.builtin:
            raise ConflictError(
                f"{repo.full_name} is a builtin repository; disable it instead of removing it"
            )
        self.db.delete_repo(owner, name)
        for descriptor in ALL_KINDS:
            self.db.delete_cache(descriptor, owner, name)

    def set_enabled(self, owner: str, name: str, enabled: bool) -> SourceRepo:
        repo = self.get(owner, name)
        repo.enabled = enabled
        self.db.save_repo(repo)
        return repo
