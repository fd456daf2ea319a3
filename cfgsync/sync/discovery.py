"""Discovery -- find installable resources in source repositories.

Each enabled repository is scanned from a fresh branch snapshot unless a
cache entry younger than the TTL exists. Repositories are fetched
concurrently; one failing repository is logged and skipped rather than
failing the whole discovery.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from pathlib import Path
from typing import TYPE_CHECKING

from cfgsync.errors import CfgSyncError, ParseError
from cfgsync.kinds import KindDescriptor
from cfgsync.models import DiscoverableResource, SourceRepo
from cfgsync.parsing.frontmatter import parse_front_matter
from cfgsync.parsing.hooks import parse_hook_source
from cfgsync.remote.fetcher import find_kind_dirs
from cfgsync.store.ssot import build_id, list_resource_ids, parse_id

if TYPE_CHECKING:
    from cfgsync.context import SyncContext

logger = logging.getLogger(__name__)


def readme_url(owner: str, name: str, branch: str, source_path: str) -> str:
    return f"https://github.com/{owner}/{name}/blob/{branch}/{source_path}"


def scan_snapshot(
    root: Path,
    descriptor: KindDescriptor,
    owner: str,
    name: str,
    branch: str,
    max_depth: int = 3,
) -> list[DiscoverableResource]:
    """Parse every resource of one kind found in an unpacked repository."""
    resources: list[DiscoverableResource] = []

    for kind_dir, namespace in find_kind_dirs(root, descriptor.dir_name, max_depth):
        for rel_id in list_resource_ids(kind_dir, descriptor):
            base_id = build_id(namespace, rel_id)
            path = kind_dir / (rel_id + descriptor.extension)
            source_path = path.relative_to(root).as_posix()
            entry = path / descriptor.entry_file if descriptor.is_directory else path
            try:
                text = entry.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.warning("Cannot read %s: %s", source_path, e)
                continue

            common = dict(
                repo_owner=owner,
                repo_name=name,
                repo_branch=branch,
                source_path=source_path,
                readme_url=readme_url(owner, name, branch, source_path),
            )

            if descriptor.is_aggregate:
                try:
                    documents = parse_hook_source(text, base_id)
                except ParseError as e:
                    logger.warning("Skipping %s in %s/%s: %s", source_path, owner, name, e)
                    continue
                for resource_id, doc in documents:
                    ns, filename = parse_id(resource_id)
                    resources.append(
                        DiscoverableResource(
                            key=f"{owner}/{name}:{resource_id}",
                            id=resource_id,
                            kind=descriptor.kind,
                            name=doc.name or filename,
                            description=doc.description,
                            namespace=ns,
                            filename=filename,
                            metadata=doc.metadata(),
                            **common,
                        )
                    )
                continue

            parsed = parse_front_matter(text, descriptor.kind)
            ns, filename = parse_id(base_id)
            resources.append(
                DiscoverableResource(
                    key=f"{owner}/{name}:{base_id}",
                    id=base_id,
                    kind=descriptor.kind,
                    name=parsed.name or filename,
                    description=parsed.description or "",
                    namespace=ns,
                    filename=filename,
                    metadata=parsed.fields,
                    **common,
                )
            )
    return resources


def dedupe_and_sort(resources: list[DiscoverableResource]) -> list[DiscoverableResource]:
    """Drop case-insensitive duplicate ids (first wins), sort by name."""
    seen: set[str] = set()
    unique = []
    for resource in resources:
        key = resource.id.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(resource)
    unique.sort(key=lambda r: r.name.lower())
    return unique


class DiscoveryService:
    """Discovery with a per-(owner, repo, branch) cache."""

    def __init__(self, ctx: SyncContext, descriptor: KindDescriptor):
        self.ctx = ctx
        self.descriptor = descriptor

    async def discover(
        self, repos: list[SourceRepo] | None = None, force_refresh: bool = False
    ) -> list[DiscoverableResource]:
        if repos is None:
            repos = self.ctx.db.list_repos()
        enabled = [repo for repo in repos if repo.enabled]

        try:
            purged = self.ctx.db.delete_expired_cache(
                self.descriptor, self.ctx.settings.cache_ttl_seconds
            )
            if purged:
                logger.debug("Purged %d expired %s cache entries", purged, self.descriptor.dir_name)
        except sqlite3.Error as e:
            logger.warning("Could not purge expired cache entries: %s", e)

        results = await asyncio.gather(
            *(self._discover_repo(repo, force_refresh) for repo in enabled),
            return_exceptions=True,
        )

        merged: list[DiscoverableResource] = []
        for repo, result in zip(enabled, results):
            if isinstance(result, CfgSyncError):
                logger.warning("Skipping %s: %s", repo.full_name, result.user_message())
                continue
            if isinstance(result, Exception):
                logger.warning("Skipping %s: unexpected %s: %s", repo.full_name, type(result).__name__, result)
                continue
            if isinstance(result, BaseException):
                raise result
            merged.extend(result)
        return dedupe_and_sort(merged)

    async def _discover_repo(self, repo: SourceRepo, force_refresh: bool) -> list[DiscoverableResource]:
        if not force_refresh:
            cached = self._read_cache(repo)
            if cached is not None:
                logger.debug("Cache hit for %s", repo.full_name)
                return cached

        resources = await self.fetch_repo(repo)
        try:
            self.ctx.db.save_cache(self.descriptor, repo.owner, repo.name, repo.branch, resources)
        except sqlite3.Error as e:
            logger.warning("Could not cache discovery results for %s: %s", repo.full_name, e)
        return resources

    def _read_cache(self, repo: SourceRepo) -> list[DiscoverableResource] | None:
        try:
            entry = self.ctx.db.get_cache(self.descriptor, repo.owner, repo.name, repo.branch)
        except (sqlite3.Error, ValueError, KeyError, TypeError) as e:
            logger.warning("Unreadable cache entry for %s, refetching: %s", repo.full_name, e)
            return None
        if entry is None:
            return None
        resources, scanned_at = entry
        if time.time() - scanned_at > self.ctx.settings.cache_ttl_seconds:
            return None
        return resources

    async def fetch_repo(self, repo: SourceRepo) -> list[DiscoverableResource]:
        """Download a fresh snapshot and scan it."""
        snapshot = await self.ctx.fetcher.download_snapshot(repo.owner, repo.name, repo.branch)
        with snapshot:
            resources = scan_snapshot(
                snapshot.local_path,
                self.descriptor,
                repo.owner,
                repo.name,
                snapshot.branch,
                self.ctx.settings.scan_depth,
            )
        logger.info(
            "Found %d %s in %s", len(resources), self.descriptor.dir_name, repo.full_name
        )
        return resources

    # -- Cache management ---------------------------------------------------

    def clear_cache(self, repo: SourceRepo | None = None) -> int:
        if repo is None:
            return self.ctx.db.delete_cache(self.descriptor)
        return self.ctx.db.delete_cache(self.descriptor, repo.owner, repo.name)

    def cleanup_expired_cache(self) -> int:
        return self.ctx.db.delete_expired_cache(
            self.descriptor, self.ctx.settings.cache_ttl_seconds
        )

    def cache_stats(self) -> dict[str, int]:
        return self.ctx.db.cache_stats(self.descriptor)
