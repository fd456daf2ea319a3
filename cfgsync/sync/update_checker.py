"""Update checker -- compare stored content hashes against the remote repository.

Only hashes are fetched: a blob SHA for file resources, a composite tree
hash for directory resources. When the stored branch no longer has the
resource, the repository's current default branch is tried once before the
resource is reported as deleted upstream.
"""

from __future__ import annotations

import asyncio
import logging

from cfgsync.errors import CfgSyncError, NotFoundError, ValidationError
from cfgsync.kinds import KindDescriptor
from cfgsync.models import BatchCheckResult, InstalledResource, UpdateCheckResult
from cfgsync.remote.github import GitHubApi
from cfgsync.store.ssot import id_to_relative_path

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5


class UpdateChecker:
    """Checks installed resources of one kind for upstream changes."""

    def __init__(self, api: GitHubApi, descriptor: KindDescriptor, concurrency: int = DEFAULT_CONCURRENCY):
        self.api = api
        self.descriptor = descriptor
        self.concurrency = max(1, concurrency)

    def source_path(self, resource: InstalledResource) -> str:
        return resource.source_path or id_to_relative_path(resource.id, self.descriptor)

    async def remote_hash(self, resource: InstalledResource, branch: str) -> str:
        owner, repo, path = resource.repo_owner, resource.repo_name, self.source_path(resource)
        if self.descriptor.is_directory:
            return await self.api.get_directory_hash(owner, repo, path, branch)
        return await self.api.get_file_sha(owner, repo, path, branch)

    async def check_update(self, resource: InstalledResource) -> UpdateCheckResult:
        """Check a single resource. Errors propagate to the caller."""
        if resource.is_local:
            raise ValidationError(f"{resource.id} was imported locally and has no remote to check")

        result = UpdateCheckResult(
            id=resource.id, kind=resource.kind, current_hash=resource.content_hash
        )
        branch = resource.repo_branch or "main"

        try:
            new_hash = await self.remote_hash(resource, branch)
        except NotFoundError:
            try:
                default = await self.api.get_default_branch(resource.repo_owner, resource.repo_name)
            except NotFoundError:
                result.remote_deleted = True
                return result
            if default == branch:
                result.remote_deleted = True
                return result
            logger.info("%s: not on %s, retrying on default branch %s", resource.id, branch, default)
            try:
                new_hash = await self.remote_hash(resource, default)
            except NotFoundError:
                result.remote_deleted = True
                return result
            branch = default

        result.new_hash = new_hash
        result.has_update = new_hash != resource.content_hash
        if result.has_update:
            try:
                commit = await self.api.get_latest_commit(
                    resource.repo_owner, resource.repo_name, self.source_path(resource), branch
                )
            except CfgSyncError as e:
                logger.debug("No commit info for %s: %s", resource.id, e)
                commit = None
            if commit:
                result.commit_message, result.updated_at = commit
        return result

    async def check_updates(self, resources: list[InstalledResource]) -> BatchCheckResult:
        """Check many resources with at most ``concurrency`` in flight.

        A failing item is recorded with its error and counted; it never
        aborts the batch.
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def check_one(resource: InstalledResource) -> UpdateCheckResult:
            async with semaphore:
                try:
                    return await self.check_update(resource)
                except CfgSyncError as e:
                    logger.warning("Update check failed for %s: %s", resource.id, e)
                    return UpdateCheckResult(
                        id=resource.id,
                        kind=resource.kind,
                        current_hash=resource.content_hash,
                        error=e.user_message(),
                    )

        results = await asyncio.gather(*(check_one(r) for r in resources))
        batch = BatchCheckResult(results=list(results))
        logger.info("%s update check: %s", self.descriptor.label, batch.summary())
        return batch
