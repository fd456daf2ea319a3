"""Resource engine -- the lifecycle of installed resources for one kind.

One ``ResourceEngine`` is created per ``KindDescriptor``; it composes the
discovery service, the app projector, the drift detector, the conflict
resolver and the update checker, and owns every operation that mutates the
SSOT tree and the database together.

Network calls (download, remote hash lookups) are awaited; everything that
touches the filesystem or the database runs synchronously between awaits.
"""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError as SchemaError

from cfgsync.errors import (
    CfgSyncError,
    ConflictError,
    LocalIOError,
    NotFoundError,
    ParseError,
    ValidationError,
)
from cfgsync.kinds import KindDescriptor
from cfgsync.models import (
    AppSet,
    AppType,
    BatchCheckResult,
    ChangeEvent,
    ConflictResolution,
    DiscoverableResource,
    InstalledResource,
    NamespaceInfo,
    Scope,
    SourceRepo,
    UnmanagedResource,
    UpdateCheckResult,
    UpdateResult,
)
from cfgsync.parsing.frontmatter import parse_front_matter
from cfgsync.parsing.hooks import (
    SUPPORTED_EVENTS,
    HookDocument,
    HookRule,
    is_fanned_out,
    parse_hook_source,
)
from cfgsync.store.ssot import (
    build_id,
    copy_resource,
    id_to_relative_path,
    list_resource_ids,
    parse_id,
    validate_id,
)
from cfgsync.sync.discovery import DiscoveryService
from cfgsync.sync.drift import ConflictResolver, DriftDetector, reparse_record
from cfgsync.sync.projector import AppProjector
from cfgsync.sync.update_checker import UpdateChecker

if TYPE_CHECKING:
    from cfgsync.context import SyncContext

logger = logging.getLogger(__name__)

IMPORTED_NAMESPACE = "imported"


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-") or "all"


class ResourceEngine:
    """Install, project, reconcile and update resources of one kind."""

    def __init__(self, ctx: SyncContext, descriptor: KindDescriptor):
        self.ctx = ctx
        self.descriptor = descriptor
        self.db = ctx.db
        self.ssot = ctx.ssot
        self.projector = AppProjector(ctx.settings, ctx.ssot, ctx.db, descriptor)
        self.discovery = DiscoveryService(ctx, descriptor)
        self.detector = DriftDetector(ctx.ssot, ctx.db, self.projector, descriptor)
        self.resolver = ConflictResolver(ctx.ssot, ctx.db, self.projector, descriptor)
        self.updates = UpdateChecker(ctx.api, descriptor, ctx.settings.update_concurrency)

    # ── Lookups ──────────────────────────────────────────────────────

    def get(self, resource_id: str) -> InstalledResource:
        record = self.db.get_resource(self.descriptor, resource_id)
        if record is None:
            raise NotFoundError(f"{self.descriptor.label} {resource_id} is not installed")
        return record

    def list_installed(self) -> list[InstalledResource]:
        return self.db.list_resources(self.descriptor)

    # ── Discovery ────────────────────────────────────────────────────

    async def discover(
        self, force_refresh: bool = False, repos: list[SourceRepo] | None = None
    ) -> list[DiscoverableResource]:
        return await self.discovery.discover(repos, force_refresh)

    # ── Install / uninstall ──────────────────────────────────────────

    def check_scope_conflict(self, resource_id: str, scope: Scope, project_path: str | None = None) -> None:
        """Raise if the resource is already installed in a different scope."""
        existing = self.db.get_resource(self.descriptor, resource_id)
        if existing is None:
            return
        if existing.scope != scope or (
            scope == Scope.PROJECT and existing.project_path != project_path
        ):
            where = existing.project_path if existing.scope == Scope.PROJECT else "global scope"
            raise ConflictError(
                f"{resource_id} is already installed in {where}; change its scope instead"
            )

    async def install(
        self,
        resource: DiscoverableResource,
        app: AppType,
        scope: Scope = Scope.GLOBAL,
        project_path: str | None = None,
    ) -> InstalledResource:
        """Install a discovered resource and project it into ``app``.

        A requested project scope is applied afterwards as a separate
        ``change_scope`` step.
        """
        validate_id(resource.id)
        if scope == Scope.PROJECT:
            project_path = self._normalize_project(project_path)
        self.check_scope_conflict(resource.id, scope, project_path)
        record = await self._install(resource, app)
        if scope == Scope.PROJECT:
            record = self.change_scope(resource.id, Scope.PROJECT, project_path, current_app=app)
        return record

    async def _install(
        self,
        resource: DiscoverableResource,
        app: AppType,
        force_download: bool = False,
        project: bool = True,
    ) -> InstalledResource:
        d = self.descriptor
        rid = resource.id
        branch = resource.repo_branch or "main"
        source_path = resource.source_path or id_to_relative_path(rid, d)

        if force_download or not self.ssot.exists(d, rid):
            await self._download(resource, source_path, branch)
        else:
            logger.info("%s already in SSOT; keeping the local copy", rid)

        existing = self.db.get_resource(d, rid)
        namespace, filename = parse_id(rid)
        record = InstalledResource(
            id=rid,
            kind=d.kind,
            name=resource.name or filename,
            description=resource.description,
            namespace=namespace,
            filename=filename,
            metadata=dict(resource.metadata),
            repo_owner=resource.repo_owner or None,
            repo_name=resource.repo_name or None,
            repo_branch=branch if resource.repo_owner else None,
            readme_url=resource.readme_url or None,
            source_path=source_path if resource.repo_owner else None,
        )
        reparse_record(self.ssot, d, record)
        record.content_hash = await self._resolve_hash(resource, source_path, branch)

        if existing is not None:
            record.installed_at = existing.installed_at
            record.scope = existing.scope
            record.project_path = existing.project_path
            record.apps = existing.apps
            if d.is_aggregate:
                for key in ("enabled", "priority"):
                    if existing.metadata.get(key) is not None:
                        record.metadata[key] = existing.metadata[key]
        if record.scope == Scope.GLOBAL:
            record.apps.set(app, True)

        self.db.save_resource(d, record)
        if project:
            if record.scope == Scope.PROJECT and record.project_path:
                self.projector.copy_to_project(rid, record.project_path)
            else:
                self.projector.copy_to_app(rid, app)
        logger.info("Installed %s %s for %s", d.label.lower(), rid, app.value)
        return record

    async def _download(self, resource: DiscoverableResource, source_path: str, branch: str) -> None:
        d = self.descriptor
        owner, name = resource.repo_owner, resource.repo_name
        if not owner or not name:
            raise ValidationError(f"{resource.id} has no source repository to download from")

        if d.is_directory:
            snapshot = await self.ctx.fetcher.download_snapshot(owner, name, branch)
            with snapshot:
                source = snapshot.local_path / source_path
                if not (source / d.entry_file).is_file():
                    raise NotFoundError(f"{owner}/{name}:{source_path} has no {d.entry_file}")
                self.ssot.write_tree(d, resource.id, source)
            return

        data = await self.ctx.fetcher.fetch_raw(owner, name, branch, source_path)
        if d.is_aggregate:
            doc = self._select_hook_document(data.decode("utf-8", errors="replace"), resource)
            if doc is not None:
                data = doc.to_json().encode("utf-8")
        self.ssot.write_bytes(d, resource.id, data)

    def _select_hook_document(self, text: str, resource: DiscoverableResource) -> HookDocument | None:
        """The single-event document for a hook split out of an aggregate file.

        Returns None when the source already is a single-event document.
        """
        base_id = resource.id
        event_type = resource.metadata.get("event_type")
        suffix = SUPPORTED_EVENTS.get(event_type or "")
        if suffix and resource.id.endswith(f"-{suffix}"):
            base_id = resource.id[: -len(suffix) - 1]
        documents = parse_hook_source(text, base_id)
        if len(documents) == 1 and documents[0][0] == base_id:
            return None
        for resource_id, doc in documents:
            if resource_id == resource.id:
                return doc
        raise NotFoundError(f"{resource.source_path} no longer defines {event_type} hooks")

    async def _resolve_hash(self, resource: DiscoverableResource, source_path: str, branch: str) -> str | None:
        """Prefer the remote hash; fall back to hashing the SSOT copy."""
        if resource.remote_hash:
            return resource.remote_hash
        if resource.repo_owner and resource.repo_name:
            try:
                if self.descriptor.is_directory:
                    return await self.ctx.api.get_directory_hash(
                        resource.repo_owner, resource.repo_name, source_path, branch
                    )
                return await self.ctx.api.get_file_sha(
                    resource.repo_owner, resource.repo_name, source_path, branch
                )
            except CfgSyncError as e:
                logger.warning("Remote hash unavailable for %s, using local hash: %s", resource.id, e)
        return self.ssot.hash(self.descriptor, resource.id)

    def uninstall(self, resource_id: str) -> None:
        """Remove projections, the SSOT copy and the record, in that order."""
        d = self.descriptor
        record = self.get(resource_id)

        if d.is_aggregate:
            record.apps = AppSet()
            record.metadata["enabled"] = False
            self.db.save_resource(d, record)
        for app in AppType:
            try:
                self.projector.remove_from_app(resource_id, app)
            except CfgSyncError as e:
                logger.warning("Could not remove %s from %s: %s", resource_id, app.value, e)
        if record.scope == Scope.PROJECT and record.project_path:
            try:
                self.projector.remove_from_project(resource_id, record.project_path)
            except CfgSyncError as e:
                logger.warning("Could not remove %s from %s: %s", resource_id, record.project_path, e)

        self.ssot.delete(d, resource_id)
        self.db.delete_resource(d, resource_id)
        logger.info("Uninstalled %s %s", d.label.lower(), resource_id)

    # ── Projection ───────────────────────────────────────────────────

    def toggle_app(self, resource_id: str, app: AppType, enabled: bool) -> InstalledResource:
        d = self.descriptor
        record = self.get(resource_id)
        if enabled and record.scope == Scope.PROJECT:
            raise ConflictError(
                f"{resource_id} is scoped to {record.project_path}; move it to global scope first"
            )
        previous = record.apps.is_enabled(app)
        record.apps.set(app, enabled)
        self.db.update_app_flag(d, resource_id, app.value, enabled)
        try:
            if enabled:
                self.projector.copy_to_app(resource_id, app)
            else:
                self.projector.remove_from_app(resource_id, app)
        except CfgSyncError:
            self.db.update_app_flag(d, resource_id, app.value, previous)
            raise
        return record

    def sync_all_to_apps(self) -> int:
        return self.projector.sync_all()

    def generate_app_config(self, app: AppType) -> dict[str, list[dict]]:
        self._require_aggregate()
        return self.projector.generate_app_config(app)

    def sync_to_app(self, app: AppType) -> Path:
        self._require_aggregate()
        return self.projector.sync_to_app(app)

    # ── Scope ────────────────────────────────────────────────────────

    @staticmethod
    def _normalize_project(project_path: str | Path | None) -> str:
        if not project_path:
            raise ValidationError("A project path is required for project scope")
        path = Path(project_path).expanduser().resolve()
        if not path.is_dir():
            raise ValidationError(f"Project directory does not exist: {path}")
        return str(path)

    def change_scope(
        self,
        resource_id: str,
        scope: Scope,
        project_path: str | Path | None = None,
        current_app: AppType = AppType.CLAUDE,
    ) -> InstalledResource:
        """Move a resource between global and project scope.

        The old projection is removed before the new one is written and the
        record is updated last, so both scopes are never persisted at once.
        """
        d = self.descriptor
        record = self.get(resource_id)
        new_project = self._normalize_project(project_path) if scope == Scope.PROJECT else None
        if record.scope == scope and record.project_path == new_project:
            return record

        old_scope, old_project = record.scope, record.project_path
        new_apps = AppSet() if scope == Scope.PROJECT else AppSet.only(current_app)

        if d.is_aggregate:
            record.scope, record.project_path, record.apps = scope, new_project, new_apps
            self.db.save_resource(d, record)
            self.projector.sync_all()
            if old_project:
                self.projector.sync_to_project(old_project)
            return record

        if old_scope == Scope.PROJECT and old_project:
            self.projector.remove_from_project(resource_id, old_project)
        else:
            for app in record.apps.enabled_apps():
                self.projector.remove_from_app(resource_id, app)

        if scope == Scope.PROJECT:
            self.projector.copy_to_project(resource_id, new_project)
        else:
            self.projector.copy_to_app(resource_id, current_app)

        record.scope, record.project_path, record.apps = scope, new_project, new_apps
        self.db.save_resource(d, record)
        logger.info("Moved %s to %s scope", resource_id, scope.value)
        return record

    # ── Drift ────────────────────────────────────────────────────────

    def detect_changes(self) -> list[ChangeEvent]:
        return self.detector.detect_changes()

    def resolve_conflict(
        self, resource_id: str, app: AppType, resolution: ConflictResolution
    ) -> InstalledResource | None:
        return self.resolver.resolve(resource_id, app, resolution)

    def refresh_from_ssot(self) -> int:
        """Bring records in line with the SSOT tree after external edits.

        Records without an SSOT file are dropped; records whose file changed
        get fresh metadata and hash. Returns the number refreshed.
        """
        d = self.descriptor
        refreshed = 0
        for record in self.db.list_resources(d):
            if not self.ssot.exists(d, record.id):
                self.db.delete_resource(d, record.id)
                logger.info("Dropped record %s: its SSOT file is gone", record.id)
                continue
            current = self.ssot.hash(d, record.id)
            if not self.detector.ssot_diverged(record, current):
                continue
            reparse_record(self.ssot, d, record)
            if not (d.is_aggregate and is_fanned_out(record.filename, record.source_path)):
                record.content_hash = current
            self.db.save_resource(d, record)
            refreshed += 1
        if d.is_aggregate and refreshed:
            self.projector.sync_all()
        return refreshed

    # ── Unmanaged resources ──────────────────────────────────────────

    def scan_unmanaged(self) -> list[UnmanagedResource]:
        """Resources present in app directories that have no record."""
        d = self.descriptor
        if d.is_aggregate:
            return [
                UnmanagedResource(
                    id=rid,
                    kind=d.kind,
                    name=parse_id(rid)[1],
                    description=f"{entry['event']} hooks found in app settings",
                    namespace=IMPORTED_NAMESPACE,
                    filename=parse_id(rid)[1],
                    found_in=list(entry["found_in"]),
                )
                for rid, entry in sorted(self._unmanaged_hook_entries().items())
            ]

        managed = {r.id for r in self.db.list_resources(d)}
        found: dict[str, UnmanagedResource] = {}
        for app in AppType:
            base = self.projector.app_kind_dir(app)
            for rid in list_resource_ids(base, d):
                if rid in managed:
                    continue
                try:
                    validate_id(rid)
                except ValidationError:
                    logger.debug("Ignoring unmanageable path %s in %s", rid, app.value)
                    continue
                if rid not in found:
                    found[rid] = self._describe_app_copy(base, rid)
                found[rid].found_in.append(app)
        return sorted(found.values(), key=lambda u: u.id)

    def _describe_app_copy(self, base: Path, resource_id: str) -> UnmanagedResource:
        d = self.descriptor
        path = base / id_to_relative_path(resource_id, d)
        entry = path / d.entry_file if d.is_directory else path
        try:
            text = entry.read_text(encoding="utf-8", errors="replace")
        except OSError:
            text = ""
        parsed = parse_front_matter(text, d.kind)
        namespace, filename = parse_id(resource_id)
        return UnmanagedResource(
            id=resource_id,
            kind=d.kind,
            name=parsed.name or filename,
            description=parsed.description or "",
            namespace=namespace,
            filename=filename,
        )

    def _unmanaged_hook_entries(self) -> dict[str, dict]:
        """Hook rules in app settings not produced by any managed hook."""
        managed = {
            (r.event_type, rule.get("matcher") or "")
            for r in self.db.list_resources(self.descriptor)
            for rule in r.rules
        }
        found: dict[str, dict] = {}
        for app in AppType:
            for event, rules in self.projector.read_app_hooks(app).items():
                suffix = SUPPORTED_EVENTS.get(event)
                if suffix is None or not isinstance(rules, list):
                    continue
                for rule in rules:
                    if not isinstance(rule, dict):
                        continue
                    matcher = rule.get("matcher") or ""
                    if (event, matcher) in managed:
                        continue
                    rid = build_id(IMPORTED_NAMESPACE, f"{suffix}-{_slug(matcher)}")
                    entry = found.setdefault(rid, {"event": event, "rules": [], "found_in": []})
                    if app not in entry["found_in"]:
                        entry["found_in"].append(app)
                    if entry["found_in"][0] == app:
                        entry["rules"].append(rule)
        return found

    def import_from_apps(self, resource_ids: list[str]) -> list[InstalledResource]:
        """Adopt unmanaged app resources into the SSOT and the database."""
        d = self.descriptor
        if d.is_aggregate:
            return self._import_hooks(resource_ids)

        unmanaged = {u.id: u for u in self.scan_unmanaged()}
        imported = []
        for rid in resource_ids:
            item = unmanaged.get(rid)
            if item is None:
                raise NotFoundError(f"{rid} is not an unmanaged {d.label.lower()}")
            source_app = item.found_in[0]
            copy_resource(self.projector.app_path(source_app, rid), self.ssot.path_for(d, rid))
            record = InstalledResource(
                id=rid,
                kind=d.kind,
                name=item.name,
                description=item.description,
                namespace=item.namespace,
                filename=item.filename,
                apps=AppSet.from_apps(item.found_in),
            )
            reparse_record(self.ssot, d, record)
            record.content_hash = self.ssot.hash(d, rid)
            self.db.save_resource(d, record)
            for other in item.found_in[1:]:
                self.projector.copy_to_app(rid, other)
            logger.info("Imported %s from %s", rid, source_app.value)
            imported.append(record)
        return imported

    def _import_hooks(self, resource_ids: list[str]) -> list[InstalledResource]:
        d = self.descriptor
        entries = self._unmanaged_hook_entries()
        imported = []
        for rid in resource_ids:
            entry = entries.get(rid)
            if entry is None:
                raise NotFoundError(f"{rid} is not an unmanaged hook")
            namespace, filename = parse_id(rid)
            try:
                doc = HookDocument(
                    name=filename,
                    event_type=entry["event"],
                    rules=[HookRule.model_validate(rule) for rule in entry["rules"]],
                )
            except SchemaError as e:
                raise ParseError(f"Cannot import {rid}: {e.errors()[0]['msg']}") from e
            self.ssot.write_bytes(d, rid, doc.to_json().encode("utf-8"))
            record = InstalledResource(
                id=rid,
                kind=d.kind,
                name=doc.name,
                namespace=namespace,
                filename=filename,
                metadata=doc.metadata(),
                apps=AppSet.from_apps(entry["found_in"]),
                content_hash=self.ssot.hash(d, rid),
            )
            self.db.save_resource(d, record)
            imported.append(record)
        if imported:
            self.projector.sync_all()
        return imported

    # ── Namespaces ───────────────────────────────────────────────────

    def list_namespaces(self) -> list[NamespaceInfo]:
        return self.db.list_namespaces(self.descriptor)

    def _namespace_dirs(self, namespace: str) -> list[Path]:
        dirs = [self.ssot.namespace_dir(self.descriptor, namespace)]
        if not self.descriptor.is_aggregate:
            dirs += [self.projector.app_kind_dir(app) / namespace for app in AppType]
        return dirs

    def create_namespace(self, namespace: str) -> None:
        namespace = namespace.strip().strip("/")
        if not namespace:
            raise ValidationError("Namespace name cannot be empty")
        validate_id(namespace)
        try:
            for directory in self._namespace_dirs(namespace):
                directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LocalIOError(f"Cannot create namespace {namespace}: {e}") from e

    def delete_namespace(self, namespace: str) -> None:
        """Remove an empty namespace directory from the SSOT and every app."""
        namespace = namespace.strip().strip("/")
        if not namespace:
            raise ValidationError("The root namespace cannot be deleted")
        validate_id(namespace)
        count = self.db.count_in_namespace(self.descriptor, namespace)
        if count:
            raise ConflictError(
                f"Namespace {namespace} still holds {count} installed "
                f"{self.descriptor.dir_name}; uninstall them first"
            )

        ssot_dir, *app_dirs = self._namespace_dirs(namespace)
        if ssot_dir.exists():
            try:
                ssot_dir.rmdir()
            except OSError as e:
                raise ConflictError(f"SSOT namespace {namespace} contains unmanaged files") from e
        for directory in app_dirs:
            if not directory.exists():
                continue
            try:
                directory.rmdir()
            except OSError as e:
                logger.warning("Leaving non-empty app directory %s: %s", directory, e)

    # ── Hook ordering ────────────────────────────────────────────────

    def _require_aggregate(self) -> None:
        if not self.descriptor.is_aggregate:
            raise ValidationError(f"{self.descriptor.label}s are not merged into app settings")

    def toggle_enabled(self, resource_id: str, enabled: bool) -> InstalledResource:
        """Switch a hook on or off for every app at once."""
        self._require_aggregate()
        record = self.get(resource_id)
        record.metadata["enabled"] = enabled
        self.db.save_resource(self.descriptor, record)
        self.projector.sync_all()
        return record

    def update_priority(self, resource_id: str, priority: int) -> InstalledResource:
        self._require_aggregate()
        record = self.get(resource_id)
        record.metadata["priority"] = priority
        self.db.save_resource(self.descriptor, record)
        self.projector.sync_all()
        return record

    def reorder(self, resource_ids: list[str]) -> list[InstalledResource]:
        """Assign priorities 10, 20, 30, ... in the given order."""
        self._require_aggregate()
        records = [self.get(rid) for rid in resource_ids]
        for index, record in enumerate(records):
            record.metadata["priority"] = (index + 1) * 10
            self.db.save_resource(self.descriptor, record)
        self.projector.sync_all()
        return records

    # ── Updates ──────────────────────────────────────────────────────

    async def check_update(self, resource_id: str) -> UpdateCheckResult:
        return await self.updates.check_update(self.get(resource_id))

    async def check_updates(self, resource_ids: list[str] | None = None) -> BatchCheckResult:
        """Check many resources; unknown ids count as failures."""
        if resource_ids is None:
            resources = [r for r in self.list_installed() if not r.is_local]
            missing: list[str] = []
        else:
            resources, missing = [], []
            for rid in resource_ids:
                record = self.db.get_resource(self.descriptor, rid)
                if record is None:
                    missing.append(rid)
                else:
                    resources.append(record)

        batch = await self.updates.check_updates(resources)
        for rid in missing:
            batch.results.append(
                UpdateCheckResult(id=rid, kind=self.descriptor.kind, error="not installed")
            )
        return batch

    async def execute_update(self, resource_id: str) -> UpdateResult:
        """Re-download a resource whose remote content changed.

        The stale SSOT copy is deleted and the resource re-installed; the
        stored per-app enabled set and scope are then restored.
        """
        d = self.descriptor
        record = self.get(resource_id)
        check = await self.updates.check_update(record)
        if check.remote_deleted:
            return UpdateResult(resource_id, False, "removed from the source repository")
        if not check.has_update:
            return UpdateResult(resource_id, True, "already up to date", record.content_hash)

        enabled = record.apps.enabled_apps()
        current_app = enabled[0] if enabled else AppType.CLAUDE
        resource = DiscoverableResource(
            key=f"{record.repo_owner}/{record.repo_name}:{resource_id}",
            id=resource_id,
            kind=d.kind,
            name=record.name,
            description=record.description,
            namespace=record.namespace,
            filename=record.filename,
            metadata=dict(record.metadata),
            repo_owner=record.repo_owner or "",
            repo_name=record.repo_name or "",
            repo_branch=record.repo_branch or "main",
            source_path=record.source_path or "",
            readme_url=record.readme_url or "",
            remote_hash=check.new_hash,
        )

        self.ssot.delete(d, resource_id)
        updated = await self._install(resource, current_app, force_download=True, project=False)
        updated.apps = record.apps
        updated.scope = record.scope
        updated.project_path = record.project_path
        updated.installed_at = int(time.time())
        self.db.save_resource(d, updated)

        if d.is_aggregate:
            self.projector.sync_all()
        elif updated.scope == Scope.PROJECT and updated.project_path:
            self.projector.copy_to_project(resource_id, updated.project_path)
        else:
            for app in enabled:
                self.projector.copy_to_app(resource_id, app)
        logger.info("Updated %s to %s", resource_id, (check.new_hash or "")[:8])
        return UpdateResult(resource_id, True, "updated", check.new_hash)

    async def execute_updates(self, resource_ids: list[str]) -> list[UpdateResult]:
        """Update several resources; one failure does not stop the rest."""
        results = []
        for rid in resource_ids:
            try:
                results.append(await self.execute_update(rid))
            except CfgSyncError as e:
                logger.warning("Update of %s failed: %s", rid, e)
                results.append(UpdateResult(rid, False, e.user_message()))
        return results
