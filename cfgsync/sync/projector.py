"""App projector -- mirror SSOT resources into client application directories.

File and directory kinds are copied byte-for-byte to the same relative
path under ``<app root>/<kind dir>``. Hooks are aggregated instead: every
enabled hook's rules are grouped by event type and written under the
``hooks`` key of the app's ``settings.json``, replacing whatever that key
held before.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from cfgsync.config import Settings
from cfgsync.errors import CfgSyncError, LocalIOError
from cfgsync.kinds import KindDescriptor
from cfgsync.models import AppType, InstalledResource, Scope
from cfgsync.store.database import Database
from cfgsync.store.ssot import (
    SsotStore,
    copy_resource,
    hash_path,
    id_to_relative_path,
    remove_resource,
)

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.json"
HOOKS_KEY = "hooks"
PROJECT_CONFIG_DIR = ".claude"


def read_settings(path: Path) -> dict:
    """Load a settings document; missing or invalid content reads as ``{}``."""
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8") or "{}")
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable settings file %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def write_settings(path: Path, data: dict) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    except OSError as e:
        raise LocalIOError(f"Cannot write {path}: {e}") from e


def group_hook_rules(resources: list[InstalledResource]) -> dict[str, list[dict]]:
    """Group rules by event type, ordered by priority then filename."""
    config: dict[str, list[dict]] = {}
    for resource in sorted(resources, key=lambda r: (r.priority, r.filename)):
        if not resource.event_type:
            continue
        config.setdefault(resource.event_type, []).extend(resource.rules)
    return config


class AppProjector:
    """Keeps app directories a deterministic function of database state."""

    def __init__(self, settings: Settings, ssot: SsotStore, db: Database, descriptor: KindDescriptor):
        self.settings = settings
        self.ssot = ssot
        self.db = db
        self.descriptor = descriptor

    # -- Paths --------------------------------------------------------------

    def app_kind_dir(self, app: AppType) -> Path:
        return self.settings.app_root(app.value) / self.descriptor.dir_name

    def app_path(self, app: AppType, resource_id: str) -> Path:
        return self.app_kind_dir(app) / id_to_relative_path(resource_id, self.descriptor)

    def settings_path(self, app: AppType) -> Path:
        return self.settings.app_root(app.value) / SETTINGS_FILE

    def project_kind_dir(self, project_path: str | Path) -> Path:
        return Path(project_path) / PROJECT_CONFIG_DIR / self.descriptor.dir_name

    def project_settings_path(self, project_path: str | Path) -> Path:
        return Path(project_path) / PROJECT_CONFIG_DIR / SETTINGS_FILE

    def app_copy_hash(self, resource_id: str, app: AppType) -> str | None:
        return hash_path(self.app_path(app, resource_id))

    # -- Per-resource projection ------------------------------------------

    def copy_to_app(self, resource_id: str, app: AppType) -> None:
        if self.descriptor.is_aggregate:
            self.sync_to_app(app)
            return
        copy_resource(self.ssot.path_for(self.descriptor, resource_id), self.app_path(app, resource_id))
        logger.debug("Copied %s to %s", resource_id, app.value)

    def remove_from_app(self, resource_id: str, app: AppType) -> None:
        if self.descriptor.is_aggregate:
            self.sync_to_app(app)
            return
        if remove_resource(self.app_path(app, resource_id), self.app_kind_dir(app)):
            logger.debug("Removed %s from %s", resource_id, app.value)

    def copy_to_project(self, resource_id: str, project_path: str | Path) -> None:
        if self.descriptor.is_aggregate:
            self.sync_to_project(project_path)
            return
        target = self.project_kind_dir(project_path) / id_to_relative_path(resource_id, self.descriptor)
        copy_resource(self.ssot.path_for(self.descriptor, resource_id), target)

    def remove_from_project(self, resource_id: str, project_path: str | Path) -> None:
        if self.descriptor.is_aggregate:
            self.sync_to_project(project_path)
            return
        base = self.project_kind_dir(project_path)
        remove_resource(base / id_to_relative_path(resource_id, self.descriptor), base)

    # -- Aggregate projection -----------------------------------------------

    def generate_app_config(self, app: AppType) -> dict[str, list[dict]]:
        """Hook rules for ``app``, grouped by event type."""
        resources = [
            r
            for r in self.db.list_resources(self.descriptor)
            if r.scope == Scope.GLOBAL and r.apps.is_enabled(app) and r.hook_enabled
        ]
        return group_hook_rules(resources)

    def generate_project_config(self, project_path: str | Path) -> dict[str, list[dict]]:
        resources = [
            r
            for r in self.db.list_resources(self.descriptor)
            if r.scope == Scope.PROJECT
            and r.project_path == str(project_path)
            and r.hook_enabled
        ]
        return group_hook_rules(resources)

    def sync_to_app(self, app: AppType) -> Path:
        """Rewrite the ``hooks`` key of the app settings document."""
        path = self.settings_path(app)
        config = self.generate_app_config(app)
        if not config and not path.exists():
            return path
        data = read_settings(path)
        data[HOOKS_KEY] = config
        write_settings(path, data)
        logger.debug("Wrote %d hook events to %s", len(data[HOOKS_KEY]), path)
        return path

    def sync_to_project(self, project_path: str | Path) -> Path:
        path = self.project_settings_path(project_path)
        config = self.generate_project_config(project_path)
        if not config and not path.exists():
            return path
        data = read_settings(path)
        data[HOOKS_KEY] = config
        write_settings(path, data)
        return path

    def read_app_hooks(self, app: AppType) -> dict:
        hooks = read_settings(self.settings_path(app)).get(HOOKS_KEY)
        return hooks if isinstance(hooks, dict) else {}

    # -- Bulk reconciliation ------------------------------------------------

    def sync_all(self) -> int:
        """Force every enabled (resource, app) pair to match the SSOT.

        Returns the number of pairs written. Failures for one pair are
        logged and do not stop the pass.
        """
        resources = self.db.list_resources(self.descriptor)

        if self.descriptor.is_aggregate:
            synced = 0
            for app in AppType:
                try:
                    self.sync_to_app(app)
                except CfgSyncError as e:
                    logger.warning("Could not sync hooks to %s: %s", app.value, e)
                    continue
                synced += sum(
                    1 for r in resources if r.scope == Scope.GLOBAL and r.apps.is_enabled(app)
                )
            for project in sorted({r.project_path for r in resources if r.project_path}):
                try:
                    self.sync_to_project(project)
                except CfgSyncError as e:
                    logger.warning("Could not sync hooks to project %s: %s", project, e)
            return synced

        synced = 0
        for resource in resources:
            if not self.ssot.exists(self.descriptor, resource.id):
                logger.warning("%s has no SSOT copy; skipping", resource.id)
                continue
            if resource.scope == Scope.PROJECT:
                if resource.project_path:
                    try:
                        self.copy_to_project(resource.id, resource.project_path)
                    except CfgSyncError as e:
                        logger.warning("Could not sync %s to project: %s", resource.id, e)
                continue
            for app in resource.apps.enabled_apps():
                try:
                    self.copy_to_app(resource.id, app)
                    synced += 1
                except CfgSyncError as e:
                    logger.warning("Could not sync %s to %s: %s", resource.id, app.value, e)
        return synced
