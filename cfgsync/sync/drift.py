"""Drift detection and conflict resolution.

Drift happens when:
1. A file appears in the SSOT tree without a database record (SSOT_ADDED)
2. The SSOT file no longer matches the stored content hash (SSOT_MODIFIED)
3. A database record has lost its SSOT file (SSOT_DELETED)
4. An app's projected copy no longer matches the SSOT copy (APP_CONFLICT)

Conflicts are resolved overwrite-wins: either the SSOT copy replaces the
app copy, or the app copy replaces the SSOT copy and the record is
refreshed from it.
"""

from __future__ import annotations

import logging

from cfgsync.errors import NotFoundError, ParseError, ValidationError
from cfgsync.kinds import KindDescriptor
from cfgsync.models import (
    AppType,
    ChangeEvent,
    ChangeType,
    ConflictResolution,
    InstalledResource,
    Scope,
)
from cfgsync.parsing.frontmatter import parse_front_matter
from cfgsync.parsing.hooks import is_fanned_out, parse_hook_document
from cfgsync.store.database import Database
from cfgsync.store.ssot import SsotStore, copy_resource
from cfgsync.sync.projector import SETTINGS_FILE, AppProjector

logger = logging.getLogger(__name__)

HOOK_SETTINGS_ID = f"{SETTINGS_FILE}#hooks"


def _short(value: str | None) -> str:
    return value[:8] if value else "none"


def reparse_record(ssot: SsotStore, descriptor: KindDescriptor, record: InstalledResource) -> None:
    """Refresh name, description and metadata from the SSOT copy in place.

    Fields the document does not provide keep their previous values.
    """
    text = ssot.read_text(descriptor, record.id)
    if descriptor.is_aggregate:
        try:
            doc = parse_hook_document(text)
        except ParseError as e:
            logger.warning("Keeping stored metadata for %s: %s", record.id, e)
            return
        record.name = doc.name or record.name
        record.description = doc.description or record.description
        metadata = doc.metadata()
        for key in ("enabled", "priority"):
            if record.metadata.get(key) is not None:
                metadata[key] = record.metadata[key]
        record.metadata = metadata
        return

    parsed = parse_front_matter(text, descriptor.kind)
    record.name = parsed.name or record.name
    record.description = parsed.description or record.description
    record.metadata = parsed.merged_over(record.metadata)


class DriftDetector:
    """Diffs the SSOT tree, the database and every app projection."""

    def __init__(self, ssot: SsotStore, db: Database, projector: AppProjector, descriptor: KindDescriptor):
        self.ssot = ssot
        self.db = db
        self.projector = projector
        self.descriptor = descriptor

    def ssot_diverged(self, record: InstalledResource, current_hash: str | None) -> bool:
        """True when the SSOT copy no longer matches what the record describes."""
        if self.descriptor.is_aggregate and is_fanned_out(record.filename, record.source_path):
            try:
                doc = parse_hook_document(self.ssot.read_text(self.descriptor, record.id))
            except ParseError:
                return True
            # Priority and enabled live in the database only
            return (doc.event_type, doc.rules_as_dicts()) != (record.event_type, record.rules)
        return current_hash != record.content_hash

    def detect_changes(self) -> list[ChangeEvent]:
        d = self.descriptor
        records = {r.id: r for r in self.db.list_resources(d)}
        ssot_hashes = {rid: self.ssot.hash(d, rid) for rid in self.ssot.list_ids(d)}
        events: list[ChangeEvent] = []

        for rid in sorted(ssot_hashes):
            record = records.get(rid)
            if record is None:
                events.append(ChangeEvent(rid, ChangeType.SSOT_ADDED, details="no database record"))
            elif self.ssot_diverged(record, ssot_hashes[rid]):
                events.append(
                    ChangeEvent(
                        rid,
                        ChangeType.SSOT_MODIFIED,
                        details=f"stored {_short(record.content_hash)}, file {_short(ssot_hashes[rid])}",
                    )
                )

        for rid in sorted(records):
            if rid not in ssot_hashes:
                events.append(ChangeEvent(rid, ChangeType.SSOT_DELETED, details="SSOT file missing"))

        if d.is_aggregate:
            events.extend(self._hook_settings_conflicts())
            return events

        for rid in sorted(records):
            record = records[rid]
            if rid not in ssot_hashes or record.scope != Scope.GLOBAL:
                continue
            for app in record.apps.enabled_apps():
                app_hash = self.projector.app_copy_hash(rid, app)
                if app_hash is not None and app_hash != ssot_hashes[rid]:
                    events.append(
                        ChangeEvent(
                            rid,
                            ChangeType.APP_CONFLICT,
                            app=app,
                            details=f"ssot {_short(ssot_hashes[rid])}, app {_short(app_hash)}",
                        )
                    )
        return events

    def _hook_settings_conflicts(self) -> list[ChangeEvent]:
        events = []
        for app in AppType:
            if not self.projector.settings_path(app).exists():
                continue
            if self.projector.read_app_hooks(app) != self.projector.generate_app_config(app):
                events.append(
                    ChangeEvent(
                        HOOK_SETTINGS_ID,
                        ChangeType.APP_CONFLICT,
                        app=app,
                        details="hooks key differs from managed hooks",
                    )
                )
        return events


class ConflictResolver:
    """Applies keep-SSOT or keep-app resolutions."""

    def __init__(self, ssot: SsotStore, db: Database, projector: AppProjector, descriptor: KindDescriptor):
        self.ssot = ssot
        self.db = db
        self.projector = projector
        self.descriptor = descriptor

    def resolve(self, resource_id: str, app: AppType, resolution: ConflictResolution) -> InstalledResource | None:
        d = self.descriptor
        if d.is_aggregate:
            if resolution == ConflictResolution.KEEP_APP:
                raise ValidationError(
                    "App hook settings are generated; import unmanaged entries instead of keeping them"
                )
            self.projector.sync_to_app(app)
            return None

        record = self.db.get_resource(d, resource_id)
        if record is None:
            raise NotFoundError(f"{d.label} {resource_id} is not installed")

        if resolution == ConflictResolution.KEEP_SSOT:
            self.projector.copy_to_app(resource_id, app)
            logger.info("Restored %s in %s from SSOT", resource_id, app.value)
            return record

        app_path = self.projector.app_path(app, resource_id)
        if not app_path.exists():
            raise NotFoundError(f"{app.value} has no copy of {resource_id}")
        copy_resource(app_path, self.ssot.path_for(d, resource_id))
        reparse_record(self.ssot, d, record)
        record.content_hash = self.ssot.hash(d, resource_id)
        self.db.save_resource(d, record)

        # Other enabled apps follow the new SSOT content
        for other in record.apps.enabled_apps():
            if other != app and record.scope == Scope.GLOBAL:
                self.projector.copy_to_app(resource_id, other)
        logger.info("Adopted %s copy of %s into SSOT", app.value, resource_id)
        return record
