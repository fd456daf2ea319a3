"""Metadata database -- SQLite persistence for installed resources.

Tables:
    agents / commands / hooks / skills   - one row per installed resource
    <kind>_discovery_cache               - discovery results per (owner, repo, branch)
    source_repos                         - repositories scanned during discovery
    settings                             - key/value settings (GitHub token, ...)

Thread safety: one connection opened with ``check_same_thread=False`` and a
single lock held for the duration of one statement. Callers never hold it
across an ``await``; every public method acquires and releases it itself.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any

from cfgsync.kinds import ALL_KINDS, ColumnType, KindDescriptor
from cfgsync.models import (
    AppSet,
    DiscoverableResource,
    InstalledResource,
    LocalizedDescription,
    NamespaceInfo,
    Scope,
    SourceRepo,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

_COMMON_COLUMNS = """
    id            TEXT PRIMARY KEY,
    name          TEXT NOT NULL,
    description   TEXT NOT NULL DEFAULT '',
    namespace     TEXT NOT NULL DEFAULT '',
    filename      TEXT NOT NULL,
    repo_owner    TEXT,
    repo_name     TEXT,
    repo_branch   TEXT,
    readme_url    TEXT,
    source_path   TEXT,
    enabled_claude INTEGER NOT NULL DEFAULT 0,
    enabled_codex  INTEGER NOT NULL DEFAULT 0,
    enabled_gemini INTEGER NOT NULL DEFAULT 0,
    file_hash     TEXT,
    installed_at  INTEGER NOT NULL,
    scope         TEXT NOT NULL DEFAULT 'global' CHECK(scope IN ('global','project')),
    project_path  TEXT"""

_SHARED_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS source_repos (
    owner          TEXT NOT NULL,
    name           TEXT NOT NULL,
    branch         TEXT NOT NULL DEFAULT 'main',
    enabled        INTEGER NOT NULL DEFAULT 1,
    builtin        INTEGER NOT NULL DEFAULT 0,
    description_zh TEXT NOT NULL DEFAULT '',
    description_en TEXT NOT NULL DEFAULT '',
    description_ja TEXT NOT NULL DEFAULT '',
    added_at       INTEGER NOT NULL,
    PRIMARY KEY (owner, name)
);

CREATE TABLE IF NOT EXISTS settings (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

_SQL_TYPES = {
    ColumnType.TEXT: "TEXT",
    ColumnType.JSON: "TEXT",
    ColumnType.INTEGER: "INTEGER",
    ColumnType.BOOL: "INTEGER",
}


def _kind_schema_sql(descriptor: KindDescriptor) -> str:
    extra = "".join(
        f",\n    {name} {_SQL_TYPES[col_type]}" for name, col_type in descriptor.columns
    )
    return f"""
CREATE TABLE IF NOT EXISTS {descriptor.dir_name} ({_COMMON_COLUMNS}{extra}
);

CREATE TABLE IF NOT EXISTS {descriptor.cache_table} (
    owner          TEXT NOT NULL,
    name           TEXT NOT NULL,
    branch         TEXT NOT NULL,
    resources_json TEXT NOT NULL,
    scanned_at     INTEGER NOT NULL,
    PRIMARY KEY (owner, name, branch)
);
"""


def _encode(col_type: ColumnType, value: Any) -> Any:
    if value is None:
        return None
    if col_type == ColumnType.JSON:
        return json.dumps(value, ensure_ascii=False)
    if col_type in (ColumnType.INTEGER, ColumnType.BOOL):
        return int(value)
    return str(value)


def _decode(col_type: ColumnType, value: Any) -> Any:
    if value is None:
        return [] if col_type == ColumnType.JSON else None
    if col_type == ColumnType.JSON:
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Corrupt JSON column value %r, treating as empty", value)
            return []
    if col_type == ColumnType.BOOL:
        return bool(value)
    return value


class Database:
    """SQLite-backed store for installed resources, caches, repos and settings."""

    def __init__(self, db_path: str | Path = ":memory:"):
        self._db_path = str(db_path)
        self._lock = threading.Lock()
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if self._db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        script = _SHARED_SCHEMA_SQL + "".join(_kind_schema_sql(d) for d in ALL_KINDS)
        self._conn.executescript(script)
        self._conn.execute(
            "INSERT OR IGNORE INTO settings (key, value) VALUES ('schema_version', ?)",
            (str(SCHEMA_VERSION),),
        )
        self._conn.commit()
        logger.debug("Database initialized: %s", self._db_path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def _write(self, sql: str, params: tuple = ()) -> int:
        with self._lock:
            cursor = self._conn.execute(sql, params)
            self._conn.commit()
            return cursor.rowcount

    # -- Installed resources ----------------------------------------------

    def save_resource(self, descriptor: KindDescriptor, resource: InstalledResource) -> None:
        """Insert or replace an installed resource record."""
        columns = [
            "id", "name", "description", "namespace", "filename",
            "repo_owner", "repo_name", "repo_branch", "readme_url", "source_path",
            "enabled_claude", "enabled_codex", "enabled_gemini",
            "file_hash", "installed_at", "scope", "project_path",
        ]
        values: list[Any] = [
            resource.id, resource.name, resource.description,
            resource.namespace, resource.filename,
            resource.repo_owner, resource.repo_name, resource.repo_branch,
            resource.readme_url, resource.source_path,
            int(resource.apps.claude), int(resource.apps.codex), int(resource.apps.gemini),
            resource.content_hash, resource.installed_at,
            resource.scope.value, resource.project_path,
        ]
        for name, col_type in descriptor.columns:
            columns.append(name)
            values.append(_encode(col_type, resource.metadata.get(name)))

        placeholders = ",".join("?" for _ in columns)
        self._write(
            f"INSERT OR REPLACE INTO {descriptor.dir_name} ({','.join(columns)}) "
            f"VALUES ({placeholders})",
            tuple(values),
        )

    def get_resource(self, descriptor: KindDescriptor, resource_id: str) -> InstalledResource | None:
        rows = self._query(f"SELECT * FROM {descriptor.dir_name} WHERE id=?", (resource_id,))
        return self._row_to_resource(descriptor, rows[0]) if rows else None

    def list_resources(self, descriptor: KindDescriptor) -> list[InstalledResource]:
        rows = self._query(
            f"SELECT * FROM {descriptor.dir_name} ORDER BY namespace ASC, name ASC"
        )
        return [self._row_to_resource(descriptor, row) for row in rows]

    def delete_resource(self, descriptor: KindDescriptor, resource_id: str) -> bool:
        return self._write(f"DELETE FROM {descriptor.dir_name} WHERE id=?", (resource_id,)) > 0

    def update_hash(self, descriptor: KindDescriptor, resource_id: str, content_hash: str | None) -> None:
        self._write(
            f"UPDATE {descriptor.dir_name} SET file_hash=? WHERE id=?",
            (content_hash, resource_id),
        )

    def update_app_flag(self, descriptor: KindDescriptor, resource_id: str, app: str, enabled: bool) -> None:
        if app not in ("claude", "codex", "gemini"):
            raise ValueError(f"Unknown app column: {app}")
        self._write(
            f"UPDATE {descriptor.dir_name} SET enabled_{app}=? WHERE id=?",
            (int(enabled), resource_id),
        )

    def update_scope(
        self, descriptor: KindDescriptor, resource_id: str, scope: Scope, project_path: str | None
    ) -> None:
        self._write(
            f"UPDATE {descriptor.dir_name} SET scope=?, project_path=? WHERE id=?",
            (scope.value, project_path, resource_id),
        )

    def count_in_namespace(self, descriptor: KindDescriptor, namespace: str) -> int:
        rows = self._query(
            f"SELECT COUNT(*) AS n FROM {descriptor.dir_name} WHERE namespace=?", (namespace,)
        )
        return rows[0]["n"]

    def list_namespaces(self, descriptor: KindDescriptor) -> list[NamespaceInfo]:
        rows = self._query(
            f"SELECT namespace, COUNT(*) AS n FROM {descriptor.dir_name} "
            f"GROUP BY namespace ORDER BY namespace ASC"
        )
        return [
            NamespaceInfo(
                name=row["namespace"],
                display_name=row["namespace"] or "Root",
                count=row["n"],
            )
            for row in rows
        ]

    def _row_to_resource(self, descriptor: KindDescriptor, row: sqlite3.Row) -> InstalledResource:
        metadata = {
            name: _decode(col_type, row[name]) for name, col_type in descriptor.columns
        }
        return InstalledResource(
            id=row["id"],
            kind=descriptor.kind,
            name=row["name"],
            description=row["description"],
            namespace=row["namespace"],
            filename=row["filename"],
            metadata=metadata,
            repo_owner=row["repo_owner"],
            repo_name=row["repo_name"],
            repo_branch=row["repo_branch"],
            readme_url=row["readme_url"],
            source_path=row["source_path"],
            apps=AppSet(
                claude=bool(row["enabled_claude"]),
                codex=bool(row["enabled_codex"]),
                gemini=bool(row["enabled_gemini"]),
            ),
            content_hash=row["file_hash"],
            installed_at=row["installed_at"],
            scope=Scope(row["scope"]),
            project_path=row["project_path"],
        )

    # -- Discovery cache --------------------------------------------------

    def get_cache(
        self, descriptor: KindDescriptor, owner: str, name: str, branch: str
    ) -> tuple[list[DiscoverableResource], int] | None:
        """Return ``(resources, scanned_at)`` or None when absent."""
        rows = self._query(
            f"SELECT resources_json, scanned_at FROM {descriptor.cache_table} "
            f"WHERE owner=? AND name=? AND branch=?",
            (owner, name, branch),
        )
        if not rows:
            return None
        data = json.loads(rows[0]["resources_json"])
        return [DiscoverableResource.from_dict(d) for d in data], rows[0]["scanned_at"]

    def save_cache(
        self,
        descriptor: KindDescriptor,
        owner: str,
        name: str,
        branch: str,
        resources: list[DiscoverableResource],
        scanned_at: int | None = None,
    ) -> None:
        payload = json.dumps([r.to_dict() for r in resources], ensure_ascii=False)
        self._write(
            f"INSERT OR REPLACE INTO {descriptor.cache_table} "
            f"(owner, name, branch, resources_json, scanned_at) VALUES (?,?,?,?,?)",
            (owner, name, branch, payload, scanned_at if scanned_at is not None else int(time.time())),
        )

    def delete_cache(
        self, descriptor: KindDescriptor, owner: str | None = None, name: str | None = None
    ) -> int:
        if owner is None:
            return self._write(f"DELETE FROM {descriptor.cache_table}")
        return self._write(
            f"DELETE FROM {descriptor.cache_table} WHERE owner=? AND name=?", (owner, name)
        )

    def delete_expired_cache(self, descriptor: KindDescriptor, ttl_seconds: int) -> int:
        cutoff = int(time.time()) - ttl_seconds
        return self._write(
            f"DELETE FROM {descriptor.cache_table} WHERE scanned_at < ?", (cutoff,)
        )

    def cache_stats(self, descriptor: KindDescriptor) -> dict[str, int]:
        rows = self._query(
            f"SELECT COUNT(*) AS n, MIN(scanned_at) AS oldest, MAX(scanned_at) AS newest "
            f"FROM {descriptor.cache_table}"
        )
        row = rows[0]
        return {"entries": row["n"], "oldest": row["oldest"] or 0, "newest": row["newest"] or 0}

    # -- Source repositories ----------------------------------------------

    def list_repos(self) -> list[SourceRepo]:
        rows = self._query("SELECT * FROM source_repos ORDER BY builtin DESC, owner ASC, name ASC")
        return [self._row_to_repo(row) for row in rows]

    def get_repo(self, owner: str, name: str) -> SourceRepo | None:
        rows = self._query(
            "SELECT * FROM source_repos WHERE owner=? AND name=?", (owner, name)
        )
        return self._row_to_repo(rows[0]) if rows else None

    def save_repo(self, repo: SourceRepo) -> None:
        self._write(
            "INSERT OR REPLACE INTO source_repos "
            "(owner, name, branch, enabled, builtin, description_zh, description_en, "
            "description_ja, added_at) VALUES (?,?,?,?,?,?,?,?,?)",
            (
                repo.owner, repo.name, repo.branch, int(repo.enabled), int(repo.builtin),
                repo.description.zh, repo.description.en, repo.description.ja,
                repo.added_at,
            ),
        )

    def delete_repo(self, owner: str, name: str) -> bool:
        return self._write(
            "DELETE FROM source_repos WHERE owner=? AND name=?", (owner, name)
        ) > 0

    def _row_to_repo(self, row: sqlite3.Row) -> SourceRepo:
        return SourceRepo(
            owner=row["owner"],
            name=row["name"],
            branch=row["branch"],
            enabled=bool(row["enabled"]),
            builtin=bool(row["builtin"]),
            description=LocalizedDescription(
                zh=row["description_zh"], en=row["description_en"], ja=row["description_ja"]
            ),
            added_at=row["added_at"],
        )

    # -- Settings ---------------------------------------------------------

    def get_setting(self, key: str) -> str | None:
        rows = self._query("SELECT value FROM settings WHERE key=?", (key,))
        return rows[0]["value"] if rows else None

    def set_setting(self, key: str, value: str) -> None:
        self._write(
            "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, value)
        )

    def delete_setting(self, key: str) -> None:
        self._write("DELETE FROM settings WHERE key=?", (key,))
