"""Kind descriptors -- the small table that parameterizes the generic engine.

Every kind-dependent decision (SSOT directory, extension, projection
strategy, metadata columns, files to skip during discovery) lives here, so
the engines never branch on ``ResourceKind`` directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from cfgsync.models import ResourceKind


class ProjectionStrategy(Enum):
    PER_FILE_COPY = "per_file_copy"  # one file mirrored per app
    DIRECTORY_COPY = "directory_copy"  # one directory mirrored per app
    AGGREGATE_MERGE = "aggregate_merge"  # merged into the app settings document


class ColumnType(Enum):
    TEXT = "TEXT"
    JSON = "JSON"  # stored as TEXT holding JSON
    INTEGER = "INTEGER"
    BOOL = "BOOL"  # stored as INTEGER 0/1


@dataclass(frozen=True)
class KindDescriptor:
    """Static description of one resource kind."""

    kind: ResourceKind
    dir_name: str  # SSOT / app subdirectory and table name
    extension: str  # "" for directory resources
    strategy: ProjectionStrategy
    label: str
    # Kind-specific metadata columns and their storage type
    columns: tuple[tuple[str, ColumnType], ...] = ()
    # Filenames that are never resources (compared case-insensitively)
    skip_files: frozenset[str] = field(default_factory=frozenset)
    # Marker file for directory resources
    entry_file: str = ""

    @property
    def is_directory(self) -> bool:
        return self.strategy == ProjectionStrategy.DIRECTORY_COPY

    @property
    def is_aggregate(self) -> bool:
        return self.strategy == ProjectionStrategy.AGGREGATE_MERGE

    @property
    def cache_table(self) -> str:
        return f"{self.dir_name}_discovery_cache"

    def is_resource_file(self, filename: str) -> bool:
        """True if ``filename`` looks like a resource of this kind."""
        if self.is_directory:
            return filename == self.entry_file
        if filename.startswith("."):
            return False
        if not filename.endswith(self.extension):
            return False
        return filename.upper() not in self.skip_files


_DOC_FILES = ("README", "LICENSE", "CHANGELOG", "CONTRIBUTING")


def _skip(extension: str) -> frozenset[str]:
    return frozenset(f"{name}{extension}".upper() for name in _DOC_FILES)


AGENT = KindDescriptor(
    kind=ResourceKind.AGENT,
    dir_name="agents",
    extension=".md",
    strategy=ProjectionStrategy.PER_FILE_COPY,
    label="Agent",
    columns=(("model", ColumnType.TEXT), ("tools", ColumnType.JSON)),
    skip_files=_skip(".md"),
)

COMMAND = KindDescriptor(
    kind=ResourceKind.COMMAND,
    dir_name="commands",
    extension=".md",
    strategy=ProjectionStrategy.PER_FILE_COPY,
    label="Command",
    columns=(
        ("category", ColumnType.TEXT),
        ("allowed_tools", ColumnType.JSON),
        ("mcp_servers", ColumnType.JSON),
        ("personas", ColumnType.JSON),
    ),
    skip_files=_skip(".md"),
)

HOOK = KindDescriptor(
    kind=ResourceKind.HOOK,
    dir_name="hooks",
    extension=".json",
    strategy=ProjectionStrategy.AGGREGATE_MERGE,
    label="Hook",
    columns=(
        ("event_type", ColumnType.TEXT),
        ("rules", ColumnType.JSON),
        ("enabled", ColumnType.BOOL),
        ("priority", ColumnType.INTEGER),
    ),
    skip_files=_skip(".json") | frozenset({"PACKAGE.JSON", "TSCONFIG.JSON"}),
)

SKILL = KindDescriptor(
    kind=ResourceKind.SKILL,
    dir_name="skills",
    extension="",
    strategy=ProjectionStrategy.DIRECTORY_COPY,
    label="Skill",
    entry_file="SKILL.md",
)

ALL_KINDS: tuple[KindDescriptor, ...] = (AGENT, COMMAND, HOOK, SKILL)

_BY_KIND = {d.kind: d for d in ALL_KINDS}


def descriptor_for(kind: ResourceKind | str) -> KindDescriptor:
    """Look up a descriptor by kind or by its value/dir name ("command", "commands")."""
    if isinstance(kind, ResourceKind):
        return _BY_KIND[kind]
    for d in ALL_KINDS:
        if kind.lower() in (d.kind.value, d.dir_name):
            return d
    from cfgsync.errors import ValidationError

    raise ValidationError(f"Unknown resource kind: {kind}")
