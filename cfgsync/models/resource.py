"""Resource records: discoverable (transient) and installed (durable)."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class ResourceKind(Enum):
    """The four manageable artifact types."""

    AGENT = "agent"
    COMMAND = "command"
    HOOK = "hook"
    SKILL = "skill"


class AppType(Enum):
    """Client applications that receive projections."""

    CLAUDE = "claude"
    CODEX = "codex"
    GEMINI = "gemini"

    @classmethod
    def parse(cls, value: str | AppType) -> AppType:
        if isinstance(value, AppType):
            return value
        try:
            return cls(value.lower())
        except ValueError:
            from cfgsync.errors import ValidationError

            raise ValidationError(f"Unknown app: {value}")


class Scope(Enum):
    """Where a resource is active."""

    GLOBAL = "global"
    PROJECT = "project"


@dataclass
class AppSet:
    """Per-application enabled flags."""

    claude: bool = False
    codex: bool = False
    gemini: bool = False

    @classmethod
    def only(cls, app: AppType) -> AppSet:
        apps = cls()
        apps.set(app, True)
        return apps

    @classmethod
    def from_apps(cls, apps: list[AppType]) -> AppSet:
        result = cls()
        for app in apps:
            result.set(app, True)
        return result

    def is_enabled(self, app: AppType) -> bool:
        return getattr(self, app.value)

    def set(self, app: AppType, enabled: bool) -> None:
        setattr(self, app.value, enabled)

    def enabled_apps(self) -> list[AppType]:
        return [app for app in AppType if self.is_enabled(app)]

    def any_enabled(self) -> bool:
        return bool(self.enabled_apps())


@dataclass
class DiscoverableResource:
    """A resource found in a source repository, not yet installed."""

    key: str  # "<owner>/<repo>:<id>", case-insensitive dedupe key
    id: str
    kind: ResourceKind
    name: str
    description: str = ""
    namespace: str = ""
    filename: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    repo_owner: str = ""
    repo_name: str = ""
    repo_branch: str = "main"
    source_path: str = ""  # relative to the repository root
    readme_url: str = ""
    remote_hash: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> DiscoverableResource:
        data = dict(data)
        data["kind"] = ResourceKind(data["kind"])
        known = cls.__dataclass_fields__
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class InstalledResource:
    """A resource persisted in the SSOT and the metadata database."""

    id: str
    kind: ResourceKind
    name: str
    description: str = ""
    namespace: str = ""
    filename: str = ""
    # Kind-specific metadata (category, tools, model, hook rules, ...)
    metadata: dict[str, Any] = field(default_factory=dict)

    # Repository coordinates; all None for locally imported resources
    repo_owner: str | None = None
    repo_name: str | None = None
    repo_branch: str | None = None
    readme_url: str | None = None
    source_path: str | None = None

    apps: AppSet = field(default_factory=AppSet)
    content_hash: str | None = None
    installed_at: int = field(default_factory=lambda: int(time.time()))
    scope: Scope = Scope.GLOBAL
    project_path: str | None = None

    @property
    def is_local(self) -> bool:
        return not self.repo_owner or not self.repo_name

    @property
    def repo_label(self) -> str:
        if self.is_local:
            return "(local)"
        return f"{self.repo_owner}/{self.repo_name}@{self.repo_branch or 'main'}"

    # Hook-only accessors

    @property
    def event_type(self) -> str:
        return self.metadata.get("event_type", "")

    @property
    def rules(self) -> list[dict]:
        return list(self.metadata.get("rules", []))

    @property
    def hook_enabled(self) -> bool:
        value = self.metadata.get("enabled")
        return True if value is None else bool(value)

    @property
    def priority(self) -> int:
        value = self.metadata.get("priority")
        return 100 if value is None else int(value)


@dataclass
class UnmanagedResource:
    """A resource present in an app directory with no database record."""

    id: str
    kind: ResourceKind
    name: str
    description: str = ""
    namespace: str = ""
    filename: str = ""
    found_in: list[AppType] = field(default_factory=list)


@dataclass
class NamespaceInfo:
    name: str
    display_name: str
    count: int = 0
