"""Transient results produced by drift detection and update checking."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from cfgsync.models.resource import AppType, ResourceKind


class ChangeType(Enum):
    SSOT_ADDED = "ssot_added"  # file in SSOT, no database record
    SSOT_MODIFIED = "ssot_modified"  # file hash differs from stored hash
    SSOT_DELETED = "ssot_deleted"  # record without a file
    APP_CONFLICT = "app_conflict"  # projected copy differs from SSOT


class ConflictResolution(Enum):
    KEEP_SSOT = "keep_ssot"
    KEEP_APP = "keep_app"


@dataclass
class ChangeEvent:
    """One detected divergence."""

    id: str
    change_type: ChangeType
    app: AppType | None = None
    details: str = ""

    def summary(self) -> str:
        target = f" [{self.app.value}]" if self.app else ""
        text = f"{self.change_type.value}{target}: {self.id}"
        return f"{text} ({self.details})" if self.details else text


@dataclass
class UpdateCheckResult:
    """Result of comparing a stored hash against the remote repository."""

    id: str
    kind: ResourceKind
    has_update: bool = False
    current_hash: str | None = None
    new_hash: str | None = None
    commit_message: str | None = None
    updated_at: int | None = None  # unix seconds of the latest commit
    remote_deleted: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchCheckResult:
    results: list[UpdateCheckResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.ok)

    @property
    def update_count(self) -> int:
        return sum(1 for r in self.results if r.has_update)

    @property
    def deleted_count(self) -> int:
        return sum(1 for r in self.results if r.remote_deleted)

    def summary(self) -> str:
        return (
            f"{self.total} checked: {self.update_count} updates, "
            f"{self.deleted_count} removed upstream, {self.failed_count} failed"
        )


@dataclass
class UpdateResult:
    id: str
    success: bool
    message: str = ""
    new_hash: str | None = None


@dataclass
class RateLimitInfo:
    limit: int = 0
    remaining: int = 0
    reset_at: int = 0
    authenticated: bool = False
