"""Data model shared by every engine."""

from cfgsync.models.repo import LocalizedDescription, SourceRepo
from cfgsync.models.resource import (
    AppSet,
    AppType,
    DiscoverableResource,
    InstalledResource,
    NamespaceInfo,
    ResourceKind,
    Scope,
    UnmanagedResource,
)
from cfgsync.models.sync import (
    BatchCheckResult,
    ChangeEvent,
    ChangeType,
    ConflictResolution,
    RateLimitInfo,
    UpdateCheckResult,
    UpdateResult,
)

__all__ = [
    "AppSet",
    "AppType",
    "BatchCheckResult",
    "ChangeEvent",
    "ChangeType",
    "ConflictResolution",
    "DiscoverableResource",
    "InstalledResource",
    "LocalizedDescription",
    "NamespaceInfo",
    "RateLimitInfo",
    "ResourceKind",
    "Scope",
    "SourceRepo",
    "UnmanagedResource",
    "UpdateCheckResult",
    "UpdateResult",
]
