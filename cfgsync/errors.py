"""Error taxonomy shared by every engine.

Each error renders a short, user-facing message through ``user_message()``;
the CLI prints that and exits non-zero.
"""

from __future__ import annotations

from datetime import datetime, timezone


class CfgSyncError(Exception):
    """Base class for all cfgsync errors."""

    label = "Error"

    def user_message(self) -> str:
        return f"{self.label}: {self}"


class NotFoundError(CfgSyncError):
    """A remote resource, branch, or local record does not exist."""

    label = "Not found"


class RateLimitedError(CfgSyncError):
    """The remote API quota is exhausted."""

    label = "Rate limited"

    def __init__(self, message: str, limit: int = 0, remaining: int = 0, reset_at: int = 0):
        super().__init__(message)
        self.limit = limit
        self.remaining = remaining
        self.reset_at = reset_at  # unix seconds

    @property
    def reset_time(self) -> datetime | None:
        if not self.reset_at:
            return None
        return datetime.fromtimestamp(self.reset_at, tz=timezone.utc)

    def user_message(self) -> str:
        reset = self.reset_time
        when = reset.strftime("%H:%M:%S UTC") if reset else "unknown"
        return (
            f"{self.label}: {self} "
            f"({self.remaining}/{self.limit} requests left, resets at {when})"
        )


class UnauthorizedError(CfgSyncError):
    """The configured credential was rejected."""

    label = "Unauthorized"


class NetworkError(CfgSyncError):
    """Transport failure or timeout talking to a remote endpoint."""

    label = "Network error"


class LocalIOError(CfgSyncError):
    """Failure reading or writing the SSOT tree or an app directory."""

    label = "Local I/O error"


class ConflictError(CfgSyncError):
    """The operation conflicts with existing state."""

    label = "Conflict"


class ValidationError(CfgSyncError):
    """The request itself is invalid (bad id, unknown record, bad migration)."""

    label = "Invalid request"


class ParseError(CfgSyncError):
    """A document could not be parsed, even leniently."""

    label = "Parse error"
