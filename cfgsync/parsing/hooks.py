"""Hook documents.

Two on-disk formats are accepted:

* a single-event hook document::

    {"name": "...", "description": "...", "event_type": "PreToolUse",
     "rules": [{"matcher": "Bash", "hooks": [{"type": "command", "command": "..."}]}],
     "priority": 100, "enabled": true}

* the aggregate settings format, one file holding several event arrays::

    {"hooks": {"PreToolUse": [...rules...], "PostToolUse": [...rules...]}}

The aggregate format fans out into one hook per supported event type. Hook
documents are JSON and have no lenient fallback: malformed input raises
``ParseError``.
"""

from __future__ import annotations

import json
import logging
from pathlib import PurePosixPath
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cfgsync.errors import ParseError

logger = logging.getLogger(__name__)

# Event type -> id suffix used when fanning out an aggregate document
SUPPORTED_EVENTS: dict[str, str] = {
    "PreToolUse": "pre-tool-use",
    "PostToolUse": "post-tool-use",
    "PermissionRequest": "permission-request",
    "SessionEnd": "session-end",
}

DEFAULT_PRIORITY = 100


class HookAction(BaseModel):
    """One action fired when a rule matches."""

    model_config = ConfigDict(extra="allow")

    type: Literal["command", "prompt"] = "command"
    command: str | None = None
    prompt: str | None = None
    timeout: int | None = None


class HookRule(BaseModel):
    model_config = ConfigDict(extra="allow")

    matcher: str = ""
    hooks: list[HookAction] = Field(default_factory=list)

    @field_validator("matcher", mode="before")
    @classmethod
    def null_matches_all(cls, value):
        return "" if value is None else value


class HookDocument(BaseModel):
    name: str = ""
    description: str = ""
    event_type: str
    rules: list[HookRule] = Field(default_factory=list)
    priority: int = DEFAULT_PRIORITY
    enabled: bool = True

    @field_validator("event_type")
    @classmethod
    def known_event(cls, value: str) -> str:
        if value not in SUPPORTED_EVENTS:
            raise ValueError(f"unsupported event type: {value}")
        return value

    def rules_as_dicts(self) -> list[dict]:
        return [rule.model_dump(exclude_none=True) for rule in self.rules]

    def to_json(self) -> str:
        return json.dumps(self.model_dump(exclude_none=True), indent=2, ensure_ascii=False) + "\n"

    def metadata(self) -> dict:
        """Kind-specific metadata as stored in the database."""
        return {
            "event_type": self.event_type,
            "rules": self.rules_as_dicts(),
            "enabled": self.enabled,
            "priority": self.priority,
        }


def _load_json(text: str) -> dict:
    try:
        data = json.loads(text.lstrip("\ufeff"))
    except json.JSONDecodeError as e:
        raise ParseError(f"invalid hook JSON: {e}") from e
    if not isinstance(data, dict):
        raise ParseError("hook document must be a JSON object")
    return data


def is_aggregate(data: dict) -> bool:
    return isinstance(data.get("hooks"), dict) and "event_type" not in data


def parse_hook_document(text: str) -> HookDocument:
    """Parse a single-event hook document."""
    data = _load_json(text)
    if is_aggregate(data):
        raise ParseError("expected a single-event hook document, got the aggregate format")
    try:
        return HookDocument.model_validate(data)
    except ValidationError as e:
        raise ParseError(f"invalid hook document: {e.errors()[0]['msg']}") from e


def parse_hook_source(text: str, base_id: str, default_name: str = "") -> list[tuple[str, HookDocument]]:
    """Parse either format into ``(id, document)`` pairs.

    Aggregate documents yield ``<base_id>-<event-suffix>`` ids, skipping
    event types the engine does not manage.
    """
    data = _load_json(text)
    if not is_aggregate(data):
        return [(base_id, parse_hook_document(text))]

    name = data.get("name") or default_name or base_id.rsplit("/", 1)[-1]
    description = data.get("description") or ""
    results = []
    for event, rules in data["hooks"].items():
        suffix = SUPPORTED_EVENTS.get(event)
        if suffix is None:
            logger.debug("Skipping unsupported hook event %s in %s", event, base_id)
            continue
        if rules is not None and not isinstance(rules, list):
            raise ParseError(f"{event} rules in {base_id} must be a list")
        try:
            doc = HookDocument(
                name=f"{name} ({event})",
                description=description,
                event_type=event,
                rules=[HookRule.model_validate(rule) for rule in rules or []],
            )
        except ValidationError as e:
            raise ParseError(f"invalid {event} rules in {base_id}: {e.errors()[0]['msg']}") from e
        results.append((f"{base_id}-{suffix}", doc))
    return results


def is_fanned_out(filename: str, source_path: str | None) -> bool:
    """True when a hook was split out of an aggregate source file.

    Its SSOT document is generated, so its bytes never match the stored
    remote hash of the aggregate file.
    """
    if not source_path:
        return False
    stem = PurePosixPath(source_path).stem
    return stem != filename and any(
        filename == f"{stem}-{suffix}" for suffix in SUPPORTED_EVENTS.values()
    )
