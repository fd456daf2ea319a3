"""Front matter parsing: strict schema first, lenient pattern extraction second.

A resource document starts with a ``---`` delimited YAML block. The strict
stage loads it with PyYAML and validates it against a per-kind pydantic
schema. If either step fails (bad YAML from hand-written files is common:
unquoted colons, tabs, stray brackets), the lenient stage pulls the same
fields out with line-anchored patterns. The lenient stage never raises.
"""

from __future__ import annotations

import logging
import re
import typing
from dataclasses import dataclass, field
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cfgsync.models import ResourceKind

logger = logging.getLogger(__name__)

BOM = "\ufeff"


def _split_list(value: Any) -> Any:
    """Accept ``"Read, Write"`` as well as ``["Read", "Write"]``."""
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


# ── Schemas ──────────────────────────────────────────────────────────


class FrontMatter(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str | None = None
    description: str | None = None


class CommandFrontMatter(FrontMatter):
    category: str | None = None
    allowed_tools: list[str] = Field(default_factory=list, alias="allowedTools")
    mcp_servers: list[str] = Field(default_factory=list)
    personas: list[str] = Field(default_factory=list)

    @field_validator("allowed_tools", "mcp_servers", "personas", mode="before")
    @classmethod
    def split_lists(cls, value: Any) -> Any:
        return _split_list(value)


class AgentFrontMatter(FrontMatter):
    model: str | None = None
    tools: list[str] = Field(default_factory=list)

    @field_validator("tools", mode="before")
    @classmethod
    def split_tools(cls, value: Any) -> Any:
        return _split_list(value)


class SkillFrontMatter(FrontMatter):
    pass


SCHEMAS: dict[ResourceKind, type[FrontMatter]] = {
    ResourceKind.AGENT: AgentFrontMatter,
    ResourceKind.COMMAND: CommandFrontMatter,
    ResourceKind.SKILL: SkillFrontMatter,
}


@dataclass
class ParsedMetadata:
    """Fields extracted from a document's front matter."""

    name: str | None = None
    description: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)
    strict: bool = True  # False when the lenient extractor produced it

    def merged_over(self, fallback: dict[str, Any]) -> dict[str, Any]:
        """Overlay non-empty parsed fields on top of ``fallback``."""
        merged = dict(fallback)
        for key, value in self.fields.items():
            if value not in (None, "", []):
                merged[key] = value
        return merged


def split_front_matter(text: str) -> tuple[str | None, str]:
    """Return ``(front_matter_block, body)``; block is None when absent."""
    text = text.lstrip(BOM)
    parts = text.split("---", 2)
    if len(parts) < 3 or parts[0].strip():
        return None, text
    return parts[1], parts[2]


def parse_front_matter(text: str, kind: ResourceKind = ResourceKind.COMMAND) -> ParsedMetadata:
    """Parse the leading metadata block of a resource document."""
    block, _ = split_front_matter(text)
    if block is None:
        return ParsedMetadata()

    schema = SCHEMAS.get(kind, FrontMatter)
    try:
        data = yaml.safe_load(block)
        if not isinstance(data, dict):
            raise ValueError("front matter is not a mapping")
        model = schema.model_validate(data)
    except (yaml.YAMLError, ValidationError, ValueError) as e:
        logger.debug("Strict front matter parse failed (%s), using lenient extractor", e)
        return lenient_parse(block, schema)

    values = model.model_dump()
    return ParsedMetadata(
        name=_clean(values.pop("name")),
        description=_clean(values.pop("description")),
        fields=values,
        strict=True,
    )


# ── Lenient extraction ───────────────────────────────────────────────


def _field_keys(schema: type[FrontMatter]) -> dict[str, tuple[str, bool]]:
    """Map each accepted key (field name or alias) to (field name, is_list)."""
    keys: dict[str, tuple[str, bool]] = {}
    for name, info in schema.model_fields.items():
        is_list = typing.get_origin(info.annotation) is list
        keys[name] = (name, is_list)
        if info.alias:
            keys[info.alias] = (name, is_list)
    return keys


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        text = text[1:-1].strip()
    return text or None


def lenient_parse(block: str, schema: type[FrontMatter] = FrontMatter) -> ParsedMetadata:
    """Best-effort extraction of known fields from a malformed YAML block."""
    keys = _field_keys(schema)
    key_line = re.compile(
        r"^(" + "|".join(re.escape(k) for k in keys) + r")\s*:\s*(.*?)\s*$"
    )
    lines = block.splitlines()

    values: dict[str, Any] = {}
    i = 0
    while i < len(lines):
        match = key_line.match(lines[i])
        if not match:
            i += 1
            continue
        field_name, is_list = keys[match.group(1)]
        rest = match.group(2)

        # Continuation lines run until the next known key
        j = i + 1
        continuation = []
        while j < len(lines) and not key_line.match(lines[j]):
            continuation.append(lines[j])
            j += 1

        if field_name in values:
            i = j
            continue

        if is_list:
            if rest:
                raw_items = _split_list(rest.strip("[]"))
            else:
                raw_items = [
                    item.group(1)
                    for item in (re.match(r"^\s*-\s*(.+?)\s*$", line) for line in continuation)
                    if item
                ]
            values[field_name] = [v for v in (_clean(r) for r in raw_items) if v]
        else:
            if field_name == "description":
                pieces = [rest] + [line.strip() for line in continuation]
                rest = " ".join(p for p in pieces if p and p not in ("|", ">"))
            values[field_name] = _clean(rest)
        i = j

    name = values.pop("name", None)
    description = values.pop("description", None)
    for field_name, is_list in set(keys.values()):
        if field_name not in ("name", "description"):
            values.setdefault(field_name, [] if is_list else None)
    return ParsedMetadata(name=name, description=description, fields=values, strict=False)
