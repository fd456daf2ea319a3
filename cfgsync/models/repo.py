"""Source repository registry records."""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass
class LocalizedDescription:
    zh: str = ""
    en: str = ""
    ja: str = ""

    def get(self, lang: str = "en") -> str:
        """Return the description for a language tag such as ``zh-CN``."""
        lang = (lang or "").lower()
        if lang.startswith("zh"):
            return self.zh or self.en
        if lang.startswith("ja"):
            return self.ja or self.en
        return self.en


@dataclass
class SourceRepo:
    """A repository scanned during discovery."""

    owner: str
    name: str
    branch: str = "main"
    enabled: bool = True
    builtin: bool = False
    description: LocalizedDescription = field(default_factory=LocalizedDescription)
    added_at: int = field(default_factory=lambda: int(time.time()))

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def cache_key(self) -> tuple[str, str, str]:
        return (self.owner, self.name, self.branch)
