"""Runtime settings: data root, app directories, credentials, timeouts.

Settings come from defaults, then ``~/.cfgsync/config.yaml`` (if present),
then environment variables. Unknown YAML keys are ignored.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

DEFAULT_HOME = Path.home() / ".cfgsync"

ENV_HOME = "CFGSYNC_HOME"
ENV_LOG_LEVEL = "CFGSYNC_LOG_LEVEL"
ENV_GITHUB_TOKEN = "GITHUB_TOKEN"
ENV_APP_DIRS = {
    "claude": "CFGSYNC_CLAUDE_DIR",
    "codex": "CFGSYNC_CODEX_DIR",
    "gemini": "CFGSYNC_GEMINI_DIR",
}


@dataclass
class Settings:
    """Everything an engine needs to know about its environment."""

    data_root: Path = DEFAULT_HOME
    # Per-app configuration roots; missing apps fall back to ~/.<app>
    app_dirs: dict[str, Path] = field(default_factory=dict)
    github_token: str = ""
    log_level: str = "WARNING"

    # Network
    api_timeout: float = 30.0
    raw_timeout: float = 30.0
    archive_timeout: float = 60.0
    api_base_url: str = "https://api.github.com"
    raw_base_url: str = "https://raw.githubusercontent.com"
    archive_base_url: str = "https://github.com"

    # Discovery / updates
    cache_ttl_seconds: int = 24 * 60 * 60
    update_concurrency: int = 5
    scan_depth: int = 3

    @property
    def database_path(self) -> Path:
        return self.data_root / "cfgsync.db"

    def app_root(self, app: str) -> Path:
        """Return the configuration root of a client application."""
        if app in self.app_dirs:
            return Path(self.app_dirs[app])
        return Path.home() / f".{app}"

    @classmethod
    def load(cls, path: str | Path | None = None) -> "Settings":
        """Build settings from the YAML file and environment overrides."""
        home = Path(os.environ.get(ENV_HOME) or DEFAULT_HOME).expanduser()
        config_path = Path(path) if path else home / "config.yaml"

        data: dict = {}
        if config_path.exists():
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                data = {}

        settings = cls(data_root=home)
        known = {f.name for f in fields(cls)}
        for key, value in data.items():
            if key not in known or value is None:
                continue
            if key == "data_root":
                value = Path(value).expanduser()
            elif key == "app_dirs":
                value = {str(k): Path(v).expanduser() for k, v in dict(value).items()}
            setattr(settings, key, value)

        for app, env_name in ENV_APP_DIRS.items():
            if os.environ.get(env_name):
                settings.app_dirs[app] = Path(os.environ[env_name]).expanduser()
        if os.environ.get(ENV_GITHUB_TOKEN):
            settings.github_token = os.environ[ENV_GITHUB_TOKEN]
        if os.environ.get(ENV_LOG_LEVEL):
            settings.log_level = os.environ[ENV_LOG_LEVEL]
        if os.environ.get(ENV_HOME):
            settings.data_root = home

        return settings
