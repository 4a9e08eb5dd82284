"""Configuration for the incremental agent package."""

import fnmatch
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

ENV_PREFIX = "INCREMENTAL_AGENT_"


@dataclass
class AgentConfig:
    """
    Configuration options for the incremental agent.

    Attributes:
        max_tracked_files: Capacity bound on tracked paths before overflow
        page_size: Default number of records per page
        max_page_size: Upper clamp for any requested page size
        self_change_default_ttl: Seconds a self-change registration lives
        self_change_max_entries: Cap on the self-change registry (oldest evicted)
        snapshot_timeout: Seconds an idle generation stays open before abandon
        maintenance_interval_ms: Interval of the sweep/timeout loop
        recursive: Whether to watch the root recursively
        ignore_patterns: Glob patterns for paths the adapter never reports
        bind_host: HTTP bind address
        port: HTTP port
    """
    max_tracked_files: int = 10000
    page_size: int = 500
    max_page_size: int = 1000
    self_change_default_ttl: float = 30.0
    self_change_max_entries: int = 10000
    snapshot_timeout: float = 300.0
    maintenance_interval_ms: int = 1000
    recursive: bool = True
    ignore_patterns: List[str] = field(default_factory=lambda: [
        "*.swp",
        "*.swo",
        "*~",
        ".git/*",
        ".git",
        ".DS_Store",
        "Thumbs.db",
    ])
    bind_host: str = "0.0.0.0"
    port: int = 8080

    def __post_init__(self):
        for name in (
            "max_tracked_files",
            "page_size",
            "max_page_size",
            "self_change_max_entries",
            "maintenance_interval_ms",
            "port",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer: {value!r}")
        if self.self_change_default_ttl <= 0:
            raise ValueError(f"self_change_default_ttl must be positive: {self.self_change_default_ttl}")
        if self.snapshot_timeout <= 0:
            raise ValueError(f"snapshot_timeout must be positive: {self.snapshot_timeout}")
        if self.page_size > self.max_page_size:
            self.page_size = self.max_page_size

    @classmethod
    def from_env(cls, **overrides) -> "AgentConfig":
        """
        Build a config from INCREMENTAL_AGENT_* environment variables.

        Explicit keyword overrides win over the environment; None values
        are ignored so CLI defaults can be passed through unchanged.

        Returns:
            A validated AgentConfig
        """
        values = {}
        env_int = {
            "max_tracked_files": "LIMIT",
            "page_size": "PAGE_SIZE",
            "port": "PORT",
        }
        env_float = {
            "self_change_default_ttl": "SELF_CHANGE_TTL",
            "snapshot_timeout": "SNAPSHOT_TIMEOUT",
        }
        for name, suffix in env_int.items():
            raw = os.environ.get(ENV_PREFIX + suffix)
            if raw:
                values[name] = _parse_env(ENV_PREFIX + suffix, raw, int)
        for name, suffix in env_float.items():
            raw = os.environ.get(ENV_PREFIX + suffix)
            if raw:
                values[name] = _parse_env(ENV_PREFIX + suffix, raw, float)
        bind = os.environ.get(ENV_PREFIX + "BIND")
        if bind:
            values["bind_host"] = bind

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def should_ignore(self, path: Path) -> bool:
        """
        Check if a path should be ignored based on ignore patterns.

        Args:
            path: Path to check

        Returns:
            True if the path should be ignored
        """
        path_str = str(path)
        name = path.name

        for pattern in self.ignore_patterns:
            if fnmatch.fnmatch(name, pattern):
                return True
            if fnmatch.fnmatch(path_str, f"*/{pattern}"):
                return True
            if fnmatch.fnmatch(path_str, pattern):
                return True

        return False


def _parse_env(key: str, raw: str, kind: type):
    try:
        return kind(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {key}: {raw!r}") from None


def default_env_file() -> Optional[Path]:
    """Return the .env file in the working directory, if there is one."""
    candidate = Path.cwd() / ".env"
    return candidate if candidate.exists() else None
