from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


DEFAULT_TIMEOUT = 8.0
DEFAULT_USER_AGENT = "license-resolver/0.1 (+https://spdx.org/licenses/)"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    try:
        return float(raw) if raw is not None else default
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    try:
        return int(raw) if raw is not None else default
    except ValueError:
        return default


def default_cache_dir() -> Path:
    configured = os.environ.get("LICENSE_RESOLVER_CACHE_DIR")
    return Path(configured).expanduser() if configured else Path.home() / ".license_resolver"


@dataclass
class ResolverSettings:
    """Tunables shared by every component of one engine."""

    timeout: float = DEFAULT_TIMEOUT
    workers: int = 8
    flush_every: int = 16
    cache_dir: Path = field(default_factory=default_cache_dir)
    verify_tls: bool = False
    max_redirects: int = 10
    offline: bool = False
    match_threshold: float = 0.9
    wait_timeout: float = 120.0
    user_agent: str = DEFAULT_USER_AGENT
    alias_files: list[Path] = field(default_factory=list)
    seed_files: list[Path] = field(default_factory=list)
    redirect_files: list[Path] = field(default_factory=list)

    @classmethod
    def from_env(cls, **overrides) -> "ResolverSettings":
        values = {
            "timeout": _env_float("LICENSE_RESOLVER_TIMEOUT", DEFAULT_TIMEOUT),
            "workers": max(1, _env_int("LICENSE_RESOLVER_WORKERS", 8)),
            "offline": os.environ.get("LICENSE_RESOLVER_OFFLINE", "").lower() in {"1", "true", "yes"},
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    @property
    def catalog_path(self) -> Path:
        return Path(self.cache_dir) / "artifact-license-catalog.json"

    def as_dict(self) -> dict:
        return {
            "timeout": self.timeout,
            "workers": self.workers,
            "flush_every": self.flush_every,
            "cache_dir": str(self.cache_dir),
            "verify_tls": self.verify_tls,
            "max_redirects": self.max_redirects,
            "offline": self.offline,
            "match_threshold": self.match_threshold,
        }
