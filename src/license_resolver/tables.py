from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

import yaml

from .errors import RegistryLoadError


DATA_DIR = Path(__file__).resolve().parent / "data"
DEFAULT_ALIASES = DATA_DIR / "aliases.yaml"
DEFAULT_SEEDS = DATA_DIR / "seeds.yaml"
DEFAULT_REDIRECTS = DATA_DIR / "redirects.yaml"


@dataclass(frozen=True)
class Redirect:
    pattern: re.Pattern
    replacement: str

    def apply(self, url: str) -> Optional[str]:
        match = self.pattern.fullmatch(url)
        if not match:
            return None
        target = match.expand(self.replacement).strip()
        return target or None


@dataclass
class OperatorTables:
    """Alias, seed and redirect tables layered from YAML files."""

    aliases: dict[str, str] = field(default_factory=dict)
    seeds: dict[str, list[str]] = field(default_factory=dict)
    redirects: list[Redirect] = field(default_factory=list)

    def redirect_for(self, url: str) -> Optional[str]:
        for redirect in self.redirects:
            target = redirect.apply(url)
            if target:
                return target
        return None


def _load_yaml(path: Path) -> dict:
    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise RegistryLoadError(f"Unable to read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise RegistryLoadError(f"{path} must contain a mapping")
    return data


def _section(data: dict, name: str):
    # files may hold the table at the top level or under its own key
    return data.get(name, data)


def load_aliases(path: Path) -> dict[str, str]:
    table = _section(_load_yaml(path), "aliases") or {}
    if not isinstance(table, dict):
        raise RegistryLoadError(f"{path}: aliases must be a mapping of name to expression")
    return {str(name).strip(): str(expr).strip() for name, expr in table.items() if name and expr}


def load_seeds(path: Path) -> dict[str, list[str]]:
    table = _section(_load_yaml(path), "seeds") or {}
    if not isinstance(table, dict):
        raise RegistryLoadError(f"{path}: seeds must be a mapping of expression to URLs")
    seeds: dict[str, list[str]] = {}
    for expr, urls in table.items():
        if isinstance(urls, str):
            urls = urls.split()
        seeds[str(expr).strip()] = [str(url).strip() for url in urls or [] if str(url).strip()]
    return seeds


def load_redirects(path: Path) -> list[Redirect]:
    data = _load_yaml(path)
    entries = data.get("redirects", [])
    if isinstance(entries, dict):
        entries = [{"pattern": key, "replacement": value} for key, value in entries.items()]

    redirects: list[Redirect] = []
    for entry in entries or []:
        try:
            pattern = re.compile(entry["pattern"])
            replacement = str(entry["replacement"]).strip()
        except (KeyError, TypeError, re.error) as exc:
            raise RegistryLoadError(f"{path}: invalid redirect entry {entry!r}: {exc}") from exc
        redirects.append(Redirect(pattern, replacement))
    return redirects


def load_tables(
    alias_files: Iterable[Path] = (),
    seed_files: Iterable[Path] = (),
    redirect_files: Iterable[Path] = (),
    include_defaults: bool = True,
) -> OperatorTables:
    tables = OperatorTables()
    defaults = (
        ([DEFAULT_ALIASES], [DEFAULT_SEEDS], [DEFAULT_REDIRECTS]) if include_defaults else ([], [], [])
    )

    for path in [*defaults[0], *alias_files]:
        tables.aliases.update(load_aliases(Path(path)))
    for path in [*defaults[1], *seed_files]:
        for expr, urls in load_seeds(Path(path)).items():
            tables.seeds.setdefault(expr, []).extend(urls)

    # operator redirects are consulted before the bundled ones
    for path in [*redirect_files]:
        tables.redirects.extend(load_redirects(Path(path)))
    for path in defaults[2]:
        tables.redirects.extend(load_redirects(Path(path)))
    return tables
