from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Iterator, Optional

from license_expression import get_spdx_licensing

from .errors import ExpressionSyntaxError, RegistryLoadError
from .expression_parser import parse_expression
from .tables import DATA_DIR, OperatorTables, load_tables
from .types_expression import Expression, Single, is_fully_identified


logger = logging.getLogger(__name__)

OPENSOURCE_URL = "https://opensource.org/licenses/{id}"
SPDX_URL = "https://spdx.org/licenses/{id}.html"

_SEPARATORS = re.compile(r"[\s,;:/()\"'_]+")
_VERSION_WORD = re.compile(r"\bversion\s*(?=\d)")
_VERSION_V = re.compile(r"\bv\.?\s*(?=\d)")


@dataclass(frozen=True)
class RegistryEntry:
    id: str
    name: str
    aliases: frozenset = field(default_factory=frozenset)
    urls: tuple[str, ...] = ()
    is_exception: bool = False


def alias_key(value: str) -> str:
    """Case-, punctuation- and version-insensitive form of a license name."""

    key = value.strip().lower().replace("licence", "license")
    key = _SEPARATORS.sub(" ", key)
    key = _VERSION_WORD.sub("", key)
    key = _VERSION_V.sub("", key)
    return " ".join(key.split())


def _dehyphen(key: str) -> str:
    return " ".join(key.replace("-", " ").split())


def lookup_variants(value: str) -> list[str]:
    key = alias_key(value)
    variants = [key, _dehyphen(key), key.replace(" ", "-")]
    return list(dict.fromkeys(variant for variant in variants if variant))


def url_key(url: str) -> str:
    key = url.strip().lower().split("#", 1)[0]
    key = re.sub(r"^[a-z][a-z0-9+.-]*://", "", key)
    if key.startswith("www."):
        key = key[4:]
    return key.rstrip("/")


@lru_cache(maxsize=1)
def _spdx_symbols() -> tuple:
    try:
        licensing = get_spdx_licensing()
    except Exception as exc:
        raise RegistryLoadError(f"Unable to load the SPDX license index: {exc}") from exc
    return tuple(licensing.known_symbols.values())


class KnownLicenseRegistry:
    """Canonical license ids with their names, aliases, and reference URLs.

    Built once by :meth:`load`; afterwards only the URL index grows, through
    :meth:`remember_url`.
    """

    def __init__(self, tables: OperatorTables | None = None):
        self.tables = tables or OperatorTables()
        self._entries: dict[str, RegistryEntry] = {}
        self._exceptions: dict[str, RegistryEntry] = {}
        self._ids: dict[str, str] = {}
        self._names: dict[str, str] = {}
        self._aliases: dict[str, str] = {}
        self._exception_keys: dict[str, str] = {}
        self._compound_aliases: dict[str, Expression] = {}
        self._urls: dict[str, Expression] = {}
        self._url_lock = threading.Lock()

    @classmethod
    def load(
        cls,
        tables: OperatorTables | None = None,
        data_dir: Path = DATA_DIR,
        include_spdx: bool = True,
    ) -> "KnownLicenseRegistry":
        registry = cls(tables if tables is not None else load_tables())
        try:
            registry._load_curated(Path(data_dir) / "licenses.json")
            registry._load_secondary(Path(data_dir) / "opensource-licenses.json")
            if include_spdx:
                registry._load_spdx(_spdx_symbols())
            registry._index_urls()
            registry._load_aliases(registry.tables.aliases)
            registry._load_seeds(registry.tables.seeds)
        except RegistryLoadError as exc:
            logger.error("License registry failed to load: %s", exc)
            raise
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.error("License registry failed to load: %s", exc)
            raise RegistryLoadError(f"Corrupt license corpus in {data_dir}: {exc}") from exc

        logger.debug(
            "Loaded %d licenses, %d exceptions, %d URLs",
            len(registry._entries),
            len(registry._exceptions),
            len(registry._urls),
        )
        return registry

    # construction

    def _add(self, entry: RegistryEntry) -> None:
        target = self._exceptions if entry.is_exception else self._entries
        existing = target.get(entry.id)
        if existing:
            entry = RegistryEntry(
                id=existing.id,
                name=existing.name,
                aliases=existing.aliases | entry.aliases,
                urls=tuple(dict.fromkeys(existing.urls + entry.urls)),
                is_exception=existing.is_exception,
            )
        target[entry.id] = entry

        if entry.is_exception:
            for name in (entry.id, entry.name, *entry.aliases):
                for variant in lookup_variants(name):
                    self._exception_keys.setdefault(variant, entry.id)
            return

        for variant in lookup_variants(entry.id):
            self._ids.setdefault(variant, entry.id)
        for variant in lookup_variants(entry.name):
            self._names.setdefault(variant, entry.id)
        for alias in entry.aliases:
            for variant in lookup_variants(alias):
                self._aliases.setdefault(variant, entry.id)

    def _load_curated(self, path: Path) -> None:
        payload = json.loads(path.read_text(encoding="utf-8"))
        for item in payload["licenses"]:
            self._add(
                RegistryEntry(
                    id=item["id"],
                    name=item.get("name") or item["id"],
                    aliases=frozenset(item.get("aliases", [])),
                    urls=tuple(item.get("urls", [])),
                )
            )
        for item in payload.get("exceptions", []):
            self._add(
                RegistryEntry(
                    id=item["id"],
                    name=item.get("name") or item["id"],
                    aliases=frozenset(item.get("aliases", [])),
                    is_exception=True,
                )
            )

    def _load_secondary(self, path: Path) -> None:
        payload = json.loads(path.read_text(encoding="utf-8"))
        for item in payload["licenses"]:
            spdx_ids = (item.get("identifiers") or {}).get("spdx") or []
            if not spdx_ids:
                continue
            names = [item.get("id"), item.get("name"), *(item.get("other_names") or [])]
            self._add(
                RegistryEntry(
                    id=spdx_ids[0],
                    name=item.get("name") or spdx_ids[0],
                    aliases=frozenset(name for name in names if name and name != spdx_ids[0]),
                    urls=tuple(item.get("uris") or []),
                )
            )

    def _load_spdx(self, symbols: Iterable) -> None:
        for symbol in symbols:
            aliases = frozenset(alias for alias in (symbol.aliases or ()) if alias)
            self._add(
                RegistryEntry(
                    id=symbol.key,
                    name=symbol.key,
                    aliases=aliases,
                    is_exception=bool(symbol.is_exception),
                )
            )

    def _index_urls(self) -> None:
        for entry in self._entries.values():
            value = Single(entry.id)
            self._urls.setdefault(url_key(OPENSOURCE_URL.format(id=entry.id)), value)
            self._urls.setdefault(url_key(SPDX_URL.format(id=entry.id)), value)
            for url in entry.urls:
                self._urls.setdefault(url_key(url), value)

    def _load_aliases(self, aliases: dict[str, str]) -> None:
        for name, text in aliases.items():
            expr = self._parse_table_expression(text, f"alias {name!r}")
            if isinstance(expr, Single):
                for variant in lookup_variants(name):
                    self._aliases[variant] = expr.id
            else:
                self._compound_aliases[alias_key(name)] = expr

    def _load_seeds(self, seeds: dict[str, list[str]]) -> None:
        for text, urls in seeds.items():
            expr = self._parse_table_expression(text, "seed")
            # seeds take precedence over corpus reference URLs
            for url in urls:
                self._urls[url_key(url)] = expr

    def _parse_table_expression(self, text: str, what: str) -> Expression:
        try:
            expr = parse_expression(text, self)
        except ExpressionSyntaxError as exc:
            raise RegistryLoadError(f"Invalid {what} expression {text!r}: {exc}") from exc
        if not is_fully_identified(expr):
            raise RegistryLoadError(f"The {what} expression {text!r} is not fully identified")
        return expr

    # queries

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, license_id: object) -> bool:
        return license_id in self._entries

    def get(self, license_id: str) -> Optional[RegistryEntry]:
        return self._entries.get(license_id)

    def entries(self) -> Iterator[RegistryEntry]:
        return iter(self._entries.values())

    def lookup(self, id_or_alias: str | None) -> Optional[RegistryEntry]:
        if not id_or_alias or not id_or_alias.strip():
            return None
        exact = self._entries.get(id_or_alias.strip())
        if exact:
            return exact

        variants = lookup_variants(id_or_alias)
        for index in (self._ids, self._names, self._aliases):
            for variant in variants:
                license_id = index.get(variant)
                if license_id:
                    return self._entries[license_id]
        return None

    def lookup_exception(self, exception_id: str | None) -> Optional[str]:
        if not exception_id or not exception_id.strip():
            return None
        if exception_id in self._exceptions:
            return exception_id
        for variant in lookup_variants(exception_id):
            if variant in self._exception_keys:
                return self._exception_keys[variant]
        return None

    def resolve_name(self, name: str | None) -> Optional[Expression]:
        """Map a declared name to an expression using ids, names and aliases only."""

        entry = self.lookup(name)
        if entry:
            return Single(entry.id)
        if not name:
            return None
        return self._compound_aliases.get(alias_key(name))

    def expression_for_url(self, url: str | None) -> Optional[Expression]:
        if not url:
            return None
        with self._url_lock:
            return self._urls.get(url_key(url))

    def by_url(self, url: str | None) -> Optional[RegistryEntry]:
        expr = self.expression_for_url(url)
        if isinstance(expr, Single):
            return self._entries.get(expr.id)
        return None

    def remember_url(self, url: str, expr: Expression) -> None:
        with self._url_lock:
            self._urls.setdefault(url_key(url), expr)

    def url_count(self) -> int:
        with self._url_lock:
            return len(self._urls)
