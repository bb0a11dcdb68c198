from __future__ import annotations

import atexit
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Callable, Optional

from .errors import CatalogStoreError, ExpressionSyntaxError
from .expression_parser import parse_expression
from .keyed_store import KeyedStore
from .registry import KnownLicenseRegistry
from .tables import DATA_DIR
from .types_expression import Expression, is_fully_identified, render


logger = logging.getLogger(__name__)

DEFAULT_CATALOG = DATA_DIR / "artifact-licenses.json"


def read_table(path: Path) -> dict[str, str]:
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as exc:
        raise CatalogStoreError(f"Unable to read {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise CatalogStoreError(f"{path} must contain a JSON object")
    return {str(key): str(value) for key, value in payload.items()}


def write_table(path: Path, table: dict[str, str]) -> None:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=path.name, suffix=".tmp", dir=path.parent)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(dict(sorted(table.items())), handle, indent=2)
            handle.write("\n")
        os.replace(tmp_name, path)
    except OSError as exc:
        raise CatalogStoreError(f"Unable to write {path}: {exc}") from exc


class ResolutionCatalog:
    """Durable artifact key to license expression cache.

    A bundled default table is layered under a writable JSON store. Only
    fully identified expressions are written back, and only when the stored
    string would change.
    """

    def __init__(
        self,
        path: Path,
        registry: KnownLicenseRegistry,
        defaults_path: Optional[Path] = DEFAULT_CATALOG,
        flush_every: int = 16,
        wait_timeout: Optional[float] = None,
        register_atexit: bool = True,
    ):
        self.path = Path(path)
        self.registry = registry
        self.defaults_path = Path(defaults_path) if defaults_path else None
        self.flush_every = max(1, flush_every)
        self._store: KeyedStore = KeyedStore("artifact-licenses", wait_timeout=wait_timeout)
        self._lock = threading.RLock()
        self._defaults: dict[str, str] = {}
        self._persisted: dict[str, str] = {}
        self._pending_computed = 0
        self._closed = False
        self.load()
        if register_atexit:
            atexit.register(self.close)

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: object) -> bool:
        return key in self._store

    def load(self) -> None:
        with self._lock:
            if self.defaults_path:
                for key, text in self._read(self.defaults_path).items():
                    expr = self._parse_entry(self.defaults_path, key, text)
                    if expr is not None:
                        self._store.put(key, expr)
                        self._defaults[key] = render(expr)
            for key, text in self._read(self.path).items():
                expr = self._parse_entry(self.path, key, text)
                if expr is not None:
                    self._store.put(key, expr)
                    self._persisted[key] = text
            logger.debug("Catalog loaded %d entries from %s", len(self._store), self.path)

    def _read(self, path: Path) -> dict[str, str]:
        try:
            return read_table(path)
        except CatalogStoreError as exc:
            logger.warning("%s; continuing without it", exc)
            return {}

    def _parse_entry(self, path: Path, key: str, text: str) -> Optional[Expression]:
        try:
            expr = parse_expression(text, self.registry)
        except ExpressionSyntaxError as exc:
            logger.warning("%s: skipping %s: %s", path, key, exc)
            return None
        if not is_fully_identified(expr):
            logger.warning("%s: skipping %s: %r is not fully identified", path, key, text)
            return None
        return expr

    def get(self, key: str, compute: Optional[Callable[[], Expression]] = None) -> Optional[Expression]:
        if compute is None:
            return self._store.get(key)

        computed = []

        def run() -> Expression:
            value = compute()
            computed.append(value)
            return value

        value = self._store.get_or_compute(key, run)
        if computed:
            self._note_computed()
        return value

    def put(self, key: str, expr: Expression) -> None:
        with self._lock:
            self._store.put(key, expr)

    def entries(self) -> dict[str, str]:
        return {key: render(expr) for key, expr in sorted(self._store.items())}

    def _note_computed(self) -> None:
        with self._lock:
            self._pending_computed += 1
            if self._pending_computed < self.flush_every:
                return
            self._pending_computed = 0
            self.flush()

    def flush(self) -> bool:
        """Write changed, fully identified entries; return True when the file was written."""

        with self._lock:
            table = dict(self._persisted)
            for key, expr in self._store.items():
                if not is_fully_identified(expr):
                    continue
                text = render(expr)
                if key not in self._persisted and self._defaults.get(key) == text:
                    continue
                table[key] = text

            exists = self.path.exists()
            if table == self._persisted and (exists or not table):
                return False
            try:
                write_table(self.path, table)
            except CatalogStoreError as exc:
                logger.warning("%s; catalog changes kept in memory only", exc)
                return False
            logger.debug("Catalog wrote %d entries to %s", len(table), self.path)
            self._persisted = table
            return True

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        atexit.unregister(self.close)
        self.flush()
