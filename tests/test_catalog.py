import json
from pathlib import Path

import pytest

from license_resolver import catalog as catalog_module
from license_resolver.catalog import ResolutionCatalog, read_table
from license_resolver.errors import CatalogStoreError
from license_resolver.types import Operator, Single, Unresolved, license_set, render


def _catalog(registry, path: Path, **kwargs) -> ResolutionCatalog:
    kwargs.setdefault("defaults_path", None)
    return ResolutionCatalog(path, registry, register_atexit=False, **kwargs)


def test_only_fully_identified_entries_are_persisted(registry, tmp_path: Path):
    path = tmp_path / "catalog.json"
    store = _catalog(registry, path)
    store.get("org.example:good:1.0", lambda: Single("MIT"))
    store.get("org.example:bad:1.0", lambda: Unresolved(raw_id="FooCorp License"))
    store.close()

    assert json.loads(path.read_text()) == {"org.example:good:1.0": "MIT"}


def test_second_load_serves_persisted_entries_without_compute(registry, tmp_path: Path):
    path = tmp_path / "catalog.json"
    first = _catalog(registry, path)
    first.get("org.example:dual:2.0", lambda: license_set(Operator.OR, [Single("MIT"), Single("Apache-2.0")]))
    first.close()

    second = _catalog(registry, path)
    calls = []
    expr = second.get("org.example:dual:2.0", lambda: calls.append(1) or Single("ISC"))
    assert render(expr) == "(Apache-2.0 OR MIT)"
    assert calls == []


def test_unchanged_catalog_is_not_rewritten(registry, tmp_path: Path, monkeypatch):
    path = tmp_path / "catalog.json"
    store = _catalog(registry, path)
    store.get("org.example:good:1.0", lambda: Single("MIT"))
    assert store.flush() is True

    writes = []
    original = catalog_module.write_table
    monkeypatch.setattr(catalog_module, "write_table", lambda *args: writes.append(args) or original(*args))
    assert store.flush() is False
    store.close()
    assert writes == []

    reloaded = _catalog(registry, path)
    monkeypatch.setattr(catalog_module, "write_table", lambda *args: writes.append(args))
    reloaded.close()
    assert writes == []


def test_flush_every_n_computed_entries(registry, tmp_path: Path):
    path = tmp_path / "catalog.json"
    store = _catalog(registry, path, flush_every=2)
    store.get("a:a:1", lambda: Single("MIT"))
    assert not path.exists()
    store.get("b:b:1", lambda: Single("ISC"))
    assert json.loads(path.read_text()) == {"a:a:1": "MIT", "b:b:1": "ISC"}


def test_defaults_are_served_but_not_copied(registry, tmp_path: Path):
    defaults = tmp_path / "defaults.json"
    defaults.write_text(json.dumps({"junit:junit:4.13.2": "EPL-1.0"}))
    path = tmp_path / "catalog.json"

    store = _catalog(registry, path, defaults_path=defaults)
    assert store.get("junit:junit:4.13.2") == Single("EPL-1.0")
    assert store.flush() is False
    assert not path.exists()


def test_bundled_defaults_cover_known_artifacts(registry, tmp_path: Path):
    store = ResolutionCatalog(tmp_path / "catalog.json", registry, register_atexit=False)
    expr = store.get("javax.servlet:javax.servlet-api:4.0.1")
    assert render(expr) == "(CDDL-1.1 OR GPL-2.0-only WITH Classpath-exception-2.0)"


def test_put_overrides_and_persists(registry, tmp_path: Path):
    defaults = tmp_path / "defaults.json"
    defaults.write_text(json.dumps({"junit:junit:4.13.2": "EPL-1.0"}))
    path = tmp_path / "catalog.json"

    store = _catalog(registry, path, defaults_path=defaults)
    store.put("junit:junit:4.13.2", Single("EPL-2.0"))
    store.close()
    assert json.loads(path.read_text()) == {"junit:junit:4.13.2": "EPL-2.0"}


def test_corrupt_store_is_skipped_with_warning(registry, tmp_path: Path, caplog):
    path = tmp_path / "catalog.json"
    path.write_text("{ not json")
    with caplog.at_level("WARNING"):
        store = _catalog(registry, path)
    assert len(store) == 0
    assert "Unable to read" in caplog.text


def test_invalid_entries_are_skipped(registry, tmp_path: Path, caplog):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({"a:a:1": "MIT", "b:b:1": "FooCorp-1.0", "c:c:1": "MIT AND"}))
    with caplog.at_level("WARNING"):
        store = _catalog(registry, path)
    assert store.entries() == {"a:a:1": "MIT"}
    assert "b:b:1" in caplog.text
    assert "c:c:1" in caplog.text


def test_compute_errors_propagate_and_are_not_cached(registry, tmp_path: Path):
    store = _catalog(registry, tmp_path / "catalog.json")

    def broken():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        store.get("a:a:1", broken)
    assert "a:a:1" not in store
    assert store.get("a:a:1", lambda: Single("MIT")) == Single("MIT")


def test_read_table_reports_bad_shape(tmp_path: Path):
    path = tmp_path / "catalog.json"
    assert read_table(path) == {}
    path.write_text("[1, 2]")
    with pytest.raises(CatalogStoreError):
        read_table(path)
