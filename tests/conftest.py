import sys
from pathlib import Path

import pytest

# Ensure src package is importable without installation
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if SRC.exists():
    sys.path.insert(0, str(SRC))


class DummyResponse:
    def __init__(self, status_code=200, text="", headers=None, links=None):
        self.status_code = status_code
        self.text = text
        self.headers = headers or {}
        self.links = links or {}


class FakeSession:
    """Stands in for ``requests.Session``; unknown URLs answer 404."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.headers = {}
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            return DummyResponse(404, "not found")
        if isinstance(route, Exception):
            raise route
        return route


DATA = Path(__file__).resolve().parent / "data"


def license_text(license_id: str) -> str:
    return (DATA / "texts" / f"{license_id}.txt").read_text(encoding="utf-8")


def redirect(location: str, status: int = 301) -> DummyResponse:
    return DummyResponse(status, "", headers={"Location": location})


def page(text: str, content_type: str = "text/plain", links=None) -> DummyResponse:
    return DummyResponse(200, text, headers={"Content-Type": content_type}, links=links)


@pytest.fixture
def registry():
    from license_resolver.registry import KnownLicenseRegistry

    return KnownLicenseRegistry.load()


@pytest.fixture
def make_engine(registry, tmp_path):
    from license_resolver.engine import LicenseEngine
    from license_resolver.types import ResolverSettings

    def factory(routes=None, **overrides):
        overrides.setdefault("cache_dir", tmp_path / "cache")
        settings = ResolverSettings(**overrides)
        session = FakeSession(routes)
        engine = LicenseEngine.from_settings(
            settings, session=session, registry=registry, register_atexit=False
        )
        return engine, session

    return factory
