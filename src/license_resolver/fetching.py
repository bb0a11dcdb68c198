from __future__ import annotations

import logging
import threading
import warnings
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

import requests  # type: ignore[import-untyped]
from urllib3.exceptions import InsecureRequestWarning

from .errors import FetchError
from .types_settings import ResolverSettings


logger = logging.getLogger(__name__)

REDIRECT_CODES = {301, 302, 303, 307, 308}


@dataclass
class FetchedDocument:
    url: str
    status: int
    text: str = ""
    content_type: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    links: dict = field(default_factory=dict)

    @property
    def is_redirect(self) -> bool:
        return self.status in REDIRECT_CODES and bool(self.location)

    @property
    def location(self) -> Optional[str]:
        for name, value in self.headers.items():
            if name.lower() == "location":
                return value
        return None

    @property
    def canonical_link(self) -> Optional[str]:
        canonical = self.links.get("canonical") if self.links else None
        return canonical.get("url") if canonical else None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def is_html(self) -> bool:
        if "html" in self.content_type.lower():
            return True
        head = self.text.lstrip()[:200].lower()
        return head.startswith("<!doctype html") or head.startswith("<html")


def _archive_parts(url: str) -> tuple[str, str]:
    """Split ``jar:file:/x.jar!/META-INF/LICENSE`` into archive URL and entry."""

    inner = url.split(":", 1)[1]
    if "!/" not in inner:
        raise FetchError(url, "archive URL has no '!/' entry separator")
    archive, entry = inner.split("!/", 1)
    return archive, entry


def _local_path(url: str) -> Path:
    parsed = urlparse(url)
    return Path(url2pathname(unquote(parsed.path)))


def archive_entry_url(archive_url: str, entry: str) -> str:
    scheme = "jar" if archive_url.lower().endswith((".jar", ".war", ".ear")) else "zip"
    if "://" not in archive_url and not archive_url.startswith("file:"):
        archive_url = Path(archive_url).resolve().as_uri()
    return f"{scheme}:{archive_url}!/{entry.lstrip('/')}"


class HttpFetcher:
    """Fetch license documents without following redirects.

    ``http(s)`` goes through a :class:`requests.Session`; ``file:`` and
    ``jar:``/``zip:`` archive entries are read locally.
    """

    def __init__(self, settings: ResolverSettings | None = None, session: requests.Session | None = None):
        self.settings = settings or ResolverSettings()
        self.session = session or requests.Session()
        if hasattr(self.session, "headers"):
            self.session.headers.setdefault("User-Agent", self.settings.user_agent)
        self.fetch_count = 0
        self._count_lock = threading.Lock()

    def fetch(self, url: str) -> FetchedDocument:
        scheme = urlparse(url).scheme.lower()
        if scheme in {"http", "https"}:
            return self._fetch_http(url)
        if scheme == "file":
            return self._fetch_file(url)
        if scheme in {"jar", "zip"}:
            return self._fetch_archive_entry(url)
        raise FetchError(url, f"unsupported URL scheme {scheme or '<none>'!r}")

    def _fetch_http(self, url: str) -> FetchedDocument:
        if self.settings.offline:
            raise FetchError(url, "offline mode")
        with self._count_lock:
            self.fetch_count += 1
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", InsecureRequestWarning)
                response = self.session.get(
                    url,
                    allow_redirects=False,
                    timeout=self.settings.timeout,
                    verify=self.settings.verify_tls,
                )
        except requests.RequestException as exc:
            raise FetchError(url, str(exc)) from exc

        logger.debug("GET %s -> %s", url, response.status_code)
        headers = dict(getattr(response, "headers", {}) or {})
        return FetchedDocument(
            url=url,
            status=int(response.status_code),
            text=response.text or "",
            content_type=headers.get("Content-Type") or headers.get("content-type") or "",
            headers=headers,
            links=dict(getattr(response, "links", {}) or {}),
        )

    def _fetch_file(self, url: str) -> FetchedDocument:
        path = _local_path(url)
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise FetchError(url, str(exc)) from exc
        content_type = "text/html" if path.suffix.lower() in {".html", ".htm"} else "text/plain"
        return FetchedDocument(url=url, status=200, text=text, content_type=content_type)

    def _fetch_archive_entry(self, url: str) -> FetchedDocument:
        archive, entry = _archive_parts(url)
        path = _local_path(archive) if archive.startswith("file:") else Path(archive)
        try:
            with zipfile.ZipFile(path) as bundle:
                data = bundle.read(entry)
        except KeyError as exc:
            raise FetchError(url, f"no entry {entry!r} in archive") from exc
        except (OSError, zipfile.BadZipFile) as exc:
            raise FetchError(url, str(exc)) from exc
        content_type = "text/html" if entry.lower().endswith((".html", ".htm")) else "text/plain"
        return FetchedDocument(
            url=url, status=200, text=data.decode("utf-8", errors="replace"), content_type=content_type
        )
