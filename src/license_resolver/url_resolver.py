from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from .errors import FetchError
from .fetching import FetchedDocument, HttpFetcher
from .keyed_store import KeyedStore
from .merger import to_expression
from .registry import KnownLicenseRegistry, url_key
from .tables import OperatorTables
from .text_matcher import TextMatcher
from .types_expression import Expression, Single, Unresolved
from .types_settings import ResolverSettings


logger = logging.getLogger(__name__)

# tried in order; the first region whose text matches a license wins
TEXT_SELECTORS = ("body .content p", "body main", "body p", "body")


def _same_url(left: str, right: str) -> bool:
    return url_key(left) == url_key(right)


def extract_texts(markup: str) -> list[str]:
    """Candidate plain-text bodies of an HTML page, most specific first."""

    soup = BeautifulSoup(markup, "html.parser")
    texts: list[str] = []
    for selector in TEXT_SELECTORS:
        elements = soup.select(selector)
        text = "\n".join(element.get_text("\n", strip=True) for element in elements).strip()
        if text and text not in texts:
            texts.append(text)
    whole = soup.get_text("\n").strip()
    if whole and whole not in texts:
        texts.append(whole)
    return texts


def canonical_links(markup: str) -> list[str]:
    soup = BeautifulSoup(markup, "html.parser")
    head = soup.head or soup
    return [link["href"] for link in head.find_all("link", rel="canonical", href=True)]


class UrlResolver:
    """Resolve license URLs to expressions, memoizing every URL on a chain.

    Results are cached per URL for the life of the resolver; concurrent
    callers asking for the same URL share one fetch.
    """

    def __init__(
        self,
        registry: KnownLicenseRegistry,
        matcher: TextMatcher,
        fetcher: HttpFetcher,
        tables: OperatorTables | None = None,
        settings: ResolverSettings | None = None,
        cache: KeyedStore | None = None,
    ):
        self.registry = registry
        self.matcher = matcher
        self.fetcher = fetcher
        self.tables = tables if tables is not None else registry.tables
        self.settings = settings or ResolverSettings()
        self.cache: KeyedStore = cache or KeyedStore("url-licenses", wait_timeout=self.settings.wait_timeout)

    def resolve(self, url: str, hint_name: Optional[str] = None) -> Expression:
        url = (url or "").strip()
        if not url:
            return Unresolved(raw_id=hint_name)
        try:
            result = self._resolve(url, frozenset())
        except Exception as exc:
            logger.warning("Cannot resolve %s: %s", url, exc)
            result = Unresolved(source_urls=(url,))
        if isinstance(result, Unresolved):
            return result.with_hint(hint_name, url)
        return result

    def _resolve(self, url: str, seen: frozenset) -> Expression:
        known = self.registry.expression_for_url(url)
        if known is not None:
            return known
        if url in seen or len(seen) > self.settings.max_redirects:
            logger.warning("Redirect loop or overlong redirect chain at %s", url)
            return Unresolved(source_urls=(url,))
        return self.cache.get_or_compute(url, lambda: self._compute(url, seen | {url}))

    def _follow(self, url: str, target: str, seen: frozenset, why: str) -> Expression:
        logger.debug("%s: following %s to %s", url, why, target)
        return self._resolve(target, seen)

    def _compute(self, url: str, seen: frozenset) -> Expression:
        try:
            document = self.fetcher.fetch(url)
        except FetchError as exc:
            target = self.tables.redirect_for(url)
            if target and not _same_url(target, url):
                return self._follow(url, target, seen, "configured redirect")
            logger.warning("Cannot read %s: %s", url, exc.reason)
            return Unresolved(source_urls=(url,))

        if document.is_redirect:
            target = urljoin(url, document.location)
            if not _same_url(target, url):
                return self._follow(url, target, seen, f"HTTP {document.status}")

        if document.canonical_link:
            target = urljoin(url, document.canonical_link)
            if not _same_url(target, url):
                return self._follow(url, target, seen, "canonical link")

        target = self.tables.redirect_for(url)
        if target and not _same_url(target, url):
            return self._follow(url, target, seen, "configured redirect")

        if not document.ok:
            logger.warning("Cannot read %s: HTTP %s", url, document.status)
            return Unresolved(source_urls=(url,))

        return self._from_document(url, document)

    def _from_document(self, url: str, document: FetchedDocument) -> Expression:
        if document.is_html:
            for href in canonical_links(document.text):
                target = urljoin(url, href)
                known = self.registry.expression_for_url(target)
                if known is not None and not _same_url(target, url):
                    return known
            texts = extract_texts(document.text)
        else:
            texts = [document.text]

        for text in texts:
            ids = self.matcher.match_ids(text)
            if ids:
                members = [Single(self._canonical_id(license_id)) for license_id in ids]
                result = to_expression(members)
                if isinstance(result, Single):
                    self.registry.remember_url(url, result)
                return result

        raw_text = texts[0] if texts else document.text
        return Unresolved(raw_text=raw_text, source_urls=(url,))

    def _canonical_id(self, license_id: str) -> str:
        entry = self.registry.lookup(license_id)
        return entry.id if entry else license_id
