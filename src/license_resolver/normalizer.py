from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, Optional

from .errors import ExpressionSyntaxError
from .expression_parser import parse_expression
from .fetching import archive_entry_url
from .merger import to_expression
from .registry import KnownLicenseRegistry
from .types_expression import Expression, Unresolved, is_fully_identified, is_partially_identified
from .types_signals import RawSignal, SignalKind
from .url_resolver import UrlResolver


logger = logging.getLogger(__name__)

LICENSE_FILE_INCLUDE = re.compile(r"^(.*/|)(LICENSE([.][^/]+)?|about\.html)$", re.IGNORECASE)
LICENSE_FILE_EXCLUDE = re.compile(r"^.*[.]class$", re.IGNORECASE)

_ABSOLUTE_URL = re.compile(r"^[a-z][a-z0-9+.-]*:(//|[^\s]*!/)", re.IGNORECASE)
_OUTSIDE_QUOTES = r'(?=(?:[^"]*"[^"]*")*[^"]*$)'
_COMMA = re.compile("," + _OUTSIDE_QUOTES)
_SEMICOLON = re.compile(";" + _OUTSIDE_QUOTES)


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        value = value[1:-1].strip()
    return value


def is_url(value: Optional[str]) -> bool:
    return bool(value) and bool(_ABSOLUTE_URL.match(value.strip()))


def is_license_file(path: str) -> bool:
    normalized = path.replace("\\", "/")
    return bool(LICENSE_FILE_INCLUDE.match(normalized)) and not LICENSE_FILE_EXCLUDE.match(normalized)


def parse_bundle_header(header: Optional[str]) -> list[RawSignal]:
    """Split a manifest ``Bundle-License`` value into bundle signals.

    Entries are comma separated; each is a license name or URL optionally
    followed by ``;link=<url>`` and other ``;attr=value`` clauses.
    """

    signals: list[RawSignal] = []
    if not header or not header.strip():
        return signals

    for entry in _COMMA.split(header):
        parts = [_unquote(part) for part in _SEMICOLON.split(entry)]
        if not parts or not parts[0]:
            continue
        name: Optional[str] = parts[0]
        urls: list[str] = []
        for attribute in parts[1:]:
            key, _, value = attribute.partition("=")
            if key.strip().lower() == "link" and _unquote(value):
                urls.append(_unquote(value))
        if is_url(name):
            urls.insert(0, name)
            name = None
        signals.append(RawSignal(SignalKind.BUNDLE, name=name, urls=tuple(dict.fromkeys(urls))))
    return signals


def license_file_signals(archive_url: Optional[str], paths: Iterable[str]) -> list[RawSignal]:
    """Scanned-file signals for in-archive paths that look like license files."""

    signals = []
    for path in paths:
        if not path or not is_license_file(path):
            continue
        if is_url(path):
            url = path
        elif archive_url:
            url = archive_entry_url(archive_url, path)
        else:
            url = Path(path).resolve().as_uri()
        signals.append(RawSignal(SignalKind.SCANNED, urls=(url,)))
    return signals


class SignalNormalizer:
    """Turn one raw signal into a license expression.

    Tries, in order: a registry name/alias lookup, a strict expression parse
    and URL resolution. Nothing raised below this layer reaches the caller.
    """

    def __init__(self, registry: KnownLicenseRegistry, url_resolver: UrlResolver):
        self.registry = registry
        self.url_resolver = url_resolver

    def normalize(self, signal: RawSignal) -> Expression:
        name = (signal.name or "").strip() or None
        urls = tuple(dict.fromkeys(url.strip() for url in signal.urls if url and url.strip()))
        if name and not urls and is_url(name):
            name, urls = None, (name,)

        if name:
            resolved = self.registry.resolve_name(name)
            if resolved is not None:
                return resolved
            parsed = self._parse_strict(name)
            if parsed is not None:
                return parsed

        texts: list[str] = []
        if urls:
            results = [self.url_resolver.resolve(url, name) for url in urls]
            combined = to_expression(results)
            if is_partially_identified(combined):
                return combined
            texts = [result.raw_text for result in results if isinstance(result, Unresolved) and result.has_text]

        logger.warning("Unable to resolve %s license signal: %s", signal.kind.value, signal.label)
        return Unresolved(raw_id=name, raw_text=texts[0] if texts else "", source_urls=urls)

    def _parse_strict(self, name: str) -> Optional[Expression]:
        try:
            parsed = parse_expression(name, self.registry)
        except ExpressionSyntaxError as exc:
            logger.debug("%r is not a license expression: %s", name, exc)
            return None
        return parsed if is_fully_identified(parsed) else None

    def bundle_signals(self, header: Optional[str]) -> list[RawSignal]:
        if not header or not header.strip():
            return []
        # a whole header that names one license is not split on its commas
        if self.registry.resolve_name(header.strip()) is not None:
            return [RawSignal(SignalKind.BUNDLE, name=header.strip())]
        return parse_bundle_header(header)

    def normalize_all(self, signals: Iterable[RawSignal]) -> list[Expression]:
        return [self.normalize(signal) for signal in signals]
