from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, Optional

import requests  # type: ignore[import-untyped]

from .catalog import DEFAULT_CATALOG, ResolutionCatalog
from .fetching import HttpFetcher
from .merger import select_best, to_expression
from .normalizer import SignalNormalizer, license_file_signals
from .registry import KnownLicenseRegistry
from .tables import load_tables
from .text_matcher import TextMatcher
from .types_expression import Expression, Unresolved, count_of, dedupe, is_fully_identified, render
from .types_settings import ResolverSettings
from .types_signals import ArtifactSignals
from .url_resolver import UrlResolver


logger = logging.getLogger(__name__)


def _describe(expressions: Iterable[Expression]) -> str:
    return "[" + ", ".join(render(expr) for expr in expressions) + "]"


class LicenseEngine:
    """Explicitly wired resolution context.

    Holds one registry, text matcher, URL resolver, normalizer and catalog;
    all of their caches live as long as the engine.
    """

    def __init__(
        self,
        registry: KnownLicenseRegistry,
        matcher: TextMatcher,
        url_resolver: UrlResolver,
        normalizer: SignalNormalizer,
        catalog: ResolutionCatalog,
        settings: ResolverSettings | None = None,
    ):
        self.registry = registry
        self.matcher = matcher
        self.url_resolver = url_resolver
        self.normalizer = normalizer
        self.catalog = catalog
        self.settings = settings or ResolverSettings()

    @classmethod
    def from_settings(
        cls,
        settings: ResolverSettings | None = None,
        session: requests.Session | None = None,
        registry: KnownLicenseRegistry | None = None,
        catalog_defaults: Optional[Path] = DEFAULT_CATALOG,
        register_atexit: bool = True,
    ) -> "LicenseEngine":
        settings = settings or ResolverSettings.from_env()
        if registry is None:
            tables = load_tables(settings.alias_files, settings.seed_files, settings.redirect_files)
            registry = KnownLicenseRegistry.load(tables)
        matcher = TextMatcher(registry, threshold=settings.match_threshold)
        fetcher = HttpFetcher(settings, session=session)
        url_resolver = UrlResolver(registry, matcher, fetcher, registry.tables, settings)
        normalizer = SignalNormalizer(registry, url_resolver)
        catalog = ResolutionCatalog(
            settings.catalog_path,
            registry,
            defaults_path=catalog_defaults,
            flush_every=settings.flush_every,
            wait_timeout=settings.wait_timeout,
            register_atexit=register_atexit,
        )
        return cls(registry, matcher, url_resolver, normalizer, catalog, settings)

    @property
    def fetcher(self) -> HttpFetcher:
        return self.url_resolver.fetcher

    def resolve(self, artifact: ArtifactSignals) -> Expression:
        return self.catalog.get(artifact.key, lambda: self.compute(artifact))

    def compute(self, artifact: ArtifactSignals) -> Expression:
        """Resolve an artifact from its signals, bypassing the catalog."""

        declared = self.normalizer.normalize_all(artifact.declared)
        bundle = self.normalizer.normalize_all(self.normalizer.bundle_signals(artifact.bundle_header))
        specified = declared or bundle

        scanned = self.normalizer.normalize_all(
            license_file_signals(artifact.archive_url, artifact.license_files)
        )
        found = dedupe(
            expr for expr in [*bundle, *scanned] if count_of(expr) > 0 and is_fully_identified(expr)
        )

        candidates = select_best([specified, found])
        result = to_expression(candidates)

        if not candidates:
            logger.warning("%s: No license(s) specified or found", artifact.key)
        elif not is_fully_identified(result):
            logger.warning(
                "%s: license not fully identified\n"
                "  declared: %s\n  bundle: %s\n  scanned: %s\n  found: %s\n  merged: %s",
                artifact.key,
                _describe(declared),
                _describe(bundle),
                _describe(scanned),
                _describe(found),
                render(result),
            )
        return result

    def resolve_all(self, artifacts: Iterable[ArtifactSignals]) -> dict[str, Expression]:
        artifacts = list(artifacts)
        results: dict[str, Expression] = {}
        with ThreadPoolExecutor(max_workers=max(1, self.settings.workers)) as pool:
            futures = [(artifact, pool.submit(self.resolve, artifact)) for artifact in artifacts]
            for artifact, future in futures:
                try:
                    results[artifact.key] = future.result()
                except Exception as exc:
                    logger.warning("%s: resolution failed: %s", artifact.key, exc)
                    results[artifact.key] = Unresolved(raw_id=artifact.key)
        return results

    def close(self) -> None:
        self.catalog.close()
        logger.debug(
            "Engine closed: %d catalog entries, %d cached URLs, %d cached texts, %d known URLs",
            len(self.catalog),
            len(self.url_resolver.cache),
            len(self.matcher.cache),
            self.registry.url_count(),
        )

    def __enter__(self) -> "LicenseEngine":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
