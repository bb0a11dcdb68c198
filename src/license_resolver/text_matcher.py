from __future__ import annotations

import hashlib
import logging
from typing import Optional

import spdx_matcher

from .keyed_store import KeyedStore
from .registry import KnownLicenseRegistry


logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.9
# share of the text a template match has to account for to count as the standard text
STANDARD_COVERAGE = 0.9
# fuzzy hits scoring within this distance of the best hit are reported as alternatives
CANDIDATE_BAND = 0.02


def text_key(text: str | None) -> str:
    """Memo key for a license text: digest of its SPDX-normalized form."""

    normalized = spdx_matcher.normalize(text or "", remove_sections=spdx_matcher.REMOVE_ALL)
    if not normalized.strip():
        return ""
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


class TextMatcher:
    """Matches license text against the SPDX license list.

    Texts are first checked against the SPDX templates; when no template
    matches, the closest texts above ``threshold`` are taken instead. Results
    are memoized per normalized text for the life of the matcher.
    """

    def __init__(
        self,
        registry: KnownLicenseRegistry,
        threshold: float = DEFAULT_THRESHOLD,
        cache: Optional[KeyedStore] = None,
    ):
        self.registry = registry
        self.threshold = threshold
        self.cache: KeyedStore = cache or KeyedStore("text-matches")

    def match_ids(self, text: str | None) -> list[str]:
        ids, _ = self._analysis(text)
        return list(ids)

    def is_standard_text(self, license_id: str, text: str | None) -> bool:
        entry = self.registry.lookup(license_id)
        if entry is None:
            return False
        ids, coverage = self._analysis(text)
        return entry.id in ids and coverage >= STANDARD_COVERAGE

    def _analysis(self, text: str | None) -> tuple[tuple[str, ...], float]:
        key = text_key(text)
        if not key:
            return (), 0.0
        return self.cache.get_or_compute(key, lambda: self._analyse(text))

    def _analyse(self, text: str) -> tuple[tuple[str, ...], float]:
        try:
            return self._search(text)
        except Exception as exc:
            logger.warning("License text matching failed: %s", exc)
            return (), 0.0

    def _search(self, text: str) -> tuple[tuple[str, ...], float]:
        analysis, coverage = spdx_matcher.analyse_license_text(text)
        ids = tuple(analysis.get("licenses", {}))
        if ids:
            logger.debug("Text matched template %s (coverage %.2f)", ", ".join(ids), coverage)
            return ids, coverage

        hits = [hit for hit in spdx_matcher.fuzzy_license_text(text, self.threshold) if hit["type"] == "license"]
        if not hits:
            return (), 0.0
        best = max(hit["score"] for hit in hits)
        ranked = sorted(hits, key=lambda hit: (-hit["score"], hit["id"]))
        ids = tuple(dict.fromkeys(hit["id"] for hit in ranked if best - hit["score"] <= CANDIDATE_BAND))
        logger.debug("Text fuzzily matched %s (best score %.3f)", ", ".join(ids), best)
        # a fuzzy hit is never the standard text
        return ids, 0.0
