from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime

from .types_expression import (
    Expression,
    Unresolved,
    count_of,
    is_fully_identified,
    is_partially_identified,
    leaves,
    render,
)
from .types_settings import ResolverSettings


@dataclass
class Resolution:
    key: str
    expression: Expression

    @property
    def license(self) -> str:
        return render(self.expression)

    @property
    def fully_identified(self) -> bool:
        return is_fully_identified(self.expression)

    @property
    def partially_identified(self) -> bool:
        return is_partially_identified(self.expression)

    @property
    def unresolved_sources(self) -> list[str]:
        sources: list[str] = []
        for leaf in leaves(self.expression):
            if isinstance(leaf, Unresolved):
                sources.extend(url for url in leaf.source_urls if url not in sources)
        return sources


@dataclass
class ResolutionReport:
    resolutions: list[Resolution]
    generated_at: datetime
    settings: ResolverSettings = field(default_factory=ResolverSettings)

    @property
    def unresolved(self) -> list[Resolution]:
        return [resolution for resolution in self.resolutions if not resolution.fully_identified]

    @property
    def by_license(self) -> list[tuple[str, list[str]]]:
        """Artifact keys grouped by rendered license, widest grants first."""

        groups: dict[str, list[str]] = defaultdict(list)
        counts: dict[str, int] = {}
        for resolution in self.resolutions:
            groups[resolution.license].append(resolution.key)
            counts[resolution.license] = count_of(resolution.expression)
        return sorted(
            ((license, sorted(keys)) for license, keys in groups.items()),
            key=lambda item: (-counts[item[0]], item[0]),
        )
