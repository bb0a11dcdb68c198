from __future__ import annotations

"""Shared data structures for license resolution.

The definitions live in domain-focused modules; this module re-exports them
so callers have one stable import path.
"""

from .types_expression import (
    NOASSERTION,
    NONE_RENDERING,
    Expression,
    LicenseSet,
    Operator,
    OrLater,
    Single,
    Unresolved,
    WithException,
    children_of,
    count_of,
    dedupe,
    empty_set,
    is_fully_identified,
    is_partially_identified,
    leaves,
    license_set,
    render,
    walk,
)
from .types_report import Resolution, ResolutionReport
from .types_settings import ResolverSettings
from .types_signals import ArtifactSignals, RawSignal, SignalKind, artifact_key

__all__ = [
    "NOASSERTION",
    "NONE_RENDERING",
    "ArtifactSignals",
    "Expression",
    "LicenseSet",
    "Operator",
    "OrLater",
    "RawSignal",
    "Resolution",
    "ResolutionReport",
    "ResolverSettings",
    "SignalKind",
    "Single",
    "Unresolved",
    "WithException",
    "artifact_key",
    "children_of",
    "count_of",
    "dedupe",
    "empty_set",
    "is_fully_identified",
    "is_partially_identified",
    "leaves",
    "license_set",
    "render",
    "walk",
]
