from __future__ import annotations

"""Combine per-signal expressions into one result per artifact."""

from typing import Iterable, Sequence

from .types_expression import (
    Expression,
    LicenseSet,
    Operator,
    OrLater,
    Unresolved,
    WithException,
    count_of,
    dedupe,
    empty_set,
    is_fully_identified,
    is_partially_identified,
    license_set,
    render,
)


def to_expression(expressions: Iterable[Expression]) -> Expression:
    """Fold candidates into one expression.

    A single candidate is returned unchanged; anything else becomes a sorted,
    de-duplicated ``OR`` set (``NONE`` when there is nothing to fold).
    """

    items = list(expressions)
    if len(items) == 1:
        return items[0]
    if not items:
        return empty_set()

    unique = dedupe(items)
    if len(unique) == 1:
        return unique[0]
    return license_set(Operator.OR, unique)


def sieve_key(expr: Expression) -> tuple:
    """Sort key ranking candidates from most to least trustworthy."""

    unresolved = isinstance(expr, Unresolved)
    return (
        unresolved and expr.is_url_only,
        unresolved and expr.has_text,
        unresolved,
        not is_fully_identified(expr),
        isinstance(expr, LicenseSet),
        -count_of(expr),
        not isinstance(expr, WithException),
        not isinstance(expr, OrLater),
        not is_partially_identified(expr),
        render(expr),
    )


def sieve_best(*candidates: Expression) -> Expression:
    return min(candidates, key=sieve_key)


def _fully_identified_group(group: Sequence[Expression]) -> bool:
    return bool(group) and all(is_fully_identified(expr) for expr in group)


def _size(group: Sequence[Expression]) -> int:
    return sum(count_of(expr) for expr in group)


def _select_pair(first: list[Expression], second: list[Expression]) -> list[Expression]:
    if _fully_identified_group(second) and _size(second) >= _size(first):
        return second
    if _fully_identified_group(first) and _size(first) >= _size(second):
        return first

    selected = []
    for index in range(max(len(first), len(second))):
        pair = [group[index] for group in (first, second) if index < len(group)]
        selected.append(sieve_best(*pair))
    return selected


def select_best(candidate_groups: Iterable[Iterable[Expression]]) -> list[Expression]:
    """Pick the most trustworthy candidates from independent signal groups.

    Groups are folded left to right. A later group wins outright when it is
    fully identified and names at least as many licenses (by leaf count) as
    what has been kept so far, an earlier group likewise; otherwise candidates at the same position are
    compared with :func:`sieve_key` and the better one is kept.
    """

    groups = [list(group) for group in candidate_groups]
    if not groups:
        return []
    best = groups[0]
    for group in groups[1:]:
        best = _select_pair(best, group)
    return best


def merge_groups(candidate_groups: Iterable[Iterable[Expression]]) -> Expression:
    return to_expression(select_best(candidate_groups))
