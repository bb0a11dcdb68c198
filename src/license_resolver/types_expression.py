from __future__ import annotations

"""License expression tree.

Every expression is an immutable node. Branch nodes (``LicenseSet``,
``WithException`` and ``OrLater``) expose their children through
``children_of``; ``Single`` and ``Unresolved`` are the only leaves.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Union


NONE_RENDERING = "NONE"
NOASSERTION = "NOASSERTION"


class Operator(str, Enum):
    AND = "AND"
    OR = "OR"


@dataclass(frozen=True)
class Single:
    id: str

    def __str__(self) -> str:
        return render(self)


@dataclass(frozen=True)
class LicenseSet:
    operator: Operator
    members: tuple["Expression", ...] = ()

    def __str__(self) -> str:
        return render(self)


@dataclass(frozen=True)
class WithException:
    license: "Expression"
    exception_id: str

    def __str__(self) -> str:
        return render(self)


@dataclass(frozen=True)
class OrLater:
    license: "Expression"

    def __str__(self) -> str:
        return render(self)


@dataclass(frozen=True)
class Unresolved:
    """A signal that could not be mapped to a canonical identifier."""

    raw_id: str | None = None
    raw_text: str = ""
    source_urls: tuple[str, ...] = ()

    @property
    def has_text(self) -> bool:
        return bool(self.raw_text and self.raw_text.strip())

    @property
    def is_url_only(self) -> bool:
        return not self.has_text and bool(self.source_urls)

    def with_hint(self, raw_id: str | None, url: str | None = None) -> "Unresolved":
        urls = self.source_urls
        if url and url not in urls:
            urls = urls + (url,)
        return Unresolved(raw_id=raw_id or self.raw_id, raw_text=self.raw_text, source_urls=urls)

    def merged_with(self, other: "Unresolved") -> "Unresolved":
        return Unresolved(
            raw_id=self.raw_id or other.raw_id,
            raw_text=self.raw_text or other.raw_text,
            source_urls=tuple(dict.fromkeys(self.source_urls + other.source_urls)),
        )

    def __str__(self) -> str:
        return render(self)


Expression = Union[Single, LicenseSet, WithException, OrLater, Unresolved]
LEAF_TYPES = (Single, Unresolved)


def children_of(expr: Expression) -> tuple[Expression, ...]:
    if isinstance(expr, LicenseSet):
        return expr.members
    if isinstance(expr, (WithException, OrLater)):
        return (expr.license,)
    return ()


def walk(expr: Expression) -> Iterator[Expression]:
    """Yield ``expr`` and every node below it, depth first."""

    stack = [expr]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(children_of(node)))


def leaves(expr: Expression) -> Iterator[Expression]:
    return (node for node in walk(expr) if isinstance(node, LEAF_TYPES))


def is_fully_identified(expr: Expression | None) -> bool:
    if expr is None:
        return False
    found = False
    for leaf in leaves(expr):
        if not isinstance(leaf, Single):
            return False
        found = True
    return found


def is_partially_identified(expr: Expression | None) -> bool:
    if expr is None:
        return False
    return any(isinstance(leaf, Single) for leaf in leaves(expr))


def count_of(expr: Expression) -> int:
    return sum(1 for _ in leaves(expr))


def render(expr: Expression) -> str:
    if isinstance(expr, Single):
        return expr.id
    if isinstance(expr, LicenseSet):
        if not expr.members:
            return NONE_RENDERING
        joiner = f" {expr.operator.value} "
        return "(" + joiner.join(sorted(render(member) for member in expr.members)) + ")"
    if isinstance(expr, WithException):
        return f"{render(expr.license)} WITH {expr.exception_id}"
    if isinstance(expr, OrLater):
        return f"{render(expr.license)}+"
    if isinstance(expr, Unresolved):
        if expr.raw_id:
            return expr.raw_id
        if expr.source_urls:
            return expr.source_urls[0]
        return NOASSERTION
    raise TypeError(f"Not a license expression: {expr!r}")


def license_set(operator: Operator | str, members: Iterable[Expression]) -> LicenseSet:
    """Build a set, flattening same-operator children and dropping duplicates."""

    operator = Operator(operator)
    flat: list[Expression] = []
    for member in members:
        if isinstance(member, LicenseSet) and member.operator is operator:
            flat.extend(member.members)
        else:
            flat.append(member)

    return LicenseSet(operator, tuple(sorted(dedupe(flat), key=render)))


def dedupe(expressions: Iterable[Expression]) -> list[Expression]:
    """Drop expressions that render alike, keeping the first of each.

    Unresolved leaves that collapse into one keep the source URLs of both.
    """

    unique: dict[str, Expression] = {}
    for expr in expressions:
        key = render(expr)
        kept = unique.get(key)
        if kept is None:
            unique[key] = expr
        elif isinstance(kept, Unresolved) and isinstance(expr, Unresolved):
            unique[key] = kept.merged_with(expr)
    return list(unique.values())


def empty_set() -> LicenseSet:
    return LicenseSet(Operator.OR, ())
