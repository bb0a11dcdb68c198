from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Optional

from license_expression import AND, OR, ExpressionError, LicenseSymbol, LicenseWithExceptionSymbol, Licensing

from .errors import ExpressionSyntaxError
from .types_expression import (
    Expression,
    Operator,
    OrLater,
    Single,
    Unresolved,
    WithException,
    license_set,
)

if TYPE_CHECKING:  # pragma: no cover
    from .registry import KnownLicenseRegistry


# syntax only: symbols are mapped through the registry afterwards
_licensing = Licensing()
_parse_lock = threading.Lock()


def parse_expression(text: str | None, registry: "KnownLicenseRegistry") -> Optional[Expression]:
    """Parse an SPDX-style expression string into a license expression.

    ``AND``/``OR``/``WITH`` and parentheses are honoured; every symbol is
    canonicalized through ``registry``. Unknown symbols become ``Unresolved``
    leaves. Returns ``None`` for blank input and raises
    :class:`ExpressionSyntaxError` for malformed input.
    """

    if text is None or not text.strip():
        return None
    try:
        with _parse_lock:
            parsed = _licensing.parse(text.strip())
    except ExpressionError as exc:
        raise ExpressionSyntaxError(f"{text!r}: {exc}") from exc
    if parsed is None:
        return None
    return _convert(parsed, registry)


def _convert(node, registry: "KnownLicenseRegistry") -> Expression:
    if isinstance(node, LicenseWithExceptionSymbol):
        license = _convert_symbol(node.license_symbol.key, registry)
        exception_id = registry.lookup_exception(node.exception_symbol.key)
        if exception_id is None:
            return Unresolved(raw_id=f"{node.license_symbol.key} WITH {node.exception_symbol.key}")
        return WithException(license, exception_id)
    if isinstance(node, LicenseSymbol):
        return _convert_symbol(node.key, registry)
    if isinstance(node, AND):
        return _combine(Operator.AND, [_convert(arg, registry) for arg in node.args])
    if isinstance(node, OR):
        return _combine(Operator.OR, [_convert(arg, registry) for arg in node.args])
    raise ExpressionSyntaxError(f"Unsupported expression node: {node!r}")


def _convert_symbol(key: str, registry: "KnownLicenseRegistry") -> Expression:
    resolved = registry.resolve_name(key)
    if resolved is not None:
        return resolved
    if key.endswith("+") and len(key) > 1:
        base = registry.lookup(key[:-1])
        if base is not None:
            return OrLater(Single(base.id))
    return Unresolved(raw_id=key)


def _combine(operator: Operator, members: list[Expression]) -> Expression:
    combined = license_set(operator, members)
    if len(combined.members) == 1:
        return combined.members[0]
    return combined
