from __future__ import annotations

from collections.abc import Iterable

from oauth_conformance.errors import ScopeMismatch


def missing_scopes(expected: Iterable[str], actual: Iterable[str]) -> list[str]:
    granted = set(actual)
    return [scope for scope in expected if scope not in granted]


def verify_scopes(expected: Iterable[str], actual: Iterable[str]) -> None:
    """Fail if any requested scope was not granted.

    Extra scopes in ``actual`` are accepted: a server may grant more than was
    asked for.
    """
    expected = list(expected)
    actual = list(actual)
    if missing_scopes(expected, actual):
        raise ScopeMismatch(expected, actual)
