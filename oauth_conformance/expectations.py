"""Assertions that scenarios make about the server under test."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, NoReturn, TypeVar

from oauth_conformance.errors import ExpectationFailed, UnexpectedStatus
from oauth_conformance.models import AccessTokenResponse, RedirectResponse

T = TypeVar("T")


def fail(message: str) -> NoReturn:
    raise ExpectationFailed(message)


async def expect_redirect_to_include_query(
    redirect_uri: str,
    expected_query: Mapping[str, str],
    call: Callable[[], Awaitable[RedirectResponse]],
) -> RedirectResponse:
    """The call must end in a redirect to ``redirect_uri`` carrying ``expected_query``."""
    response = await call()
    location = response.location
    if not location:
        fail(f"Expected a redirect to {redirect_uri}, got status {response.status} from {response.url}")
    if not location.startswith(redirect_uri):
        fail(f"Expected a redirect to {redirect_uri}, got {location}")

    query = response.query
    for key, value in expected_query.items():
        if query.get(key) != value:
            fail(f"Expected {key}={value} in redirect query, got {key}={query.get(key)!r} ({location})")
    return response


async def expect_error_response(
    expected_error: str,
    call: Callable[[], Awaitable[AccessTokenResponse | RedirectResponse]],
) -> Any:
    """The call must return a response whose ``error`` equals ``expected_error``."""
    response = await call()
    if response.error != expected_error:
        fail(f"Expected error {expected_error!r}, got {response.error!r}")
    return response


async def expect_to_fail_with_status(status: int, call: Callable[[], Awaitable[T]]) -> UnexpectedStatus:
    try:
        await call()
    except UnexpectedStatus as exc:
        if exc.status != status:
            fail(f"Expected to fail with status {status}, failed with {exc.status}: {exc}")
        return exc
    raise ExpectationFailed(f"Expected to fail with status {status}")
