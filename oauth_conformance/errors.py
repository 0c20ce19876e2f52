from __future__ import annotations

from collections.abc import Iterable


class ConformanceError(Exception):
    """Base class for hard failures raised by the harness."""


class SessionNotFound(ConformanceError):
    def __init__(self, username: str) -> None:
        super().__init__(f"No session registered for user {username!r}")
        self.username = username


class SessionExists(ConformanceError):
    def __init__(self, username: str) -> None:
        super().__init__(f"A session is already registered for user {username!r}")
        self.username = username


class UnexpectedStatus(ConformanceError):
    """A hop returned a status the manual redirect policy does not accept."""

    def __init__(self, status: int | None, url: str, message: str | None = None) -> None:
        super().__init__(message or f"Unexpected status {status} from {url}")
        self.status = status
        self.url = url


class TooManyRedirects(UnexpectedStatus):
    def __init__(self, url: str, max_hops: int) -> None:
        super().__init__(None, url, f"Redirect chain exceeded {max_hops} hops at {url}")
        self.max_hops = max_hops


class MissingAuthorizationCode(ConformanceError):
    def __init__(self, location: str | None) -> None:
        super().__init__(f"Authorization code not returned in redirect url: {location}")
        self.location = location


class MissingAccessToken(ConformanceError):
    pass


class ScopeMismatch(ConformanceError):
    def __init__(self, expected: Iterable[str], actual: Iterable[str]) -> None:
        self.expected = tuple(expected)
        self.actual = tuple(actual)
        super().__init__(
            "Returned scopes do not match requested. "
            f"Actual: {', '.join(self.actual)}, expected: {', '.join(self.expected)}"
        )


class ExpectationFailed(ConformanceError):
    """A scenario assertion about the server's behaviour did not hold."""


class PluginError(ConformanceError):
    pass
