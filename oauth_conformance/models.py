from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from multidict import CIMultiDict, CIMultiDictProxy, MultiDict, MultiDictProxy
from yarl import URL


@dataclass(frozen=True)
class Client:
    """An OAuth client registered with the server under test."""

    client_id: str
    redirect_uri: str
    scopes: tuple[str, ...] = ()
    client_secret: str | None = None

    def with_redirect_uri(self, redirect_uri: str) -> Client:
        return replace(self, redirect_uri=redirect_uri)


@dataclass(frozen=True)
class UserAccount:
    username: str
    password: str
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthorizationCodeRequestOptions:
    scopes: tuple[str, ...] | None = None
    should_consent: bool | None = None
    extra_params: Mapping[str, str] = field(default_factory=dict)

    @property
    def consent(self) -> bool:
        return True if self.should_consent is None else self.should_consent


@dataclass(frozen=True)
class AuthorizationCodeDetails:
    authorization_code: str
    scopes: tuple[str, ...] = ()


@dataclass(frozen=True)
class AccessTokenDetails:
    access_token: str
    scopes: tuple[str, ...] = ()
    token_type: str | None = None
    expires_in: int | None = None
    refresh_token: str | None = None


@dataclass(frozen=True)
class AccessTokenResponse:
    """Result of a token exchange.

    A protocol-level failure (``error`` set) is a normal result, not an
    exception, so scenarios can assert on the error code directly.
    """

    status: int
    access_token_details: AccessTokenDetails | None = None
    error: str | None = None
    error_description: str | None = None
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RedirectResponse:
    """A fully read HTTP response from one hop of the flow.

    ``url`` is the URL that was requested; ``location`` is the redirect
    target, if any. The target's query string is the only channel the
    server uses to report success (``code``) or failure (``error``).
    """

    status: int
    url: str
    headers: CIMultiDictProxy[str] = field(default_factory=lambda: CIMultiDictProxy(CIMultiDict()))
    body: str = ""

    @property
    def location(self) -> str | None:
        return self.headers.get("Location")

    @property
    def is_redirect(self) -> bool:
        return self.location is not None

    @property
    def query(self) -> MultiDictProxy[str]:
        if not self.location:
            return MultiDictProxy(MultiDict())
        return URL(self.location).query

    @property
    def error(self) -> str | None:
        return self.query.get("error") or None
