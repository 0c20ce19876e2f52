from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import aiohttp
from pydantic import AnyHttpUrl

from oauth_conformance.errors import MissingAccessToken, UnexpectedStatus
from oauth_conformance.models import (
    AccessTokenDetails,
    AccessTokenResponse,
    AuthorizationCodeDetails,
    Client,
)

logger = logging.getLogger(__name__)


class AccessTokenFetcher(ABC):
    """Exchanges an authorization code for an access token.

    Each grant flavour supplies its own subclass; the flow engine only relies
    on a fresh code yielding a token and a consumed code yielding an
    ``invalid_grant`` error response.
    """

    @abstractmethod
    async def fetch_access_token(
        self,
        client: Client,
        details: AuthorizationCodeDetails,
    ) -> AccessTokenResponse:
        pass

    async def close(self) -> None:
        return None


class TokenEndpointFetcher(AccessTokenFetcher):
    """Standard ``authorization_code`` token request against a token endpoint."""

    def __init__(
        self,
        token_url: AnyHttpUrl | str,
        *,
        timeout: float = 20.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._token_url = str(token_url)
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def close(self) -> None:
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def fetch_access_token(
        self,
        client: Client,
        details: AuthorizationCodeDetails,
    ) -> AccessTokenResponse:
        data: dict[str, Any] = {
            "grant_type": "authorization_code",
            "code": details.authorization_code,
            "redirect_uri": client.redirect_uri,
            "client_id": client.client_id,
        }
        auth = aiohttp.BasicAuth(client.client_id, client.client_secret) if client.client_secret else None

        logger.debug("Exchanging authorization code at %s for client %s", self._token_url, client.client_id)
        async with self._get_session().post(self._token_url, data=data, auth=auth) as response:
            status = response.status
            try:
                payload = await response.json(content_type=None)
            except ValueError:
                payload = None
            if not isinstance(payload, dict):
                text = await response.text()
                raise UnexpectedStatus(status, self._token_url, f"Token endpoint returned a non-JSON body: {status} {text}")

        if status == 200:
            return AccessTokenResponse(
                status=status,
                access_token_details=_parse_token_details(payload, details),
                payload=payload,
            )
        if 400 <= status < 500 and payload.get("error"):
            logger.debug("Token endpoint returned error %s", payload["error"])
            return AccessTokenResponse(
                status=status,
                error=str(payload["error"]),
                error_description=payload.get("error_description"),
                payload=payload,
            )
        raise UnexpectedStatus(status, self._token_url)


def _parse_token_details(payload: dict[str, Any], details: AuthorizationCodeDetails) -> AccessTokenDetails:
    scope = payload.get("scope")
    # RFC 6749 section 5.1: an omitted scope means the requested scope was granted
    scopes = tuple(str(scope).split()) if scope is not None else details.scopes

    expires_in = payload.get("expires_in")
    try:
        expires_in = int(expires_in) if expires_in is not None else None
    except (TypeError, ValueError):
        expires_in = None

    return AccessTokenDetails(
        access_token=str(payload.get("access_token") or ""),
        scopes=scopes,
        token_type=payload.get("token_type"),
        expires_in=expires_in,
        refresh_token=payload.get("refresh_token"),
    )


def require_access_token(response: AccessTokenResponse) -> AccessTokenDetails:
    details = response.access_token_details
    if details is None or not details.access_token:
        reason = f" (error: {response.error})" if response.error else ""
        raise MissingAccessToken(f"Access token was not returned or was empty{reason}")
    return details
