from __future__ import annotations

import enum
import logging

import aiohttp

from oauth_conformance.collaborators import FlowCapabilities
from oauth_conformance.config import OAuthProperties
from oauth_conformance.errors import UnexpectedStatus
from oauth_conformance.extractors import AuthorizeQuery, extract_authorization_code, extract_error
from oauth_conformance.models import (
    AccessTokenResponse,
    AuthorizationCodeDetails,
    AuthorizationCodeRequestOptions,
    Client,
    RedirectResponse,
    UserAccount,
)
from oauth_conformance.redirects import RedirectPolicy, RedirectWalker, capture
from oauth_conformance.session_store import SessionStore
from oauth_conformance.token import AccessTokenFetcher

logger = logging.getLogger(__name__)


class FlowState(str, enum.Enum):
    INITIATED = "initiated"
    LOGGING_IN = "logging_in"
    ERROR_AFTER_LOGIN = "error_after_login"
    CONSENT_PENDING = "consent_pending"
    ERRORED = "errored"
    COMPLETED = "completed"


class AuthorizationCodeFlow:
    """Drives the authorize → login → consent sequence as a scripted user agent.

    Grant-specific behaviour is injected: page interactions and account
    lifecycle come from ``capabilities``, the token exchange from
    ``token_fetcher``. A protocol error reported by the server is returned
    as the terminal response rather than raised.
    """

    def __init__(
        self,
        properties: OAuthProperties,
        sessions: SessionStore,
        capabilities: FlowCapabilities,
        token_fetcher: AccessTokenFetcher,
        *,
        policy: RedirectPolicy | None = None,
    ) -> None:
        self.properties = properties
        self.sessions = sessions
        self.capabilities = capabilities
        self.token_fetcher = token_fetcher
        self.policy = policy or RedirectPolicy()

    async def request_authorization_code(
        self,
        client: Client,
        user: UserAccount,
        options: AuthorizationCodeRequestOptions | None = None,
    ) -> RedirectResponse:
        options = options or AuthorizationCodeRequestOptions()
        session = self.sessions.get(user.username)
        walker = RedirectWalker(self.policy)

        state = FlowState.INITIATED
        query = AuthorizeQuery.for_client(client, options.scopes, options.extra_params)
        authorize_response = await self._open_authorize(session, query, walker)

        error = extract_error(authorize_response)
        if error:
            self._transition(state, FlowState.ERRORED, user, error=error)
            return authorize_response

        state = self._transition(state, FlowState.LOGGING_IN, user)
        login_response = await self.capabilities.login(authorize_response, user, session)
        login_redirect = await walker.follow(login_response, session)

        error = extract_error(login_redirect)
        if error:
            state = self._transition(state, FlowState.ERROR_AFTER_LOGIN, user)
            self._transition(state, FlowState.ERRORED, user, error=error)
            return login_redirect

        state = self._transition(state, FlowState.CONSENT_PENDING, user)
        consent_page = await walker.follow(login_redirect, session)
        terminal = await self.capabilities.consent(
            options.consent,
            consent_page,
            user,
            session,
            options.scopes,
        )

        error = extract_error(terminal)
        self._transition(state, FlowState.ERRORED if error else FlowState.COMPLETED, user, error=error)
        return terminal

    async def fetch_authorization_code(
        self,
        client: Client,
        user: UserAccount,
        options: AuthorizationCodeRequestOptions | None = None,
    ) -> AuthorizationCodeDetails:
        options = options or AuthorizationCodeRequestOptions()
        response = await self.request_authorization_code(client, user, options)
        return AuthorizationCodeDetails(
            authorization_code=extract_authorization_code(response),
            scopes=tuple(options.scopes or ()),
        )

    async def fetch_access_token(self, client: Client, details: AuthorizationCodeDetails) -> AccessTokenResponse:
        return await self.token_fetcher.fetch_access_token(client, details)

    async def _open_authorize(
        self,
        session: aiohttp.ClientSession,
        query: AuthorizeQuery,
        walker: RedirectWalker,
    ) -> RedirectResponse:
        """Walk from the authorization endpoint to the login page.

        Stops early on a redirect carrying ``error``: the server rejected the
        request before login and the target belongs to the client.
        """
        url = self.properties.authorization_endpoint()
        logger.debug("Requesting authorization for client %s at %s", query.client_id, url)
        async with session.get(url, params=query.to_params(), allow_redirects=self.policy.follow_redirects) as resp:
            response = await capture(resp)
        if response.status >= 400:
            raise UnexpectedStatus(response.status, response.url)

        while response.is_redirect and not extract_error(response):
            response = await walker.follow(response, session)
        return response

    @staticmethod
    def _transition(
        current: FlowState,
        new: FlowState,
        user: UserAccount,
        *,
        error: str | None = None,
    ) -> FlowState:
        if error:
            logger.info("Flow for %s: %s -> %s (error=%s)", user.username, current.value, new.value, error)
        else:
            logger.debug("Flow for %s: %s -> %s", user.username, current.value, new.value)
        return new
