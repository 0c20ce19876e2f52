"""Shared authorization code grant scenarios.

Every scenario owns its client and user: both are registered on entry and
removed on every exit path, together with the user's HTTP session.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass

import aiohttp
from yarl import URL

from oauth_conformance.collaborators import ClientGenerator, ClientRemover
from oauth_conformance.config import DEFAULT_REDIRECT_URI
from oauth_conformance.engine import AuthorizationCodeFlow
from oauth_conformance.errors import ConformanceError
from oauth_conformance.expectations import (
    expect_error_response,
    expect_redirect_to_include_query,
    expect_to_fail_with_status,
    fail,
)
from oauth_conformance.models import AuthorizationCodeRequestOptions, Client, UserAccount
from oauth_conformance.scopes import verify_scopes
from oauth_conformance.token import require_access_token

logger = logging.getLogger(__name__)


class Outcome(str, enum.Enum):
    PASSED = "passed"
    FAILED = "failed"
    ERROR = "error"


@dataclass(frozen=True)
class Scenario:
    name: str
    run: Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class ScenarioResult:
    name: str
    outcome: Outcome
    detail: str | None = None
    duration_seconds: float = 0.0

    @property
    def passed(self) -> bool:
        return self.outcome is Outcome.PASSED


class ConformanceSuite:
    def __init__(
        self,
        flow: AuthorizationCodeFlow,
        client_generator: ClientGenerator,
        remove_client: ClientRemover,
        *,
        redirect_uri: str = DEFAULT_REDIRECT_URI,
    ) -> None:
        self.flow = flow
        self.client_generator = client_generator
        self.remove_client = remove_client
        self.redirect_uri = redirect_uri

    @property
    def available_scopes(self) -> list[str]:
        return self.flow.properties.available_scopes()

    @asynccontextmanager
    async def registered_client(self) -> AsyncIterator[Client]:
        name = str(uuid.uuid4())
        client = await self.client_generator(name, self.redirect_uri, self.available_scopes)
        try:
            yield client
        finally:
            await self.remove_client(name)

    @asynccontextmanager
    async def registered_user(self) -> AsyncIterator[UserAccount]:
        capabilities = self.flow.capabilities
        user = await capabilities.account_generator()
        await capabilities.register_account(user)
        try:
            async with self.flow.sessions.scoped(user.username):
                yield user
        finally:
            await capabilities.remove_account(user.username)

    def scenarios(self) -> list[Scenario]:
        scenarios = [Scenario("valid request with all scopes", self.all_scopes)]
        for scope in self.available_scopes:
            scenarios.append(Scenario(f"valid request with scope: {scope}", self._single_scope(scope)))
        scenarios += [
            Scenario("fails if authorization code is reused", self.code_reuse),
            Scenario("fails if scope is invalid", self.invalid_scope),
            Scenario("fails if user credentials are invalid", self.invalid_credentials),
            Scenario("fails if redirect URI port is incorrect", self.redirect_uri_port_mismatch),
            Scenario("fails if redirect URI is incorrect", self.redirect_uri_unregistered),
            Scenario("fails if user does not consent", self.consent_denied),
        ]
        return scenarios

    async def run(self, only: Iterable[str] | None = None, *, concurrency: int = 1) -> list[ScenarioResult]:
        selected = self.scenarios()
        if only:
            needles = [needle.lower() for needle in only]
            selected = [s for s in selected if any(needle in s.name.lower() for needle in needles)]

        semaphore = asyncio.Semaphore(max(concurrency, 1))

        async def guarded(scenario: Scenario) -> ScenarioResult:
            async with semaphore:
                return await run_scenario(scenario)

        return list(await asyncio.gather(*(guarded(scenario) for scenario in selected)))

    # Scenarios

    async def all_scopes(self) -> None:
        await self._fetch_code_and_token(self.available_scopes)

    def _single_scope(self, scope: str) -> Callable[[], Awaitable[None]]:
        async def single_scope() -> None:
            await self._fetch_code_and_token([scope])

        return single_scope

    async def _fetch_code_and_token(self, scopes: Sequence[str]) -> None:
        async with self.registered_client() as client, self.registered_user() as user:
            details = await self.flow.fetch_authorization_code(
                client, user, AuthorizationCodeRequestOptions(scopes=tuple(scopes))
            )
            verify_scopes(scopes, details.scopes)

            token = require_access_token(await self.flow.fetch_access_token(client, details))
            verify_scopes(scopes, token.scopes)

    async def code_reuse(self) -> None:
        async with self.registered_client() as client, self.registered_user() as user:
            details = await self.flow.fetch_authorization_code(
                client, user, AuthorizationCodeRequestOptions(scopes=tuple(self.available_scopes))
            )
            require_access_token(await self.flow.fetch_access_token(client, details))

            await expect_error_response("invalid_grant", lambda: self.flow.fetch_access_token(client, details))

    async def invalid_scope(self) -> None:
        async with self.registered_client() as client, self.registered_user() as user:
            await expect_redirect_to_include_query(
                self.redirect_uri,
                {"error": "invalid_scope"},
                lambda: self.flow.request_authorization_code(
                    client, user, AuthorizationCodeRequestOptions(scopes=("invalid-scope",))
                ),
            )

    async def invalid_credentials(self) -> None:
        unknown = UserAccount(username=f"unknown-{uuid.uuid4().hex}", password="bar")
        async with self.registered_client() as client, self.flow.sessions.scoped(unknown.username):
            try:
                response = await self.flow.request_authorization_code(
                    client, unknown, AuthorizationCodeRequestOptions(scopes=tuple(self.available_scopes))
                )
            except (ConformanceError, aiohttp.ClientError) as exc:
                logger.debug("Flow with invalid credentials failed as expected: %s", exc)
                return
        if response.query.get("code"):
            fail("Expected to fail with incorrect credentials, but an authorization code was issued")

    async def redirect_uri_port_mismatch(self) -> None:
        async with self.registered_client() as client, self.registered_user() as user:
            wrong_port = str(URL(client.redirect_uri).with_port(5000))
            await expect_to_fail_with_status(
                400,
                lambda: self.flow.request_authorization_code(
                    client.with_redirect_uri(wrong_port),
                    user,
                    AuthorizationCodeRequestOptions(scopes=tuple(self.available_scopes)),
                ),
            )

    async def redirect_uri_unregistered(self) -> None:
        async with self.registered_client() as client, self.registered_user() as user:
            await expect_to_fail_with_status(
                400,
                lambda: self.flow.request_authorization_code(
                    client.with_redirect_uri("http://some-incorrect-uri.com"),
                    user,
                    AuthorizationCodeRequestOptions(scopes=tuple(self.available_scopes)),
                ),
            )

    async def consent_denied(self) -> None:
        async with self.registered_client() as client, self.registered_user() as user:
            await expect_redirect_to_include_query(
                self.redirect_uri,
                {"error": "access_denied"},
                lambda: self.flow.request_authorization_code(
                    client,
                    user,
                    AuthorizationCodeRequestOptions(scopes=tuple(self.available_scopes), should_consent=False),
                ),
            )


async def run_scenario(scenario: Scenario) -> ScenarioResult:
    started = time.monotonic()
    try:
        await scenario.run()
    except ConformanceError as exc:
        outcome, detail = Outcome.FAILED, str(exc)
        logger.warning("Scenario %r failed: %s", scenario.name, exc)
    except Exception as exc:  # pylint: disable=broad-except
        outcome, detail = Outcome.ERROR, f"{type(exc).__name__}: {exc}"
        logger.exception("Scenario %r raised an unexpected error", scenario.name)
    else:
        outcome, detail = Outcome.PASSED, None
        logger.info("Scenario %r passed", scenario.name)
    return ScenarioResult(scenario.name, outcome, detail, time.monotonic() - started)
