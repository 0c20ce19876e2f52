"""Interfaces of the collaborators a plugin supplies to the harness."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

import aiohttp

from oauth_conformance.models import Client, RedirectResponse, UserAccount


class ClientGenerator(Protocol):
    async def __call__(self, name: str, redirect_uri: str, scopes: Sequence[str]) -> Client: ...


class ClientRemover(Protocol):
    async def __call__(self, name: str) -> None: ...


class AccountGenerator(Protocol):
    async def __call__(self) -> UserAccount: ...


class AccountRegistrar(Protocol):
    async def __call__(self, user: UserAccount) -> None: ...


class AccountRemover(Protocol):
    async def __call__(self, username: str) -> None: ...


class LoginStrategy(Protocol):
    """Submits the user's credentials from the page the authorize request landed on."""

    async def __call__(
        self,
        authorize_response: RedirectResponse,
        user: UserAccount,
        session: aiohttp.ClientSession,
    ) -> RedirectResponse: ...


class ConsentStrategy(Protocol):
    """Approves or denies the consent page; returns the terminal response."""

    async def __call__(
        self,
        should_consent: bool,
        consent_response: RedirectResponse,
        user: UserAccount,
        session: aiohttp.ClientSession,
        requested_scopes: Sequence[str] | None,
    ) -> RedirectResponse: ...


@dataclass(frozen=True)
class FlowCapabilities:
    login: LoginStrategy
    consent: ConsentStrategy
    register_account: AccountRegistrar
    remove_account: AccountRemover
    account_generator: AccountGenerator
