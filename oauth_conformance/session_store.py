from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiohttp

from oauth_conformance.errors import SessionExists, SessionNotFound

logger = logging.getLogger(__name__)


class SessionStore:
    """Cookie-bearing HTTP sessions, one per test user.

    Each session owns its cookie jar, so the server under test sees every
    user as a separate browser. A session lives exactly as long as the
    user's registration.
    """

    def __init__(self, *, timeout: float = 20.0) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._sessions: dict[str, aiohttp.ClientSession] = {}

    def __contains__(self, username: str) -> bool:
        return username in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    async def create(self, username: str) -> aiohttp.ClientSession:
        if username in self._sessions:
            raise SessionExists(username)
        # unsafe=True keeps cookies set by IP-addressed hosts (local test servers)
        session = aiohttp.ClientSession(
            cookie_jar=aiohttp.CookieJar(unsafe=True),
            timeout=self._timeout,
        )
        self._sessions[username] = session
        logger.debug("Created session for %s", username)
        return session

    def get(self, username: str) -> aiohttp.ClientSession:
        try:
            return self._sessions[username]
        except KeyError:
            raise SessionNotFound(username) from None

    async def remove(self, username: str) -> None:
        session = self._sessions.pop(username, None)
        if session is None:
            return
        await session.close()
        logger.debug("Removed session for %s", username)

    @asynccontextmanager
    async def scoped(self, username: str) -> AsyncIterator[aiohttp.ClientSession]:
        session = await self.create(username)
        try:
            yield session
        finally:
            await self.remove(username)

    async def close_all(self) -> None:
        for username in list(self._sessions):
            await self.remove(username)
