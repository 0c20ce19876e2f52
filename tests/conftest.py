from __future__ import annotations

import secrets
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from urllib.parse import quote

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from yarl import URL

from oauth_conformance.collaborators import FlowCapabilities
from oauth_conformance.config import OAuthProperties
from oauth_conformance.engine import AuthorizationCodeFlow
from oauth_conformance.models import Client, RedirectResponse, UserAccount
from oauth_conformance.redirects import RedirectPolicy, capture
from oauth_conformance.session_store import SessionStore
from oauth_conformance.token import TokenEndpointFetcher

SCOPES = ("read", "write")
REDIRECT_URI = "https://an-awesome-service.com/"


@dataclass
class FakeAuthorizationServer:
    """A small authorization code server with a login page and a consent page."""

    clients: dict[str, Client] = field(default_factory=dict)
    users: dict[str, str] = field(default_factory=dict)
    logins: dict[str, str] = field(default_factory=dict)
    pending: dict[str, dict] = field(default_factory=dict)
    codes: dict[str, dict] = field(default_factory=dict)
    consent_posts: int = 0
    # Knobs for misbehaving-server tests
    error_after_login: str | None = None
    granted_scopes: tuple[str, ...] | None = None
    reusable_codes: bool = False
    scopes_checked_before_login: bool = False

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/authorize", self.authorize)
        app.router.add_get("/login", self.login_page)
        app.router.add_post("/login", self.login)
        app.router.add_get("/consent", self.consent_page)
        app.router.add_post("/consent", self.consent)
        app.router.add_post("/token", self.token)
        app.router.add_get("/loop", self.loop)
        app.router.add_get("/teapot", self.teapot)
        return app

    def _user(self, request: web.Request) -> str | None:
        return self.logins.get(request.cookies.get("session", ""))

    @staticmethod
    def _redirect_with(redirect_uri: str, **params: str) -> web.Response:
        raise web.HTTPFound(str(URL(redirect_uri).update_query(params)))

    async def authorize(self, request: web.Request) -> web.Response:
        query = request.query
        client = self.clients.get(query.get("client_id", ""))
        if client is None:
            return web.json_response({"error": "invalid_client"}, status=400)
        if query.get("redirect_uri") != client.redirect_uri:
            return web.json_response({"error": "invalid_request"}, status=400)

        requested = query["scope"].split() if "scope" in query else list(client.scopes)
        invalid_scope = any(scope not in client.scopes for scope in requested)
        if invalid_scope and self.scopes_checked_before_login:
            self._redirect_with(client.redirect_uri, error="invalid_scope")

        if self._user(request) is None:
            raise web.HTTPFound(f"/login?return={quote(str(request.rel_url), safe='')}")

        if query.get("response_type") != "code":
            self._redirect_with(client.redirect_uri, error="unsupported_response_type")
        if self.error_after_login:
            self._redirect_with(client.redirect_uri, error=self.error_after_login)
        if invalid_scope:
            self._redirect_with(client.redirect_uri, error="invalid_scope")

        request_id = secrets.token_urlsafe(8)
        self.pending[request_id] = {"client": client, "scopes": requested}
        raise web.HTTPFound(f"/consent?request={request_id}")

    async def login_page(self, request: web.Request) -> web.Response:
        return web.Response(text="<form method='post'><input name='username'><input name='password'></form>")

    async def login(self, request: web.Request) -> web.Response:
        form = await request.post()
        username = str(form.get("username", ""))
        if self.users.get(username) != form.get("password"):
            return web.Response(text="Invalid credentials")
        token = secrets.token_urlsafe(16)
        self.logins[token] = username
        response = web.HTTPFound(request.query.get("return", "/"))
        response.set_cookie("session", token)
        raise response

    async def consent_page(self, request: web.Request) -> web.Response:
        if self._user(request) is None or request.query.get("request") not in self.pending:
            return web.Response(status=403)
        return web.Response(text="<form method='post'><button name='decision'>approve</button></form>")

    async def consent(self, request: web.Request) -> web.Response:
        self.consent_posts += 1
        pending = self.pending.pop(request.query.get("request", ""), None)
        if self._user(request) is None or pending is None:
            return web.Response(status=403)
        form = await request.post()
        client = pending["client"]
        if form.get("decision") != "approve":
            self._redirect_with(client.redirect_uri, error="access_denied")

        code = secrets.token_urlsafe(16)
        scopes = self.granted_scopes if self.granted_scopes is not None else tuple(pending["scopes"])
        self.codes[code] = {"client_id": client.client_id, "scopes": scopes, "used": False}
        self._redirect_with(client.redirect_uri, code=code)

    async def token(self, request: web.Request) -> web.Response:
        form = await request.post()
        auth = request.headers.get("Authorization")
        if auth:
            credentials = aiohttp.BasicAuth.decode(auth)
            client = self.clients.get(credentials.login)
            if client is None or client.client_secret != credentials.password:
                return web.json_response({"error": "invalid_client"}, status=401)

        grant = self.codes.get(str(form.get("code", "")))
        if form.get("grant_type") != "authorization_code":
            return web.json_response({"error": "unsupported_grant_type"}, status=400)
        if grant is None or (grant["used"] and not self.reusable_codes):
            return web.json_response({"error": "invalid_grant"}, status=400)
        grant["used"] = True
        return web.json_response(
            {
                "access_token": secrets.token_urlsafe(24),
                "token_type": "bearer",
                "expires_in": 3600,
                "scope": " ".join(grant["scopes"]),
            }
        )

    async def loop(self, request: web.Request) -> web.Response:
        raise web.HTTPFound("/loop")

    async def teapot(self, request: web.Request) -> web.Response:
        return web.Response(status=418)


async def form_login(
    authorize_response: RedirectResponse,
    user: UserAccount,
    session: aiohttp.ClientSession,
) -> RedirectResponse:
    async with session.post(
        authorize_response.url,
        data={"username": user.username, "password": user.password},
        allow_redirects=False,
    ) as resp:
        return await capture(resp)


async def form_consent(
    should_consent: bool,
    consent_response: RedirectResponse,
    user: UserAccount,
    session: aiohttp.ClientSession,
    requested_scopes: Sequence[str] | None,
) -> RedirectResponse:
    async with session.post(
        consent_response.url,
        data={"decision": "approve" if should_consent else "deny"},
        allow_redirects=False,
    ) as resp:
        return await capture(resp)


@dataclass
class Harness:
    """The fake server plus the collaborators a plugin would provide for it."""

    server: FakeAuthorizationServer
    test_server: TestServer
    flow: AuthorizationCodeFlow

    def url(self, path: str) -> str:
        return str(self.test_server.make_url(path))

    async def client_generator(self, name: str, redirect_uri: str, scopes: Sequence[str]) -> Client:
        client = Client(name, redirect_uri, tuple(scopes), client_secret=secrets.token_urlsafe(12))
        self.server.clients[name] = client
        return client

    async def remove_client(self, name: str) -> None:
        self.server.clients.pop(name, None)

    async def account_generator(self) -> UserAccount:
        return UserAccount(username=f"user-{uuid.uuid4().hex[:8]}", password=secrets.token_urlsafe(8))

    async def register_account(self, user: UserAccount) -> None:
        self.server.users[user.username] = user.password

    async def remove_account(self, username: str) -> None:
        self.server.users.pop(username, None)

    async def register_user(self, username: str = "alice") -> UserAccount:
        user = UserAccount(username=username, password="wonderland")
        await self.register_account(user)
        await self.flow.sessions.create(username)
        return user


@pytest.fixture
def fake_server() -> FakeAuthorizationServer:
    return FakeAuthorizationServer()


@pytest_asyncio.fixture
async def harness(fake_server):
    test_server = TestServer(fake_server.build_app(), host="127.0.0.1")
    await test_server.start_server()
    sessions = SessionStore(timeout=5)
    token_fetcher = TokenEndpointFetcher(test_server.make_url("/token"), timeout=5)

    harness = Harness(fake_server, test_server, flow=None)  # type: ignore[arg-type]
    capabilities = FlowCapabilities(
        login=form_login,
        consent=form_consent,
        register_account=harness.register_account,
        remove_account=harness.remove_account,
        account_generator=harness.account_generator,
    )
    harness.flow = AuthorizationCodeFlow(
        OAuthProperties(str(test_server.make_url("/authorize")), SCOPES),
        sessions,
        capabilities,
        token_fetcher,
        policy=RedirectPolicy(max_hops=5),
    )
    try:
        yield harness
    finally:
        await sessions.close_all()
        await token_fetcher.close()
        await test_server.close()
