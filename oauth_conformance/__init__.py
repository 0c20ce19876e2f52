from oauth_conformance.collaborators import FlowCapabilities
from oauth_conformance.config import HarnessSettings, OAuthProperties
from oauth_conformance.engine import AuthorizationCodeFlow
from oauth_conformance.models import (
    AccessTokenDetails,
    AccessTokenResponse,
    AuthorizationCodeDetails,
    AuthorizationCodeRequestOptions,
    Client,
    RedirectResponse,
    UserAccount,
)
from oauth_conformance.plugin import HarnessPlugin
from oauth_conformance.scenarios import ConformanceSuite
from oauth_conformance.session_store import SessionStore
from oauth_conformance.token import AccessTokenFetcher, TokenEndpointFetcher

__all__ = [
    "AccessTokenDetails",
    "AccessTokenFetcher",
    "AccessTokenResponse",
    "AuthorizationCodeDetails",
    "AuthorizationCodeFlow",
    "AuthorizationCodeRequestOptions",
    "Client",
    "ConformanceSuite",
    "FlowCapabilities",
    "HarnessPlugin",
    "HarnessSettings",
    "OAuthProperties",
    "RedirectResponse",
    "SessionStore",
    "TokenEndpointFetcher",
    "UserAccount",
]
