from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from pydantic import AliasChoices, AnyHttpUrl, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REDIRECT_URI = "https://an-awesome-service.com/"


class HarnessSettings(BaseSettings):
    """Harness configuration loaded from environment variables or .env."""

    model_config = SettingsConfigDict(
        env_prefix="OAUTH_CONFORMANCE_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Server under test
    authorization_endpoint: AnyHttpUrl | None = Field(
        default=None,
        description="Authorization endpoint of the server under test.",
        validation_alias=AliasChoices("authorization_endpoint", "OAUTH_CONFORMANCE_AUTHORIZATION_ENDPOINT", "OAUTH_AUTHORIZE_URL"),
    )
    token_endpoint: AnyHttpUrl | None = Field(
        default=None,
        description="Token endpoint of the server under test.",
        validation_alias=AliasChoices("token_endpoint", "OAUTH_CONFORMANCE_TOKEN_ENDPOINT", "OAUTH_TOKEN_URL"),
    )
    available_scopes: str | None = Field(
        default=None,
        description="Space or comma separated scopes the server offers to test clients.",
    )
    redirect_uri: str = Field(
        DEFAULT_REDIRECT_URI,
        description="Redirect URI registered for the clients the suite creates.",
    )

    # Transport
    # A login redirect and the hop to the consent page form one chain
    max_redirects: Annotated[int, Field(ge=2)] = 5
    request_timeout_seconds: Annotated[float, Field(gt=0)] = 20.0

    plugin: str | None = Field(
        default=None,
        description="Plugin factory reference, e.g. 'my_package.harness:build_plugin'.",
    )
    log_level: str = Field("INFO", description="Root log level.")

    @model_validator(mode="before")
    @classmethod
    def _empty_strings_to_none(cls, values: dict[str, object]) -> dict[str, object]:
        if not isinstance(values, dict):
            return values
        # Keys arrive under whichever alias matched, so compare case-insensitively
        for key, value in list(values.items()):
            if value == "" and key.lower() not in ("redirect_uri", "log_level"):
                values[key] = None
        return values

    @property
    def scope_list(self) -> list[str]:
        if not self.available_scopes:
            return []
        return [scope for scope in self.available_scopes.replace(",", " ").split() if scope]


@dataclass(frozen=True)
class OAuthProperties:
    """Static description of the server under test, as the flow engine sees it."""

    authorization_url: str
    scopes: tuple[str, ...] = ()

    def authorization_endpoint(self) -> str:
        return self.authorization_url

    def available_scopes(self) -> list[str]:
        return list(self.scopes)

    @classmethod
    def from_settings(cls, settings: HarnessSettings) -> OAuthProperties:
        if settings.authorization_endpoint is None:
            raise ValueError("authorization_endpoint is not configured")
        return cls(str(settings.authorization_endpoint), tuple(settings.scope_list))
