from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from oauth_conformance.errors import MissingAuthorizationCode
from oauth_conformance.models import Client, RedirectResponse


@dataclass(frozen=True)
class AuthorizeQuery:
    """Query parameters of the initial authorization request.

    ``extra`` is merged last and wins over the standard parameters, which is
    how negative scenarios send malformed values.
    """

    client_id: str
    redirect_uri: str
    scopes: Sequence[str] | None = None
    response_type: str = "code"
    extra: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def for_client(
        cls,
        client: Client,
        scopes: Sequence[str] | None = None,
        extra: Mapping[str, str] | None = None,
    ) -> AuthorizeQuery:
        return cls(
            client_id=client.client_id,
            redirect_uri=client.redirect_uri,
            scopes=scopes,
            extra=dict(extra or {}),
        )

    def to_params(self) -> dict[str, str]:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": self.response_type,
        }
        if self.scopes:
            params["scope"] = " ".join(self.scopes)
        params.update(self.extra)
        return params


def extract_error(response: RedirectResponse) -> str | None:
    return response.error


def extract_authorization_code(response: RedirectResponse) -> str:
    code = response.query.get("code")
    if not code:
        raise MissingAuthorizationCode(response.location)
    return code
