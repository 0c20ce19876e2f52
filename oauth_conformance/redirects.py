from __future__ import annotations

import logging
from dataclasses import dataclass

import aiohttp
from multidict import CIMultiDictProxy
from yarl import URL

from oauth_conformance.errors import TooManyRedirects, UnexpectedStatus
from oauth_conformance.models import RedirectResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RedirectPolicy:
    """How each hop of the flow is issued and validated.

    Redirects are never followed by the transport: every hop goes through
    the walker so the engine can look at its target before continuing.
    """

    follow_redirects: bool = False
    accepted_statuses: frozenset[int] = frozenset({200, 302})
    max_hops: int = 5


async def capture(response: aiohttp.ClientResponse) -> RedirectResponse:
    """Read an aiohttp response into a detached :class:`RedirectResponse`."""
    body = await response.text(errors="replace")
    return RedirectResponse(
        status=response.status,
        url=str(response.url),
        headers=CIMultiDictProxy(response.headers.copy()),
        body=body,
    )


def resolve_target(response: RedirectResponse) -> URL:
    """Resolve a redirect target against the origin of the request that produced it."""
    if not response.location:
        raise UnexpectedStatus(
            response.status,
            response.url,
            f"Expected a redirect from {response.url} but got status {response.status} without a Location",
        )
    return URL(response.url).origin().join(URL(response.location))


class RedirectWalker:
    """Follows one redirect at a time on behalf of a single flow execution.

    ``hops`` counts consecutive redirects and resets once a hop lands on a
    page, so ``max_hops`` bounds each redirect chain of the flow.
    """

    def __init__(self, policy: RedirectPolicy | None = None) -> None:
        self.policy = policy or RedirectPolicy()
        self.hops = 0

    async def follow(self, response: RedirectResponse, session: aiohttp.ClientSession) -> RedirectResponse:
        target = resolve_target(response)
        if self.hops >= self.policy.max_hops:
            raise TooManyRedirects(str(target), self.policy.max_hops)
        self.hops += 1

        logger.debug("Following redirect %d/%d to %s", self.hops, self.policy.max_hops, target)
        async with session.get(target, allow_redirects=self.policy.follow_redirects) as resp:
            hop = await capture(resp)

        if hop.status not in self.policy.accepted_statuses:
            raise UnexpectedStatus(hop.status, hop.url)
        if not hop.is_redirect:
            self.hops = 0
        return hop
