from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any

import click
from dotenv import load_dotenv

from oauth_conformance.config import HarnessSettings, OAuthProperties
from oauth_conformance.engine import AuthorizationCodeFlow
from oauth_conformance.errors import PluginError
from oauth_conformance.plugin import load_plugin
from oauth_conformance.redirects import RedirectPolicy
from oauth_conformance.scenarios import ConformanceSuite, Outcome, ScenarioResult
from oauth_conformance.session_store import SessionStore
from oauth_conformance.token import TokenEndpointFetcher

logger = logging.getLogger(__name__)

_OUTCOME_MARKS = {Outcome.PASSED: "PASS", Outcome.FAILED: "FAIL", Outcome.ERROR: "ERROR"}


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


async def _run_suite(settings: HarnessSettings, only: tuple[str, ...], concurrency: int) -> list[ScenarioResult]:
    """Build the harness around the configured plugin and run the suite once."""
    if not settings.plugin:
        raise PluginError("No plugin configured; pass --plugin or set OAUTH_CONFORMANCE_PLUGIN")
    plugin = load_plugin(settings.plugin, settings)

    token_fetcher = plugin.token_fetcher
    if token_fetcher is None:
        if settings.token_endpoint is None:
            raise PluginError("Plugin supplies no token fetcher and no token endpoint is configured")
        token_fetcher = TokenEndpointFetcher(settings.token_endpoint, timeout=settings.request_timeout_seconds)

    sessions = SessionStore(timeout=settings.request_timeout_seconds)
    flow = AuthorizationCodeFlow(
        OAuthProperties.from_settings(settings),
        sessions,
        plugin.capabilities,
        token_fetcher,
        policy=RedirectPolicy(max_hops=settings.max_redirects),
    )
    suite = ConformanceSuite(flow, plugin.client_generator, plugin.remove_client, redirect_uri=settings.redirect_uri)
    try:
        return await suite.run(only, concurrency=concurrency)
    finally:
        await sessions.close_all()
        await token_fetcher.close()


@click.group()
def cli() -> None:
    """OAuth2 authorization code grant conformance harness."""


@cli.command(name="run", help="Run the conformance scenarios against a server")
@click.option("--plugin", help="Plugin factory, e.g. 'my_package.harness:build_plugin'")
@click.option("--authorization-endpoint", help="Authorization endpoint of the server under test")
@click.option("--token-endpoint", help="Token endpoint of the server under test")
@click.option("--scopes", help="Space or comma separated scopes available to test clients")
@click.option("--redirect-uri", help="Redirect URI registered for generated clients")
@click.option("--max-redirects", type=int, help="Maximum consecutive redirect hops (default: 5, minimum: 2)")
@click.option("--only", multiple=True, help="Run only scenarios whose name contains this text (repeatable)")
@click.option("--concurrency", type=int, default=1, show_default=True, help="Scenarios run in parallel")
@click.option("--log-level", help="Log level (default: INFO)")
# pylint: disable=too-many-arguments
def run(
    plugin: str | None,
    authorization_endpoint: str | None,
    token_endpoint: str | None,
    scopes: str | None,
    redirect_uri: str | None,
    max_redirects: int | None,
    only: tuple[str, ...],
    concurrency: int,
    log_level: str | None,
) -> None:
    load_dotenv()
    overrides: dict[str, Any] = {}
    if plugin:
        overrides["plugin"] = plugin
    if authorization_endpoint:
        overrides["authorization_endpoint"] = authorization_endpoint
    if token_endpoint:
        overrides["token_endpoint"] = token_endpoint
    if scopes:
        overrides["available_scopes"] = scopes
    if redirect_uri:
        overrides["redirect_uri"] = redirect_uri
    if max_redirects is not None:
        overrides["max_redirects"] = max_redirects
    if log_level:
        overrides["log_level"] = log_level

    try:
        settings = HarnessSettings(**overrides)
        _configure_logging(settings.log_level)
        results = asyncio.run(_run_suite(settings, only, concurrency))
    except (PluginError, ValueError) as exc:
        raise click.UsageError(str(exc)) from exc

    for result in results:
        line = f"{_OUTCOME_MARKS[result.outcome]:5} {result.name} ({result.duration_seconds:.2f}s)"
        if result.detail:
            line += f"\n      {result.detail}"
        click.echo(line)

    failed = sum(1 for result in results if not result.passed)
    click.echo(f"{len(results) - failed} passed, {failed} failed")
    if failed:
        sys.exit(1)


@cli.command(name="config", help="Print effective configuration from environment")
def show_settings() -> None:
    settings = HarnessSettings()
    for field, value in settings.model_dump().items():
        click.echo(f"{field}: {value}")


if __name__ == "__main__":
    cli()
