from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from typing import Callable

from oauth_conformance.collaborators import ClientGenerator, ClientRemover, FlowCapabilities
from oauth_conformance.config import HarnessSettings
from oauth_conformance.errors import PluginError
from oauth_conformance.token import AccessTokenFetcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HarnessPlugin:
    """Everything the harness needs from the deployment it tests."""

    client_generator: ClientGenerator
    remove_client: ClientRemover
    capabilities: FlowCapabilities
    token_fetcher: AccessTokenFetcher | None = None


PluginFactory = Callable[[HarnessSettings], HarnessPlugin]


def load_plugin(reference: str, settings: HarnessSettings) -> HarnessPlugin:
    """Resolve ``package.module:factory`` and build the plugin from settings."""
    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        raise PluginError(f"Plugin reference must look like 'package.module:factory' (got {reference!r})")

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise PluginError(f"Cannot import plugin module {module_name!r}: {exc}") from exc

    factory = getattr(module, attr, None)
    if not callable(factory):
        raise PluginError(f"Plugin module {module_name!r} has no callable {attr!r}")

    plugin = factory(settings)
    if not isinstance(plugin, HarnessPlugin):
        raise PluginError(f"Plugin factory {reference!r} returned {type(plugin).__name__}, expected HarnessPlugin")
    logger.debug("Loaded plugin %s", reference)
    return plugin
