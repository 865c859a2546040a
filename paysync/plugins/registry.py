"""
Plugin Registry

Explicit name -> plugin factory registry. The registry is populated once
at startup and then frozen; plugins are never registered as an import
side effect.

Usage:
    registry = build_default_registry()
    plugin = registry.create("generic", {"apiKey": "...", "endpoint": "..."})
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from paysync.errors import InvalidRequestError, PluginNotFoundError, RegistryFrozenError
from paysync.plugins.base import Plugin
from paysync_models import Capability

logger = logging.getLogger(__name__)

PluginFactory = Callable[..., Plugin]


@dataclass(frozen=True)
class PluginEntry:
    """Registered plugin."""

    name: str
    factory: PluginFactory
    config_model: type[BaseModel]
    capabilities: frozenset[Capability]


class PluginRegistry:
    """Populate-then-freeze registry of connector plugins."""

    def __init__(self) -> None:
        self._entries: dict[str, PluginEntry] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(
        self,
        name: str,
        factory: PluginFactory,
        config_model: type[BaseModel],
        capabilities: frozenset[Capability] | None = None,
    ) -> None:
        """
        Register a plugin factory.

        Args:
            name: Provider name used in connector configs
            factory: Callable(connector_name, config, **options) -> Plugin
            config_model: Pydantic model validating the connector config
            capabilities: Defaults to the factory's capabilities attribute

        Raises:
            RegistryFrozenError: If the registry is frozen
        """
        if self._frozen:
            raise RegistryFrozenError(f"cannot register {name!r}: registry is frozen")
        if capabilities is None:
            capabilities = getattr(factory, "capabilities", frozenset())
        self._entries[name] = PluginEntry(name, factory, config_model, frozenset(capabilities))
        logger.debug("Registered plugin %s", name)

    def freeze(self) -> None:
        """Reject any further registration."""
        self._frozen = True

    def _entry(self, name: str) -> PluginEntry:
        try:
            return self._entries[name]
        except KeyError:
            raise PluginNotFoundError(f"unknown plugin: {name}") from None

    def names(self) -> list[str]:
        return sorted(self._entries)

    def capabilities(self, name: str) -> frozenset[Capability]:
        return self._entry(name).capabilities

    def create(
        self,
        name: str,
        config: dict[str, Any],
        connector_name: str | None = None,
        **options: Any,
    ) -> Plugin:
        """
        Validate a connector config and build its plugin.

        Raises:
            PluginNotFoundError: If no plugin is registered under name
            InvalidRequestError: If the config does not validate
        """
        entry = self._entry(name)
        try:
            validated = entry.config_model.model_validate(config)
        except ValidationError as exc:
            raise InvalidRequestError(f"invalid {name} config: {exc}") from exc
        return entry.factory(connector_name or name, validated, **options)


def build_default_registry() -> PluginRegistry:
    """Registry holding the bundled plugins, frozen."""
    from paysync.plugins.generic import GenericConfig, GenericPlugin
    from paysync.plugins.walletpay import WalletPayConfig, WalletPayPlugin

    registry = PluginRegistry()
    registry.register("generic", GenericPlugin, GenericConfig)
    registry.register("walletpay", WalletPayPlugin, WalletPayConfig)
    registry.freeze()
    return registry
