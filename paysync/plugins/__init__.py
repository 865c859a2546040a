"""Connector plugins and their registry."""

from paysync.plugins.base import InstallResponse, Plugin
from paysync.plugins.registry import PluginEntry, PluginRegistry, build_default_registry

__all__ = [
    "InstallResponse",
    "Plugin",
    "PluginEntry",
    "PluginRegistry",
    "build_default_registry",
]
