"""Generic page-numbered REST connector."""

from paysync.plugins.generic.client import GenericClient
from paysync.plugins.generic.plugin import GenericConfig, GenericPlugin

__all__ = ["GenericClient", "GenericConfig", "GenericPlugin"]
