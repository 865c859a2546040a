"""
Connector Definitions

Connectors are configured in a JSON file:

    {
      "connectors": [
        {"name": "acme", "provider": "generic",
         "config": {"apiKey": "...", "endpoint": "https://api.acme.test"},
         "others": ["beneficiaries"]}
      ]
    }

Each entry names a registered plugin and the config it is built with.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from paysync.errors import InvalidRequestError
from paysync.plugins import Plugin, PluginRegistry

logger = logging.getLogger(__name__)


class ConnectorSpec(BaseModel):
    """One connector entry of the connectors file."""

    name: str = Field(min_length=1)
    provider: str
    config: dict[str, Any] = Field(default_factory=dict)
    others: list[str] = Field(default_factory=list)
    page_size: int | None = Field(default=None, gt=0)
    enabled: bool = True


class ConnectorsFile(BaseModel):
    connectors: list[ConnectorSpec] = Field(default_factory=list)


@dataclass
class Connector:
    """A configured connector and its plugin instance."""

    spec: ConnectorSpec
    plugin: Plugin

    @property
    def name(self) -> str:
        return self.spec.name


def load_connector_specs(path: str | Path) -> list[ConnectorSpec]:
    """
    Read connector definitions from a JSON file.

    Raises:
        InvalidRequestError: If the file is missing or malformed
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise InvalidRequestError(f"connectors file not found: {path}") from exc
    except ValueError as exc:
        raise InvalidRequestError(f"connectors file is not valid JSON: {path}") from exc

    try:
        specs = ConnectorsFile.model_validate(data).connectors
    except ValidationError as exc:
        raise InvalidRequestError(f"invalid connectors file {path}: {exc}") from exc

    names = [spec.name for spec in specs]
    duplicates = {name for name in names if names.count(name) > 1}
    if duplicates:
        raise InvalidRequestError(f"duplicate connector names: {', '.join(sorted(duplicates))}")
    return specs


def build_connectors(
    registry: PluginRegistry,
    specs: list[ConnectorSpec],
    **options: Any,
) -> dict[str, Connector]:
    """Instantiate the plugin of every enabled connector."""
    connectors: dict[str, Connector] = {}
    for spec in specs:
        if not spec.enabled:
            logger.info("Skipping disabled connector %s", spec.name)
            continue
        plugin = registry.create(spec.provider, spec.config, connector_name=spec.name, **options)
        connectors[spec.name] = Connector(spec=spec, plugin=plugin)
    return connectors
