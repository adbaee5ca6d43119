"""Plugin registries - track plugin contexts and loaded plugin instances."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from devkit.plugins.capabilities import Capabilities
from devkit.plugins.context import PluginContext
from devkit.plugins.manifest import PluginManifest

logger = logging.getLogger(__name__)


class PluginState(str, Enum):
    """Plugin lifecycle states."""

    DISCOVERED = "discovered"
    LOADED = "loaded"
    ENABLED = "enabled"
    DISABLED = "disabled"
    UNLOADED = "unloaded"
    ERROR = "error"


@dataclass
class PluginInstance:
    """A plugin loaded from disk, plus the object its entry file produced."""

    manifest: PluginManifest
    path: Path
    state: PluginState = PluginState.DISCOVERED
    factory: Any = field(default=None, repr=False)  # register() function or plugin class
    plugin_object: Any = field(default=None, repr=False)
    context: Optional[PluginContext] = field(default=None, repr=False)
    error: Optional[str] = None

    @property
    def name(self) -> str:
        return self.manifest.name


class ContextRegistry:
    """Creates and tracks plugin contexts, at most one per plugin name.

    Owned by a PluginToolkit rather than shared process-wide, so independent
    toolkits (parallel test runs, for example) never see each other's plugins.
    """

    def __init__(self):
        self._contexts: Dict[str, PluginContext] = {}

    def create(
        self,
        name: str,
        version: str,
        config: Union[PluginManifest, Dict[str, Any]],
        capabilities: Capabilities,
        **kwargs: Any,
    ) -> PluginContext:
        """Create a context and register it, replacing any existing one."""
        if name in self._contexts:
            logger.warning(f"Plugin context '{name}' already registered, replacing")
        context = PluginContext(name, version, config, capabilities, **kwargs)
        self._contexts[name] = context
        logger.info(f"Created plugin context: {name}@{version}")
        return context

    def get(self, name: str) -> Optional[PluginContext]:
        """Get a context by plugin name."""
        return self._contexts.get(name)

    def list(self) -> List[PluginContext]:
        """Get all registered contexts."""
        return list(self._contexts.values())

    def remove(self, name: str) -> Optional[PluginContext]:
        """Evict a plugin's context."""
        context = self._contexts.pop(name, None)
        if context:
            logger.info(f"Removed plugin context: {name}")
        return context

    def has(self, name: str) -> bool:
        return name in self._contexts

    def count(self) -> int:
        return len(self._contexts)

    def clear(self) -> None:
        self._contexts.clear()
