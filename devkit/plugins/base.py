"""Base class for plugins built with the toolkit."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from devkit.plugins.context import PluginContext


class PluginBase:
    """Base class plugin authors subclass in their plugin.py.

    The toolkit constructs the plugin with its PluginContext and drives the
    lifecycle hooks below. Every hook is optional; the defaults do nothing.
    """

    def __init__(self, context: PluginContext):
        self.context = context
        self.name = context.name
        self.version = context.version
        self.logger = context.logger.child(plugin=context.name)

    async def on_install(self) -> None:
        """Called once when the plugin is installed into the panel."""

    async def on_load(self) -> None:
        """Called when the plugin module is loaded."""

    async def on_enable(self) -> None:
        """Called when the plugin is enabled; start services here."""

    async def on_disable(self) -> None:
        """Called when the plugin is disabled; stop services here."""

    async def on_unload(self) -> None:
        """Called before the plugin is unloaded; release resources here."""

    async def on_uninstall(self) -> None:
        """Called once when the plugin is removed from the panel."""
