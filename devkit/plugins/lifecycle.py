"""Plugin lifecycle management - loads plugin.py and drives state transitions."""
from __future__ import annotations

import ast
import importlib.util
import inspect
import logging
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, List, Optional

from devkit.constants import ENTRY_FILE, LIFECYCLE_HOOKS, VENDOR_DIR
from devkit.errors import PluginLoadError
from devkit.plugins.base import PluginBase
from devkit.plugins.context import PluginContext
from devkit.plugins.manifest import load_manifest
from devkit.plugins.registry import PluginInstance, PluginState

logger = logging.getLogger(__name__)


def find_plugin_exports(source: str) -> List[str]:
    """Names in a plugin entry file that look like a plugin, found without importing it.

    Recognized: a top-level ``register`` function, classes deriving from
    PluginBase, and classes defining any lifecycle hook.

    Raises:
        SyntaxError: The source does not parse
    """
    tree = ast.parse(source)
    exports = []
    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) and node.name == "register":
            exports.append(node.name)
        elif isinstance(node, ast.ClassDef):
            bases = {ast.unparse(base).rsplit(".", 1)[-1] for base in node.bases}
            methods = {
                item.name for item in node.body
                if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef))
            }
            if "PluginBase" in bases or methods & set(LIFECYCLE_HOOKS):
                exports.append(node.name)
    return exports


def resolve_factory(module: ModuleType) -> Any:
    """Pick the callable that builds the plugin from a loaded entry module."""
    register = getattr(module, "register", None)
    if callable(register):
        return register

    classes = [
        obj for obj in vars(module).values()
        if inspect.isclass(obj) and obj.__module__ == module.__name__
    ]
    for cls in classes:
        if issubclass(cls, PluginBase) and cls is not PluginBase:
            return cls
    for cls in classes:
        if any(callable(getattr(cls, hook, None)) for hook in LIFECYCLE_HOOKS):
            return cls
    raise PluginLoadError(Path(module.__file__ or ENTRY_FILE), "no register() function or plugin class found")


async def call_hook(plugin: Any, hook: str) -> bool:
    """Invoke a lifecycle hook if the plugin defines it, awaiting coroutines.

    Returns:
        True if the hook existed and ran
    """
    method = getattr(plugin, hook, None)
    if not callable(method):
        return False
    result = method()
    if inspect.isawaitable(result):
        await result
    return True


class PluginLifecycle:
    """Manages plugin state transitions: discover → load → enable → disable → unload."""

    def discover(self, plugin_dir: Path) -> PluginInstance:
        """Read a plugin directory's manifest.

        Raises:
            ManifestError: plugin.yaml missing or invalid
        """
        manifest = load_manifest(plugin_dir)
        return PluginInstance(manifest=manifest, path=Path(plugin_dir).resolve())

    def load(self, instance: PluginInstance) -> bool:
        """Import plugin.py and resolve the plugin factory.

        Args:
            instance: Plugin instance to load

        Returns:
            True if loaded successfully
        """
        entry_file = instance.path / ENTRY_FILE
        search_paths = [str(instance.path), str(instance.path / VENDOR_DIR)]
        added = [p for p in search_paths if p not in sys.path]
        for p in reversed(added):
            sys.path.insert(0, p)

        try:
            if not entry_file.exists():
                raise PluginLoadError(entry_file, "entry file not found")
            spec = importlib.util.spec_from_file_location(f"devkit_plugin_{instance.name.replace('-', '_')}", entry_file)
            if spec is None or spec.loader is None:
                raise PluginLoadError(entry_file, "cannot create module spec")
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)

            instance.factory = resolve_factory(module)
            instance.state = PluginState.LOADED
            instance.error = None
            logger.info(f"Loaded plugin: {instance.name}")
            return True

        except Exception as e:
            instance.state = PluginState.ERROR
            instance.error = str(e)
            logger.error(f"Failed to load plugin {instance.name}: {e}")
            return False
        finally:
            for p in added:
                if p in sys.path:
                    sys.path.remove(p)

    def instantiate(self, instance: PluginInstance, context: PluginContext) -> Optional[Any]:
        """Build the plugin object by calling its factory with the context."""
        if instance.state != PluginState.LOADED:
            logger.error(f"Cannot instantiate plugin {instance.name}: state is {instance.state}, expected LOADED")
            return None
        try:
            instance.plugin_object = instance.factory(context)
            instance.context = context
            return instance.plugin_object
        except Exception as e:
            instance.state = PluginState.ERROR
            instance.error = str(e)
            logger.error(f"Failed to instantiate plugin {instance.name}: {e}")
            return None

    async def _transition(self, instance: PluginInstance, hook: str, target: PluginState) -> bool:
        if instance.plugin_object is None:
            logger.error(f"Plugin {instance.name} has not been instantiated")
            return False
        try:
            await call_hook(instance.plugin_object, hook)
        except Exception as e:
            instance.state = PluginState.ERROR
            instance.error = str(e)
            logger.error(f"Plugin {instance.name} failed in {hook}: {e}")
            return False
        instance.state = target
        logger.info(f"Plugin {instance.name} -> {target.value}")
        return True

    async def run_load(self, instance: PluginInstance) -> bool:
        return await self._transition(instance, "on_load", PluginState.LOADED)

    async def enable(self, instance: PluginInstance) -> bool:
        return await self._transition(instance, "on_enable", PluginState.ENABLED)

    async def disable(self, instance: PluginInstance) -> bool:
        if instance.state != PluginState.ENABLED:
            logger.debug(f"Plugin {instance.name} not enabled, skip disable")
            return True
        return await self._transition(instance, "on_disable", PluginState.DISABLED)

    async def unload(self, instance: PluginInstance) -> bool:
        return await self._transition(instance, "on_unload", PluginState.UNLOADED)

    async def activate(self, plugin_dir: Path, context: PluginContext) -> PluginInstance:
        """Discover, load, instantiate, run on_load and enable a plugin.

        Raises:
            PluginLoadError: Any step failed; the message carries the recorded error
        """
        instance = self.discover(plugin_dir)
        ok = (
            self.load(instance)
            and self.instantiate(instance, context) is not None
            and await self.run_load(instance)
            and await self.enable(instance)
        )
        if not ok:
            raise PluginLoadError(instance.path / ENTRY_FILE, instance.error or "activation failed")
        return instance
