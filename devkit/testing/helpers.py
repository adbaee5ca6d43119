"""Helpers for plugin authors writing tests against the Mock Runtime."""

import asyncio
import inspect
import logging
import time
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

from devkit.constants import ENTRY_FILE, LIFECYCLE_HOOKS, MANIFEST_FILE
from devkit.errors import ManifestError, PluginLoadError
from devkit.plugins.context import PluginContext
from devkit.plugins.lifecycle import PluginLifecycle, call_hook
from devkit.plugins.manifest import load_manifest
from devkit.testing.mocks import MockConfig, MockRuntime

logger = logging.getLogger(__name__)


def create_mock_environment(
    name: str = "test-plugin",
    mock_config: Optional[MockConfig] = None,
    **context_options: Any,
) -> Tuple[MockRuntime, PluginContext]:
    """A fresh MockRuntime and a context built on it."""
    runtime = MockRuntime(name, mock_config)
    return runtime, runtime.create_context(**context_options)


async def run_plugin_lifecycle(plugin: Any) -> List[str]:
    """Run on_load, on_enable, on_disable and on_unload in order.

    Hooks the plugin does not define are skipped; an exception from a hook
    propagates to the caller.

    Returns:
        Names of the hooks that ran
    """
    ran = []
    for hook in LIFECYCLE_HOOKS:
        if await call_hook(plugin, hook):
            ran.append(hook)
    return ran


def load_plugin(plugin_dir: Path, runtime: Optional[MockRuntime] = None) -> Any:
    """Import a plugin directory's entry file and build the plugin on a mock context.

    Raises:
        ManifestError: plugin.yaml missing or invalid
        PluginLoadError: The entry file could not be imported or built
    """
    lifecycle = PluginLifecycle()
    instance = lifecycle.discover(Path(plugin_dir))
    runtime = runtime or MockRuntime(instance.name)
    context = runtime.create_context(version=instance.manifest.version)
    if not lifecycle.load(instance) or lifecycle.instantiate(instance, context) is None:
        raise PluginLoadError(instance.path / ENTRY_FILE, instance.error or "could not build plugin")
    return instance.plugin_object


def validate_plugin_structure(plugin_dir: Path) -> List[str]:
    """Problems with a plugin directory's required files and manifest."""
    plugin_dir = Path(plugin_dir)
    errors = []
    for required in (MANIFEST_FILE, ENTRY_FILE):
        if not (plugin_dir / required).exists():
            errors.append(f"Missing required file: {required}")
    if (plugin_dir / MANIFEST_FILE).exists():
        try:
            load_manifest(plugin_dir)
        except ManifestError as e:
            errors.extend(e.messages)
    return errors


async def wait_for(condition: Callable[[], Any], timeout: float = 5.0, interval: float = 0.05) -> None:
    """Poll condition (sync or async) until truthy.

    Raises:
        TimeoutError: condition stayed falsy for timeout seconds
    """
    deadline = time.monotonic() + timeout
    while True:
        result = condition()
        if inspect.isawaitable(result):
            result = await result
        if result:
            return
        if time.monotonic() >= deadline:
            raise TimeoutError(f"Condition not met within {timeout}s")
        await asyncio.sleep(interval)
