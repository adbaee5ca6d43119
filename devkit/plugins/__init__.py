"""Plugin model, capability gateway and lifecycle.

Imports are lazy so that light users (manifest validation, for example) do not
pull in aiohttp and the rest of the capability stack.
"""

__all__ = [
    "PluginManifest",
    "PluginPermissions",
    "ApiDefinition",
    "HookDefinition",
    "load_manifest",
    "save_manifest",
    "Capabilities",
    "PluginContext",
    "PluginRuntimeConfig",
    "ContextRegistry",
    "PluginInstance",
    "PluginState",
    "PluginBase",
    "PluginLifecycle",
    "PluginToolkit",
]


def __getattr__(name):
    if name in ("PluginManifest", "PluginPermissions", "ApiDefinition", "HookDefinition",
                "load_manifest", "save_manifest"):
        from devkit.plugins import manifest
        return getattr(manifest, name)
    if name == "Capabilities":
        from devkit.plugins.capabilities import Capabilities
        return Capabilities
    if name in ("PluginContext", "PluginRuntimeConfig"):
        from devkit.plugins import context
        return getattr(context, name)
    if name in ("ContextRegistry", "PluginInstance", "PluginState"):
        from devkit.plugins import registry
        return getattr(registry, name)
    if name == "PluginBase":
        from devkit.plugins.base import PluginBase
        return PluginBase
    if name == "PluginLifecycle":
        from devkit.plugins.lifecycle import PluginLifecycle
        return PluginLifecycle
    if name == "PluginToolkit":
        from devkit.plugins.manager import PluginToolkit
        return PluginToolkit
    raise AttributeError(f"module 'devkit.plugins' has no attribute {name!r}")
