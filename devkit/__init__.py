"""Plugin development toolkit for the game server panel.

Imports are lazy so ``from devkit import PluginBase`` inside a plugin does not
load the dev server or the build pipeline.
"""

__version__ = "1.0.0"

__all__ = [
    "PluginBase",
    "PluginContext",
    "PluginToolkit",
    "PluginTester",
    "TestOptions",
    "PluginBuilder",
    "BuildOptions",
    "DevServer",
    "DevServerOptions",
    "MockRuntime",
    "MockConfig",
    "TemplateCatalog",
]


def __getattr__(name):
    if name in ("PluginBase", "PluginContext", "PluginToolkit"):
        import devkit.plugins
        return getattr(devkit.plugins, name)
    if name in ("PluginTester", "TestOptions"):
        from devkit import tester
        return getattr(tester, name)
    if name in ("PluginBuilder", "BuildOptions"):
        from devkit import builder
        return getattr(builder, name)
    if name in ("DevServer", "DevServerOptions"):
        from devkit.server import dev_server
        return getattr(dev_server, name)
    if name in ("MockRuntime", "MockConfig"):
        from devkit.testing import mocks
        return getattr(mocks, name)
    if name == "TemplateCatalog":
        from devkit.templates.catalog import TemplateCatalog
        return TemplateCatalog
    raise AttributeError(f"module 'devkit' has no attribute {name!r}")
