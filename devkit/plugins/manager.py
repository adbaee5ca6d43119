"""PluginToolkit - top-level driver for the plugin development tools."""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

from devkit.constants import PLUGINS_ROOT
from devkit.errors import ManifestError, TemplateError
from devkit.plugins.capabilities import Capabilities
from devkit.plugins.context import PluginContext, PluginRuntimeConfig
from devkit.plugins.lifecycle import PluginLifecycle
from devkit.plugins.manifest import NAME_MESSAGE, NAME_PATTERN, load_manifest, save_manifest
from devkit.plugins.registry import ContextRegistry, PluginInstance
from devkit.templates.catalog import TemplateCatalog, VariableProcessor
from devkit.templates.engine import apply_template
from devkit.utils.versions import increment_version

logger = logging.getLogger(__name__)


@dataclass
class ScaffoldResult:
    path: Path
    template: str
    files: List[Path] = field(default_factory=list)
    instructions: str = ""


class PluginToolkit:
    """Owns the context registry and template catalog and hands out the tools.

    Nothing here is module-global: two toolkits never share contexts or templates.

    Args:
        catalog: Template catalog, built-in templates by default
        contexts: Context registry, empty by default
        plugins_root: Root for plugin data/config/log path derivation
    """

    def __init__(
        self,
        catalog: Optional[TemplateCatalog] = None,
        contexts: Optional[ContextRegistry] = None,
        plugins_root: str = PLUGINS_ROOT,
    ):
        self.catalog = catalog or TemplateCatalog.with_builtins()
        self.contexts = contexts or ContextRegistry()
        self.plugins_root = plugins_root
        self.processor = VariableProcessor()
        self.lifecycle = PluginLifecycle()

    # -- scaffolding -------------------------------------------------------

    def create_plugin(
        self,
        name: str,
        template: str = "basic",
        output_dir: Path = Path("."),
        **variables: Any,
    ) -> ScaffoldResult:
        """Scaffold a new plugin directory ``<output_dir>/<name>`` from a template.

        Raises:
            ManifestError: name does not match the plugin name pattern
            TemplateNotFoundError: Unknown template
            TemplateVariableError: Required variables missing
            TemplateError: Target directory exists and is not empty
            TemplateApplyError: A file could not be written; earlier files remain
        """
        if not re.match(NAME_PATTERN, name):
            raise ManifestError([f"{NAME_MESSAGE}: {name!r}"])

        target = Path(output_dir) / name
        if target.exists() and any(target.iterdir()):
            raise TemplateError(f"Directory {target} already exists and is not empty")

        plugin_template = self.catalog.get(template)
        resolved = self.processor.resolve(plugin_template, {**variables, "name": name})
        written = apply_template(plugin_template.files, resolved, target)
        rendered = self.processor.render(plugin_template, resolved)

        logger.info(f"Created plugin '{name}' from template '{template}' at {target}")
        return ScaffoldResult(path=target, template=template, files=written, instructions=rendered.instructions)

    # -- contexts ----------------------------------------------------------

    def load_context(
        self,
        plugin_dir: Path,
        capabilities: Optional[Capabilities] = None,
        **runtime: Any,
    ) -> PluginContext:
        """Create and register a context for the plugin at plugin_dir.

        Real capabilities are used unless others (e.g. a MockRuntime's) are given.
        """
        manifest = load_manifest(plugin_dir)
        capabilities = capabilities or Capabilities.default(manifest.name)
        return self.contexts.create(
            manifest.name,
            manifest.version,
            PluginRuntimeConfig.from_manifest(manifest, **runtime),
            capabilities,
            plugins_root=self.plugins_root,
        )

    def remove_context(self, name: str) -> Optional[PluginContext]:
        return self.contexts.remove(name)

    async def activate(self, plugin_dir: Path, capabilities: Optional[Capabilities] = None) -> PluginInstance:
        """Load a plugin's entry file and run it up to enabled."""
        context = self.load_context(plugin_dir, capabilities)
        return await self.lifecycle.activate(plugin_dir, context)

    async def deactivate(self, instance: PluginInstance) -> None:
        """Disable and unload a plugin, then evict its context."""
        await self.lifecycle.disable(instance)
        await self.lifecycle.unload(instance)
        self.remove_context(instance.name)

    # -- tools -------------------------------------------------------------

    def tester(self, plugin_dir: Path, options=None):
        from devkit.tester import PluginTester
        return PluginTester(plugin_dir, options)

    def builder(self, plugin_dir: Path, options=None):
        from devkit.builder import PluginBuilder
        return PluginBuilder(plugin_dir, options)

    def dev_server(self, plugin_dir: Path, options=None):
        from devkit.server.dev_server import DevServer
        return DevServer(plugin_dir, options)

    def bump_version(self, plugin_dir: Path, part: str = "patch") -> str:
        """Increment the manifest version and save it back to plugin.yaml.

        Returns:
            The new version
        """
        manifest = load_manifest(plugin_dir)
        new_version = increment_version(manifest.version, part)
        save_manifest(plugin_dir, manifest.model_copy(update={"version": new_version}))
        logger.info(f"Bumped {manifest.name} from {manifest.version} to {new_version}")
        return new_version
