"""Plugin manifest model - describes a plugin's identity, permissions, routes and hooks."""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from devkit.constants import MANIFEST_FILE
from devkit.errors import ManifestError

logger = logging.getLogger(__name__)

NAME_PATTERN = r"^[a-z0-9_-]+$"
VERSION_PATTERN = r"^\d+\.\d+\.\d+"

NAME_MESSAGE = "Plugin name must contain only lowercase letters, numbers, hyphens, and underscores"
VERSION_MESSAGE = "Plugin version must follow semantic versioning (e.g., 1.0.0)"

PERMISSION_FLAGS = ("read", "write", "execute", "network", "database", "filesystem", "routes", "hooks")


class PluginPermissions(BaseModel):
    """Capabilities a plugin may use. Unspecified means read-only."""

    read: bool = True
    write: bool = False
    execute: bool = False
    network: bool = False
    database: bool = False
    filesystem: bool = False
    routes: bool = False
    hooks: bool = False


class PluginDependency(BaseModel):
    name: str
    version: str
    optional: bool = False


class ParameterDefinition(BaseModel):
    name: str
    type: Literal["string", "number", "boolean", "object", "array"] = "string"
    required: bool = False
    description: Optional[str] = None


class ResponseDefinition(BaseModel):
    status: int
    description: str = ""
    response_schema: Optional[Dict[str, Any]] = Field(default=None, alias="schema")

    model_config = ConfigDict(populate_by_name=True)


class ApiDefinition(BaseModel):
    """A route the plugin exposes through the panel."""

    path: str
    method: Literal["GET", "POST", "PUT", "DELETE", "PATCH"] = "GET"
    handler: str
    middleware: List[str] = Field(default_factory=list)
    auth: bool = False
    description: Optional[str] = None
    parameters: List[ParameterDefinition] = Field(default_factory=list)
    responses: List[ResponseDefinition] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.method}:{self.path}"


class HookDefinition(BaseModel):
    """A hook into a panel operation, run before, after or instead of it."""

    name: str
    type: Literal["before", "after", "replace"] = "after"
    target: str
    handler: str
    priority: int = 0


class PluginManifest(BaseModel):
    """Plugin manifest loaded from plugin.yaml."""

    name: str = Field(..., pattern=NAME_PATTERN, description="Unique plugin name (lowercase, digits, - and _)")
    version: str = Field(..., pattern=VERSION_PATTERN, description="Semantic version, major.minor.patch prefix")
    author: str = Field(..., description="Plugin author")
    description: str = Field(default="", description="Plugin description")
    permissions: PluginPermissions = Field(default_factory=PluginPermissions)
    dependencies: List[PluginDependency] = Field(default_factory=list)
    apis: List[ApiDefinition] = Field(default_factory=list, description="Routes exposed by the plugin")
    hooks: List[HookDefinition] = Field(default_factory=list, description="Hooks registered by the plugin")
    scripts: Dict[str, str] = Field(
        default_factory=dict,
        description="Named command lines, e.g. {'test': 'python run_tests.py', 'build': '...'}",
    )

    def to_yaml_dict(self) -> Dict[str, Any]:
        """Serialize to the plain structure written to plugin.yaml."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def validate_manifest_data(data: Any) -> List[str]:
    """Validate raw manifest data, collecting every problem.

    Name and version are checked first so their messages lead the list.

    Args:
        data: Parsed manifest document

    Returns:
        List of human-readable messages, empty if the manifest is valid
    """
    if not isinstance(data, dict):
        return [f"Manifest must be a mapping, got {type(data).__name__}"]

    errors = []
    name = data.get("name")
    version = data.get("version")

    if not name:
        errors.append("Plugin name is required")
    elif not isinstance(name, str) or not re.match(NAME_PATTERN, name):
        errors.append(f"{NAME_MESSAGE}: {name!r}")

    if not version:
        errors.append("Plugin version is required")
    elif not re.match(VERSION_PATTERN, str(version)):
        errors.append(f"{VERSION_MESSAGE}: {version!r}")

    if not data.get("author"):
        errors.append("Plugin author is required")

    try:
        PluginManifest.model_validate(data)
    except ValidationError as e:
        for err in e.errors():
            field = ".".join(str(part) for part in err["loc"])
            # name/version/author already reported above
            if field in ("name", "version", "author"):
                continue
            errors.append(f"{field}: {err['msg']}")

    return errors


def load_manifest(plugin_dir: Path) -> PluginManifest:
    """Load and validate plugin.yaml from a plugin directory.

    Args:
        plugin_dir: Plugin root directory

    Returns:
        Validated PluginManifest

    Raises:
        ManifestError: File missing, unparseable or invalid
    """
    manifest_file = Path(plugin_dir) / MANIFEST_FILE
    if not manifest_file.exists():
        raise ManifestError([f"Plugin configuration not found at {manifest_file}"], manifest_file)

    try:
        with open(manifest_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except UnicodeDecodeError as e:
        raise ManifestError([f"Manifest is not valid UTF-8: {e}"], manifest_file) from e
    except yaml.YAMLError as e:
        raise ManifestError([f"Invalid YAML: {e}"], manifest_file) from e
    except OSError as e:
        raise ManifestError([f"Cannot read manifest: {e}"], manifest_file) from e

    errors = validate_manifest_data(data)
    if errors:
        raise ManifestError(errors, manifest_file)

    manifest = PluginManifest.model_validate(data)
    logger.debug(f"Loaded manifest for plugin {manifest.name} from {manifest_file}")
    return manifest


def save_manifest(plugin_dir: Path, manifest: PluginManifest) -> Path:
    """Write a manifest back to plugin.yaml. The only operation that does so."""
    manifest_file = Path(plugin_dir) / MANIFEST_FILE
    with open(manifest_file, "w", encoding="utf-8") as f:
        yaml.safe_dump(manifest.to_yaml_dict(), f, sort_keys=False, allow_unicode=True, indent=2)
    logger.info(f"Saved manifest for plugin {manifest.name} to {manifest_file}")
    return manifest_file


def merge_with_defaults(partial: Dict[str, Any]) -> Dict[str, Any]:
    """Fill in defaults for a partial manifest document."""
    defaults: Dict[str, Any] = {
        "name": "",
        "version": "1.0.0",
        "author": "",
        "description": "",
        "permissions": PluginPermissions().model_dump(),
        "dependencies": [],
        "apis": [],
        "hooks": [],
    }
    return {**defaults, **partial}


def find_plugin_root(start: Path) -> Path:
    """Walk up from start to the first directory containing plugin.yaml.

    Raises:
        ManifestError: No plugin.yaml in start or any parent directory
    """
    current = Path(start).resolve()
    for candidate in (current, *current.parents):
        if (candidate / MANIFEST_FILE).exists():
            return candidate
    raise ManifestError([f"Plugin root not found (no {MANIFEST_FILE} in {current} or its parents)"])
