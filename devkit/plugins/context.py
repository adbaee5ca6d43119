"""PluginContext - the capability gateway passed to each plugin.

A plugin never touches the backing services directly: the context wraps the
logger, database, api, events and hooks capabilities and checks the manifest's
permission flags before any capability-touching operation.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import Field, ValidationError

from devkit.constants import PLUGINS_ROOT
from devkit.errors import ConfigUpdateError, ObservabilityError, PluginPermissionError
from devkit.plugins.capabilities import (
    ApiResponse,
    Capabilities,
    PluginApi,
    PluginDatabase,
    PluginEvents,
    PluginHooks,
    PluginLogger,
    PluginModel,
)
from devkit.plugins.manifest import PERMISSION_FLAGS, ApiDefinition, HookDefinition, PluginManifest

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = frozenset({"name", "version"})


class PluginRuntimeConfig(PluginManifest):
    """Manifest fields plus values set while the plugin runs."""

    enabled: bool = True
    debug: bool = False
    settings: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_manifest(cls, manifest: PluginManifest, **runtime: Any) -> "PluginRuntimeConfig":
        return cls.model_validate({**manifest.model_dump(), **runtime})


class GuardedDatabase(PluginDatabase):
    """Database view that requires the ``database`` permission."""

    def __init__(self, context: "PluginContext", database: PluginDatabase):
        self._context = context
        self._database = database

    async def query(self, sql: str, params: Optional[List[Any]] = None) -> Dict[str, Any]:
        self._context.validate_permission("database")
        return await self._database.query(sql, params)

    async def transaction(self, callback):
        self._context.validate_permission("database")
        return await self._database.transaction(callback)

    def model(self, name: str) -> PluginModel:
        self._context.validate_permission("database")
        return self._database.model(name)


class GuardedApi(PluginApi):
    """Api view: outbound calls need ``network``, route changes need ``routes``."""

    def __init__(self, context: "PluginContext", api: PluginApi):
        super().__init__()
        self._context = context
        self._api = api

    async def request(self, method: str, path: str, data: Any = None, headers=None, timeout=None) -> ApiResponse:
        self._context.validate_permission("network")
        return await self._api.request(method, path, data, headers=headers, timeout=timeout)

    def register_route(self, definition: Union[ApiDefinition, Dict[str, Any]]) -> ApiDefinition:
        self._context.validate_permission("routes")
        return self._api.register_route(definition)

    def unregister_route(self, path: str, method: str) -> None:
        self._context.validate_permission("routes")
        self._api.unregister_route(path, method)

    @property
    def routes(self) -> Dict[str, ApiDefinition]:
        return self._api.routes


class GuardedHooks(PluginHooks):
    """Hooks view: registration needs the ``hooks`` permission."""

    def __init__(self, context: "PluginContext", hooks: PluginHooks):
        self._context = context
        self._hooks = hooks

    def register(self, definition, handler: Optional[Callable[[Any], Any]] = None) -> HookDefinition:
        self._context.validate_permission("hooks")
        return self._hooks.register(definition, handler)

    def unregister(self, name: str) -> None:
        self._context.validate_permission("hooks")
        self._hooks.unregister(name)

    async def trigger(self, name: str, data: Any = None) -> Any:
        return await self._hooks.trigger(name, data)


class PluginContext:
    """Runtime context for one plugin.

    Args:
        name: Plugin name (immutable)
        version: Plugin version (immutable)
        config: Manifest or runtime config; a manifest is promoted to runtime config
        capabilities: Backing services, real or mock
        plugins_root: Base for the data/config/logs path derivations
    """

    def __init__(
        self,
        name: str,
        version: str,
        config: Union[PluginManifest, Dict[str, Any]],
        capabilities: Capabilities,
        plugins_root: str = PLUGINS_ROOT,
    ):
        self._name = name
        self._version = version
        if isinstance(config, PluginRuntimeConfig):
            self.config = config
        elif isinstance(config, PluginManifest):
            self.config = PluginRuntimeConfig.from_manifest(config)
        else:
            self.config = PluginRuntimeConfig.model_validate({"name": name, "version": version, **config})
        self.capabilities = capabilities
        self.plugins_root = plugins_root.rstrip("/")

        self.logger: PluginLogger = capabilities.logger
        self.events: PluginEvents = capabilities.events
        self.database = GuardedDatabase(self, capabilities.database)
        self.api = GuardedApi(self, capabilities.api)
        self.hooks = GuardedHooks(self, capabilities.hooks)

    @property
    def name(self) -> str:
        return self._name

    @property
    def version(self) -> str:
        return self._version

    # -- configuration -----------------------------------------------------

    def update_config(self, partial: Dict[str, Any]) -> PluginRuntimeConfig:
        """Merge known fields into the config and emit ``config-updated``.

        Raises:
            ConfigUpdateError: Unknown fields, an attempt to change name/version,
                or values that fail validation. The config is left unchanged.
        """
        known = set(PluginRuntimeConfig.model_fields)
        unknown = sorted(key for key in partial if key not in known)
        if unknown:
            raise ConfigUpdateError(self.name, unknown)

        immutable = sorted(
            key for key in partial if key in IMMUTABLE_FIELDS and partial[key] != getattr(self.config, key)
        )
        if immutable:
            raise ConfigUpdateError(self.name, immutable, reason="immutable config fields")

        bad_flags = sorted(flag for flag in partial.get("permissions") or {} if flag not in PERMISSION_FLAGS)
        if bad_flags:
            raise ConfigUpdateError(self.name, [f"permissions.{flag}" for flag in bad_flags])

        merged = self.config.model_dump()
        for key, value in partial.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value
        try:
            self.config = PluginRuntimeConfig.model_validate(merged)
        except ValidationError as e:
            fields = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
            raise ConfigUpdateError(self.name, fields, reason="invalid config values") from e

        self.events.emit("config-updated", {"plugin": self.name, "config": self.config.model_dump(mode="json")})
        return self.config

    # -- permissions -------------------------------------------------------

    def has_permission(self, permission: str) -> bool:
        if permission not in PERMISSION_FLAGS:
            return False
        return bool(getattr(self.config.permissions, permission, False))

    def validate_permission(self, permission: str) -> None:
        if not self.has_permission(permission):
            raise PluginPermissionError(self.name, permission)

    # -- guarded conveniences ---------------------------------------------

    def register_route(self, definition: Union[ApiDefinition, Dict[str, Any]]) -> ApiDefinition:
        return self.api.register_route(definition)

    def register_hook(self, definition, handler: Optional[Callable[[Any], Any]] = None) -> HookDefinition:
        return self.hooks.register(definition, handler)

    def model(self, name: str) -> PluginModel:
        return self.database.model(name)

    # -- paths -------------------------------------------------------------

    def get_data_path(self) -> str:
        return f"{self.plugins_root}/{self.name}/data"

    def get_config_path(self) -> str:
        return f"{self.plugins_root}/{self.name}/config"

    def get_logs_path(self) -> str:
        return f"{self.plugins_root}/{self.name}/logs"

    # -- observability -----------------------------------------------------

    async def get_metrics(self) -> Optional[Any]:
        """Fetch the plugin's metrics from the panel, or None on any failure."""
        try:
            response = await self.capabilities.api.get(f"/plugins/{self.name}/metrics")
            if response.status >= 400:
                raise ObservabilityError(f"HTTP {response.status} fetching metrics for {self.name}")
            return response.data
        except Exception as e:
            self.logger.warn("Failed to get plugin metrics", {"error": str(e)})
            return None

    async def get_status(self) -> str:
        """Fetch the plugin's status from the panel, or "unknown" on any failure."""
        try:
            response = await self.capabilities.api.get(f"/plugins/{self.name}/status")
            if response.status >= 400:
                raise ObservabilityError(f"HTTP {response.status} fetching status for {self.name}")
            if not isinstance(response.data, dict) or "status" not in response.data:
                raise ObservabilityError(f"Malformed status response for {self.name}")
            return str(response.data["status"])
        except Exception as e:
            self.logger.warn("Failed to get plugin status", {"error": str(e)})
            return "unknown"

    def __repr__(self) -> str:
        return f"PluginContext(name={self.name!r}, version={self.version!r})"
