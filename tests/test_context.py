"""Tests for the plugin context: permissions, config updates, paths and observability."""

import pytest

from devkit.errors import ConfigUpdateError, PluginPermissionError
from devkit.plugins.context import PluginContext
from devkit.plugins.registry import ContextRegistry
from devkit.testing import MockRuntime


@pytest.fixture
def runtime():
    return MockRuntime("stat-tracker")


class TestPermissions:
    """Capability use is checked against the manifest's permission flags."""

    def test_read_only_context(self, runtime):
        context = runtime.create_context(permissions={"read": True})
        assert context.has_permission("read") is True
        assert context.has_permission("write") is False
        assert context.has_permission("teleport") is False

    def test_database_requires_permission(self, runtime):
        context = runtime.create_context(permissions={"read": True})
        with pytest.raises(PluginPermissionError) as exc_info:
            context.database.model("players")
        assert exc_info.value.permission == "database"
        assert str(exc_info.value) == "Plugin stat-tracker does not have database permission"

    async def test_database_query_requires_permission(self, runtime):
        context = runtime.create_context(permissions={"read": True})
        with pytest.raises(PluginPermissionError):
            await context.database.query("SELECT 1")
        assert runtime.database.get_operations() == []

    async def test_network_requires_permission(self, runtime):
        context = runtime.create_context(permissions={"read": True})
        with pytest.raises(PluginPermissionError):
            await context.api.get("/servers")
        assert runtime.api.requests == []

    def test_routes_and_hooks_require_permission(self, runtime):
        context = runtime.create_context(permissions={"read": True})
        with pytest.raises(PluginPermissionError):
            context.register_route({"path": "/stats", "method": "GET", "handler": "stats"})
        with pytest.raises(PluginPermissionError):
            context.register_hook({"name": "h", "type": "after", "target": "server.start", "handler": "f"})

    async def test_granted_capabilities_reach_backing_services(self, runtime):
        context = runtime.create_context()
        players = context.model("players")
        await players.create({"name": "alex"})
        context.register_route({"path": "/stats", "method": "GET", "handler": "stats"})

        assert runtime.database.get_data("players") == [{"id": 1, "name": "alex"}]
        assert "GET:/stats" in context.api.routes

    async def test_events_and_hook_triggers_are_unguarded(self, runtime):
        context = runtime.create_context(permissions={"read": True})
        context.events.emit("ping", 1)
        assert await context.hooks.trigger("unknown", {"x": 1}) == {"x": 1}
        assert runtime.events.was_emitted("ping", 1)


class TestUpdateConfig:
    """Tests for update_config."""

    def test_merges_and_emits(self, runtime):
        context = runtime.create_context(permissions={"read": True})
        config = context.update_config({"debug": True, "permissions": {"write": True}})

        assert config.debug is True
        assert config.permissions.write is True
        assert config.permissions.read is True
        assert context.has_permission("write")
        assert runtime.events.was_emitted("config-updated")

    def test_unknown_fields_rejected(self, runtime):
        context = runtime.create_context()
        with pytest.raises(ConfigUpdateError) as exc_info:
            context.update_config({"colour": "red", "debug": True})
        assert exc_info.value.fields == ["colour"]
        assert context.config.debug is False
        assert not runtime.events.was_emitted("config-updated")

    def test_name_and_version_are_immutable(self, runtime):
        context = runtime.create_context()
        with pytest.raises(ConfigUpdateError):
            context.update_config({"name": "other"})
        assert context.name == "stat-tracker"
        # Restating the current value is allowed
        context.update_config({"name": "stat-tracker"})

    def test_unknown_permission_flag_rejected(self, runtime):
        context = runtime.create_context()
        with pytest.raises(ConfigUpdateError) as exc_info:
            context.update_config({"permissions": {"fly": True}})
        assert exc_info.value.fields == ["permissions.fly"]

    def test_invalid_values_rejected(self, runtime):
        context = runtime.create_context()
        with pytest.raises(ConfigUpdateError):
            context.update_config({"hooks": [{"name": "h"}]})
        assert context.config.hooks == []


class TestPaths:
    """Tests for the data/config/logs path derivations."""

    def test_default_root(self, runtime):
        context = PluginContext("stat-tracker", "1.0.0", {"author": "x"}, runtime.capabilities())
        assert context.get_data_path() == "/plugins/stat-tracker/data"
        assert context.get_config_path() == "/plugins/stat-tracker/config"
        assert context.get_logs_path() == "/plugins/stat-tracker/logs"

    def test_custom_root(self, runtime):
        context = PluginContext(
            "stat-tracker", "1.0.0", {"author": "x"}, runtime.capabilities(), plugins_root="/srv/panel/plugins/"
        )
        assert context.get_data_path() == "/srv/panel/plugins/stat-tracker/data"


class TestObservability:
    """get_metrics and get_status never raise."""

    async def test_metrics(self, runtime):
        runtime.api.set_response("GET", "/plugins/stat-tracker/metrics", {"players": 12})
        context = runtime.create_context(permissions={"read": True})
        assert await context.get_metrics() == {"players": 12}

    async def test_metrics_http_error_returns_none(self, runtime):
        runtime.api.set_response("GET", "/plugins/stat-tracker/metrics", {"error": "boom"}, status=500)
        context = runtime.create_context()
        assert await context.get_metrics() is None
        assert runtime.logger.has_log("warn", "Failed to get plugin metrics")

    async def test_status(self, runtime):
        runtime.api.set_response("GET", "/plugins/stat-tracker/status", {"status": "running"})
        context = runtime.create_context()
        assert await context.get_status() == "running"

    async def test_malformed_status_is_unknown(self, runtime):
        runtime.api.set_response("GET", "/plugins/stat-tracker/status", ["running"])
        context = runtime.create_context()
        assert await context.get_status() == "unknown"
        assert runtime.logger.has_log("warn", "Failed to get plugin status")

    async def test_failed_status_is_unknown(self, runtime):
        runtime.api.set_response("GET", "/plugins/stat-tracker/status", None, status=503)
        context = runtime.create_context()
        assert await context.get_status() == "unknown"


class TestContextRegistry:
    """Tests for ContextRegistry."""

    def test_create_get_remove(self, runtime):
        registry = ContextRegistry()
        context = registry.create("stat-tracker", "1.0.0", {"author": "x"}, runtime.capabilities())
        assert registry.get("stat-tracker") is context
        assert registry.count() == 1
        assert registry.remove("stat-tracker") is context
        assert registry.get("stat-tracker") is None

    def test_create_replaces_existing(self, runtime):
        registry = ContextRegistry()
        first = registry.create("stat-tracker", "1.0.0", {"author": "x"}, runtime.capabilities())
        second = registry.create("stat-tracker", "1.1.0", {"author": "x"}, runtime.capabilities())
        assert registry.get("stat-tracker") is second
        assert second is not first
        assert registry.count() == 1

    def test_registries_are_independent(self, runtime):
        first, second = ContextRegistry(), ContextRegistry()
        first.create("stat-tracker", "1.0.0", {"author": "x"}, runtime.capabilities())
        assert not second.has("stat-tracker")
