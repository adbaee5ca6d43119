"""Tests for loading plugin entry files and driving lifecycle transitions."""

import sys

import pytest

from devkit.errors import PluginLoadError
from devkit.plugins.lifecycle import PluginLifecycle, find_plugin_exports
from devkit.plugins.registry import PluginState
from devkit.testing import MockRuntime, load_plugin, run_plugin_lifecycle, validate_plugin_structure

REGISTER_ENTRY = '''def register(context):
    return {"context": context}
'''

FAILING_ENABLE_ENTRY = '''class Broken:
    async def on_enable(self):
        raise RuntimeError("cannot start")

    def __init__(self, context):
        self.context = context
'''


class TestFindPluginExports:
    """Static detection of plugin exports."""

    def test_detects_register_and_classes(self):
        source = '''
import devkit

def register(context):
    pass

class A(devkit.PluginBase):
    pass

class B:
    def on_unload(self):
        pass

class Helper:
    def run(self):
        pass
'''
        assert find_plugin_exports(source) == ["register", "A", "B"]

    def test_nothing_exported(self):
        assert find_plugin_exports("x = 1\n") == []

    def test_syntax_error_propagates(self):
        with pytest.raises(SyntaxError):
            find_plugin_exports("def broken(:\n")


class TestPluginLifecycle:
    """Tests for PluginLifecycle."""

    async def test_activate_runs_load_and_enable(self, plugin_dir):
        runtime = MockRuntime("stat-tracker")
        instance = await PluginLifecycle().activate(plugin_dir, runtime.create_context())

        assert instance.state == PluginState.ENABLED
        assert type(instance.plugin_object).__name__ == "StatTracker"
        assert runtime.logger.has_log("info", "loaded")
        assert runtime.events.was_emitted("stat-tracker:enabled", {"name": "stat-tracker"})

    async def test_disable_and_unload(self, plugin_dir):
        lifecycle = PluginLifecycle()
        instance = await lifecycle.activate(plugin_dir, MockRuntime("stat-tracker").create_context())

        assert await lifecycle.disable(instance)
        assert instance.state == PluginState.DISABLED
        assert await lifecycle.disable(instance)
        assert await lifecycle.unload(instance)
        assert instance.state == PluginState.UNLOADED

    async def test_register_function_factory(self, make_plugin):
        plugin = make_plugin(entry=REGISTER_ENTRY)
        context = MockRuntime("stat-tracker").create_context()
        instance = await PluginLifecycle().activate(plugin, context)
        assert instance.plugin_object == {"context": context}

    def test_import_error_recorded(self, make_plugin):
        plugin = make_plugin(entry='raise RuntimeError("bad import")\n')
        lifecycle = PluginLifecycle()
        instance = lifecycle.discover(plugin)

        assert lifecycle.load(instance) is False
        assert instance.state == PluginState.ERROR
        assert instance.error == "bad import"

    def test_entry_without_plugin_fails_to_load(self, make_plugin):
        plugin = make_plugin(entry="x = 1\n")
        lifecycle = PluginLifecycle()
        instance = lifecycle.discover(plugin)
        assert lifecycle.load(instance) is False
        assert "no register() function or plugin class" in instance.error

    def test_plugin_dir_on_path_only_while_loading(self, make_plugin):
        entry = "from stat_tracker_helpers import VALUE\n\n" + REGISTER_ENTRY
        plugin = make_plugin(entry=entry, files={"stat_tracker_helpers.py": "VALUE = 42\n"})
        lifecycle = PluginLifecycle()
        instance = lifecycle.discover(plugin)

        assert lifecycle.load(instance) is True
        assert str(instance.path) not in sys.path

    async def test_failing_hook_raises_from_activate(self, make_plugin):
        plugin = make_plugin(entry=FAILING_ENABLE_ENTRY)
        with pytest.raises(PluginLoadError) as exc_info:
            await PluginLifecycle().activate(plugin, MockRuntime("stat-tracker").create_context())
        assert "cannot start" in str(exc_info.value)

    async def test_transition_requires_instance(self, plugin_dir):
        lifecycle = PluginLifecycle()
        instance = lifecycle.discover(plugin_dir)
        assert await lifecycle.enable(instance) is False


class TestTestingHelpers:
    """Tests for load_plugin, run_plugin_lifecycle and validate_plugin_structure."""

    async def test_load_plugin_and_run_lifecycle(self, plugin_dir):
        runtime = MockRuntime("stat-tracker")
        plugin = load_plugin(plugin_dir, runtime)
        ran = await run_plugin_lifecycle(plugin)

        assert plugin.name == "stat-tracker"
        assert ran == ["on_load", "on_enable", "on_disable", "on_unload"]
        assert runtime.events.was_emitted("stat-tracker:enabled")

    async def test_run_lifecycle_skips_missing_hooks(self):
        class OnlyLoad:
            def on_load(self):
                pass

        assert await run_plugin_lifecycle(OnlyLoad()) == ["on_load"]

    def test_load_plugin_raises_on_failure(self, make_plugin):
        plugin = make_plugin(entry="x = 1\n")
        with pytest.raises(PluginLoadError):
            load_plugin(plugin)

    def test_validate_plugin_structure(self, make_plugin, valid_manifest):
        plugin = make_plugin(manifest={**valid_manifest, "version": "one"}, entry=None)
        errors = validate_plugin_structure(plugin)
        assert errors[0] == "Missing required file: plugin.py"
        assert any("semantic versioning" in e for e in errors[1:])
