"""Mock Runtime and test helpers for plugin authors."""

from devkit.testing.helpers import (
    create_mock_environment,
    load_plugin,
    run_plugin_lifecycle,
    validate_plugin_structure,
    wait_for,
)
from devkit.testing.mocks import (
    EmittedEvent,
    LogRecord,
    MockApi,
    MockConfig,
    MockDatabase,
    MockEvents,
    MockHooks,
    MockLogger,
    MockModel,
    MockRuntime,
    TriggeredHook,
)

__all__ = [
    "EmittedEvent",
    "LogRecord",
    "MockApi",
    "MockConfig",
    "MockDatabase",
    "MockEvents",
    "MockHooks",
    "MockLogger",
    "MockModel",
    "MockRuntime",
    "TriggeredHook",
    "create_mock_environment",
    "load_plugin",
    "run_plugin_lifecycle",
    "validate_plugin_structure",
    "wait_for",
]
