"""Error types raised by the plugin development toolkit."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional, Sequence


class DevkitError(Exception):
    """Base class for every toolkit error."""


class ManifestError(DevkitError):
    """Raised when a plugin manifest is missing, malformed or invalid.

    Attributes:
        messages: Every problem found, one human-readable message each.
        path: The manifest file the messages refer to, if known.
    """

    def __init__(self, messages: Iterable[str], path: Optional[Path] = None):
        self.messages: List[str] = list(messages)
        self.path = path
        where = f" ({path})" if path else ""
        details = "\n  - ".join(self.messages)
        super().__init__(f"Plugin manifest validation failed{where}:\n  - {details}")


class PluginPermissionError(DevkitError, PermissionError):
    """Raised when a plugin uses a capability it was not granted."""

    def __init__(self, plugin: str, permission: str):
        self.plugin = plugin
        self.permission = permission
        super().__init__(f"Plugin {plugin} does not have {permission} permission")


class ConfigUpdateError(DevkitError, ValueError):
    """Raised when a config update names unknown or immutable fields."""

    def __init__(self, plugin: str, fields: Sequence[str], reason: str = "unknown config fields"):
        self.plugin = plugin
        self.fields = list(fields)
        super().__init__(f"Plugin {plugin}: {reason}: {', '.join(self.fields)}")


class ObservabilityError(DevkitError):
    """Raised internally when a metrics/status lookup returns something unusable."""


class SubprocessError(DevkitError):
    """A child process exited with a non-zero status or could not be started."""

    def __init__(self, command: Sequence[str], exit_code: int, stderr: str = "", stdout: str = ""):
        self.command = list(command)
        self.exit_code = exit_code
        self.stderr = stderr
        self.stdout = stdout
        output = (stderr or stdout).strip()
        super().__init__(
            f"Command '{' '.join(self.command)}' failed with exit code {exit_code}"
            + (f": {output}" if output else "")
        )


class BuildStageError(DevkitError):
    """A build pipeline stage failed. Output written so far is left in place."""

    def __init__(self, stage: str, plugin: str, cause: BaseException | str):
        self.stage = stage
        self.plugin = plugin
        self.cause = cause
        super().__init__(f"Build of plugin '{plugin}' failed at stage '{stage}': {cause}")


class PortInUseError(DevkitError, OSError):
    """The development server could not bind because the port is taken."""

    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port
        super().__init__(f"Port {port} is already in use on {host}")


class PluginLoadError(DevkitError):
    """A plugin entry file could not be imported or exposes no plugin."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot load plugin from {path}: {reason}")


class TemplateError(DevkitError):
    """Base class for template catalog and scaffolding errors."""


class TemplateNotFoundError(TemplateError, KeyError):
    def __init__(self, name: str, available: Sequence[str] = ()):
        self.name = name
        hint = f" (available: {', '.join(available)})" if available else ""
        super().__init__(f"Template '{name}' not found{hint}")

    def __str__(self) -> str:
        return self.args[0]


class TemplateVariableError(TemplateError):
    """Required template variables were not supplied."""

    def __init__(self, template: str, missing: Sequence[str]):
        self.template = template
        self.missing = list(missing)
        super().__init__(f"Template '{template}' is missing variables: {', '.join(self.missing)}")


class TemplateApplyError(TemplateError):
    """Writing a scaffold failed part-way.

    Attributes:
        path: The file or directory whose creation failed.
        written: Files successfully written before the failure.
    """

    def __init__(self, path: Path, written: Sequence[Path], cause: BaseException):
        self.path = path
        self.written = list(written)
        self.cause = cause
        super().__init__(
            f"Failed to write {path}: {cause} ({len(self.written)} file(s) already written)"
        )
