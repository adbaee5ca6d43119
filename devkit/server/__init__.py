"""Development server for live plugin development."""

from devkit.server.connections import ConnectionManager, make_message
from devkit.server.dev_server import DevServer, DevServerOptions
from devkit.server.watcher import ChangeKind, FileEvent, FileWatcher

__all__ = [
    "ChangeKind",
    "ConnectionManager",
    "DevServer",
    "DevServerOptions",
    "FileEvent",
    "FileWatcher",
    "make_message",
]
