"""Development server: serves a plugin directory live and pushes file changes to clients."""

import asyncio
import errno
import json
import logging
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import uvicorn

from devkit.constants import DEFAULT_HOST, DEFAULT_PORT, IGNORED_DIRS
from devkit.errors import ManifestError, PortInUseError
from devkit.plugins.manifest import load_manifest
from devkit.server.app import create_dev_app
from devkit.server.connections import ConnectionManager, make_message, timestamp
from devkit.server.watcher import ChangeKind, FileEvent, FileWatcher
from devkit.utils.files import list_plugin_files

logger = logging.getLogger(__name__)

STARTUP_TIMEOUT = 10.0
WATCHER_STOP_TIMEOUT = 5.0


@dataclass
class DevServerOptions:
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    watch: bool = True
    hot_reload: bool = True
    cors: bool = True


class DevServer:
    """Serves one plugin directory over HTTP and WebSocket on a single port.

    Args:
        plugin_dir: Plugin root directory
        options: Server options
    """

    def __init__(self, plugin_dir: Path, options: Optional[DevServerOptions] = None):
        self.plugin_dir = Path(plugin_dir).resolve()
        self.options = options or DevServerOptions()
        self.connections = ConnectionManager()
        self.app = create_dev_app(self)

        self.running = False
        self._server: Optional[uvicorn.Server] = None
        self._serve_task: Optional[asyncio.Task] = None
        self._watch_task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    # -- state -------------------------------------------------------------

    @property
    def plugin_name(self) -> str:
        try:
            return load_manifest(self.plugin_dir).name
        except ManifestError:
            return self.plugin_dir.name

    @property
    def watching(self) -> bool:
        return self._watch_task is not None and not self._watch_task.done()

    def list_files(self) -> List[str]:
        return list_plugin_files(self.plugin_dir, IGNORED_DIRS)

    def connection_status(self) -> Dict[str, Any]:
        return {
            "plugin": self.plugin_name,
            "files": len(self.list_files()),
            "watching": self.watching,
            "timestamp": timestamp(),
        }

    def get_url(self) -> str:
        return f"http://{self.options.host}:{self.options.port}"

    def get_websocket_url(self) -> str:
        return f"ws://{self.options.host}:{self.options.port}/ws"

    # -- messaging ---------------------------------------------------------

    async def trigger_reload(self, reason: str, file: Optional[str] = None) -> int:
        logger.info(f"Plugin reload triggered: {reason}" + (f" ({file})" if file else ""))
        return await self.connections.broadcast(
            make_message("reload", {"reason": reason, "file": file, "timestamp": timestamp()})
        )

    async def handle_client_message(self, client_id: str, raw: str) -> None:
        """Answer one client message. Malformed or unknown messages are logged and ignored."""
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid WebSocket message from {client_id}: {e}")
            return
        if not isinstance(message, dict):
            logger.warning(f"Invalid WebSocket message from {client_id}: not an object")
            return

        msg_type = message.get("type")
        if msg_type == "ping":
            await self.connections.send_to_client(client_id, make_message("pong", {"timestamp": timestamp()}))
        elif msg_type == "get-status":
            await self.connections.send_to_client(client_id, make_message("status", self.connection_status()))
        elif msg_type == "trigger-reload":
            await self.trigger_reload("client-request")
        else:
            logger.warning(f"Unknown WebSocket message type: {msg_type}")

    async def handle_file_event(self, event: FileEvent) -> None:
        """Broadcast a file event; with hot reload, a change also broadcasts a reload."""
        logger.info(f"File {event.kind.value}: {event.relative}")
        await self.connections.broadcast(make_message(f"file-{event.kind.value}", {
            "file": event.relative,
            "path": str(event.path),
            "timestamp": timestamp(),
        }))
        if self.options.hot_reload and event.kind == ChangeKind.CHANGED:
            await self.trigger_reload("file-change", event.relative)

    async def _watch(self) -> None:
        watcher = FileWatcher(self.plugin_dir)
        try:
            async for events in watcher.changes(self._stop_event):
                for event in events:
                    await self.handle_file_event(event)
        except Exception as e:
            logger.error(f"File watcher stopped unexpectedly: {e}")

    # -- lifecycle ---------------------------------------------------------

    def _bind(self) -> socket.socket:
        try:
            sock = socket.create_server((self.options.host, self.options.port))
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                logger.error(f"Port {self.options.port} is already in use")
                raise PortInUseError(self.options.host, self.options.port) from e
            raise
        # port 0 binds an ephemeral port
        self.options.port = sock.getsockname()[1]
        return sock

    async def start(self) -> None:
        """Bind, start serving and start the file watcher.

        Raises:
            PortInUseError: The port is taken
        """
        if self.running:
            return

        sock = self._bind()
        config = uvicorn.Config(self.app, log_level="warning", lifespan="off")
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.create_task(self._server.serve(sockets=[sock]))

        loop = asyncio.get_running_loop()
        deadline = loop.time() + STARTUP_TIMEOUT
        while not self._server.started:
            if self._serve_task.done():
                sock.close()
                self._serve_task.result()
                raise RuntimeError("Development server exited during startup")
            if loop.time() > deadline:
                raise TimeoutError(f"Development server did not start within {STARTUP_TIMEOUT}s")
            await asyncio.sleep(0.05)

        if self.options.watch:
            self._stop_event = asyncio.Event()
            self._watch_task = asyncio.create_task(self._watch())

        self.running = True
        logger.info(f"Plugin development server started at {self.get_url()}")
        logger.info(f"Plugin: {self.plugin_name}, hot reload: {self.options.hot_reload}, watching: {self.options.watch}")

    async def stop(self) -> None:
        """Stop the watcher, close every connection, then stop the HTTP listener.

        Stopping a server that is not running does nothing.
        """
        if not self.running:
            return
        self.running = False
        logger.info("Stopping development server...")

        if self._watch_task is not None:
            self._stop_event.set()
            try:
                await asyncio.wait_for(self._watch_task, WATCHER_STOP_TIMEOUT)
            except asyncio.TimeoutError:
                logger.warning("File watcher did not stop in time, cancelling")
                self._watch_task.cancel()
            self._watch_task = None

        await self.connections.close_all()

        if self._server is not None:
            self._server.should_exit = True
            await self._serve_task
            self._server = None
            self._serve_task = None

        logger.info("Development server stopped")

    async def serve_forever(self) -> None:
        """Start and serve until the listener exits (e.g. on Ctrl+C), then stop."""
        await self.start()
        try:
            await self._serve_task
        finally:
            await self.stop()
