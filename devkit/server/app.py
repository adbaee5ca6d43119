"""FastAPI application served by the development server."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from devkit import __version__
from devkit.constants import ENTRY_FILE, MANIFEST_FILE
from devkit.errors import ManifestError
from devkit.plugins.manifest import load_manifest
from devkit.server.connections import make_message, timestamp

if TYPE_CHECKING:
    from devkit.server.dev_server import DevServer

logger = logging.getLogger(__name__)


def create_dev_app(server: DevServer) -> FastAPI:
    """Build the request/response and WebSocket surface for one DevServer."""
    app = FastAPI(
        title="Plugin Development Server",
        description=f"Live development server for {server.plugin_dir.name}",
        version=__version__,
    )

    if server.options.cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=False,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept"],
        )

    assets_path = server.plugin_dir / "assets"
    if assets_path.is_dir():
        app.mount("/assets", StaticFiles(directory=str(assets_path)), name="assets")
        logger.info("Mounted plugin assets at /assets")

    @app.get("/status")
    async def status():
        """Plugin and server status."""
        return {
            "plugin": server.plugin_name,
            "status": "development",
            "mode": "dev-server",
            "hot_reload": server.options.hot_reload,
            "watching": server.watching,
            "clients": server.connections.count,
            "timestamp": timestamp(),
        }

    @app.get("/config")
    async def config():
        """The parsed plugin manifest."""
        if not (server.plugin_dir / MANIFEST_FILE).exists():
            return JSONResponse(status_code=404, content={"error": "Plugin configuration not found"})
        try:
            return load_manifest(server.plugin_dir).to_yaml_dict()
        except ManifestError as e:
            logger.error(f"Failed to load configuration: {e}")
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to load configuration", "details": e.messages},
            )

    @app.get("/files")
    async def files():
        """Plugin files, excluding dependency, output and VCS directories."""
        try:
            return {"files": server.list_files()}
        except OSError as e:
            logger.error(f"Failed to list files: {e}")
            return JSONResponse(status_code=500, content={"error": "Failed to list files", "details": [str(e)]})

    @app.post("/reload")
    async def reload():
        """Broadcast a manual reload to every connected client."""
        await server.trigger_reload("manual")
        return {"success": True, "message": "Reload triggered"}

    @app.get("/dev-tools")
    async def dev_tools():
        """Enabled development features and key paths."""
        return {
            "features": {
                "hot_reload": server.options.hot_reload,
                "file_watching": server.options.watch,
                "websocket": True,
                "cors": server.options.cors,
            },
            "paths": {
                "plugin": str(server.plugin_dir),
                "config": str(server.plugin_dir / MANIFEST_FILE),
                "main": str(server.plugin_dir / ENTRY_FILE),
            },
            "websocket_url": server.get_websocket_url(),
        }

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await websocket.accept()
        client = server.connections.add_client(websocket)
        await server.connections.send_to_client(
            client.id, make_message("status", {**server.connection_status(), "status": "connected"})
        )
        try:
            while True:
                raw = await websocket.receive_text()
                await server.handle_client_message(client.id, raw)
        except WebSocketDisconnect:
            logger.debug(f"Client {client.id} closed the connection")
        finally:
            server.connections.remove_client(client.id)

    return app
