"""Tests for the development server."""

import socket

import aiohttp
import pytest
import yaml
from fastapi.testclient import TestClient
from watchfiles import Change

from devkit.errors import PortInUseError
from devkit.server import ChangeKind, ConnectionManager, DevServer, DevServerOptions, FileEvent, FileWatcher
from devkit.testing import wait_for


class FakeSocket:
    """Stands in for a WebSocket; records what the server sends."""

    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []
        self.closed_with = None

    async def send_json(self, message):
        if self.fail:
            raise ConnectionResetError("client went away")
        self.sent.append(message)

    async def close(self, code=1000):
        self.closed_with = code

    def types(self):
        return [message["type"] for message in self.sent]


@pytest.fixture
def server(plugin_dir):
    return DevServer(plugin_dir, DevServerOptions(host="127.0.0.1", port=0, watch=False))


@pytest.fixture
def client(server):
    with TestClient(server.app) as test_client:
        yield test_client


class TestHttpSurface:
    """Tests for the HTTP routes."""

    def test_status(self, client):
        data = client.get("/status").json()
        assert data["plugin"] == "stat-tracker"
        assert data["status"] == "development"
        assert data["mode"] == "dev-server"
        assert data["hot_reload"] is True
        assert data["watching"] is False
        assert "timestamp" in data

    def test_config(self, client):
        data = client.get("/config").json()
        assert data["name"] == "stat-tracker"
        assert data["permissions"]["read"] is True

    def test_config_missing(self, client, plugin_dir):
        (plugin_dir / "plugin.yaml").unlink()
        response = client.get("/config")
        assert response.status_code == 404
        assert response.json() == {"error": "Plugin configuration not found"}

    def test_config_invalid(self, client, plugin_dir, valid_manifest):
        (plugin_dir / "plugin.yaml").write_text(yaml.safe_dump({**valid_manifest, "name": "Stat Tracker"}))
        response = client.get("/config")
        assert response.status_code == 500
        assert response.json()["error"] == "Failed to load configuration"
        assert len(response.json()["details"]) == 1

    def test_undecodable_manifest(self, client, plugin_dir):
        (plugin_dir / "plugin.yaml").write_bytes(b"name: stat-tracker\nauthor: \xff\xfe\n")

        status = client.get("/status")
        assert status.status_code == 200
        assert status.json()["plugin"] == plugin_dir.name

        config = client.get("/config")
        assert config.status_code == 500
        assert config.json()["error"] == "Failed to load configuration"
        assert config.json()["details"][0].startswith("Manifest is not valid UTF-8")

    def test_files_skip_ignored_directories(self, client, plugin_dir):
        for relative in ("build/plugin.py", "vendor/lib.py", ".git/HEAD", "node_modules/x.js", "components/W.js"):
            path = plugin_dir / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("")
        assert client.get("/files").json() == {
            "files": ["README.md", "components/W.js", "plugin.py", "plugin.yaml"],
        }

    def test_reload(self, client):
        assert client.post("/reload").json() == {"success": True, "message": "Reload triggered"}

    def test_dev_tools(self, client, server):
        data = client.get("/dev-tools").json()
        assert data["features"]["websocket"] is True
        assert data["features"]["file_watching"] is False
        assert data["paths"]["config"].endswith("plugin.yaml")
        assert data["websocket_url"] == server.get_websocket_url()

    def test_cors_headers(self, client):
        response = client.get("/status", headers={"Origin": "http://panel.local"})
        assert response.headers["access-control-allow-origin"] == "*"

    def test_assets_served(self, plugin_dir):
        (plugin_dir / "assets").mkdir()
        (plugin_dir / "assets" / "icon.svg").write_text("<svg/>")
        server = DevServer(plugin_dir, DevServerOptions(watch=False))
        with TestClient(server.app) as test_client:
            assert test_client.get("/assets/icon.svg").text == "<svg/>"


class TestWebSocket:
    """Tests for the /ws endpoint."""

    def test_connect_ping_and_status(self, client):
        with client.websocket_connect("/ws") as ws:
            hello = ws.receive_json()
            assert hello["type"] == "status"
            assert hello["data"]["status"] == "connected"
            assert hello["data"]["plugin"] == "stat-tracker"
            assert hello["data"]["files"] == 3

            ws.send_json({"type": "ping"})
            pong = ws.receive_json()
            assert pong["type"] == "pong"
            assert "timestamp" in pong["data"]

            ws.send_json({"type": "get-status"})
            status = ws.receive_json()
            assert status["type"] == "status"
            assert "status" not in status["data"]

    def test_bad_messages_are_ignored(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("not json")
            ws.send_json({"type": "dance"})
            ws.send_json({"type": "ping"})
            assert ws.receive_json()["type"] == "pong"

    def test_client_requested_reload(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "trigger-reload"})
            message = ws.receive_json()
            assert message["type"] == "reload"
            assert message["data"]["reason"] == "client-request"


class TestBroadcast:
    """File events and reloads reach every connected client."""

    async def test_file_added_reaches_all_clients(self, server, plugin_dir):
        first, second = FakeSocket(), FakeSocket()
        server.connections.add_client(first)
        server.connections.add_client(second)

        await server.handle_file_event(FileEvent(ChangeKind.ADDED, plugin_dir / "new.js", "new.js"))

        for fake in (first, second):
            assert fake.types() == ["file-added"]
            assert fake.sent[0]["data"]["file"] == "new.js"

    async def test_change_triggers_reload_with_hot_reload(self, server, plugin_dir):
        fake = FakeSocket()
        server.connections.add_client(fake)

        await server.handle_file_event(FileEvent(ChangeKind.CHANGED, plugin_dir / "plugin.py", "plugin.py"))

        assert fake.types() == ["file-changed", "reload"]
        reload = fake.sent[1]["data"]
        assert (reload["reason"], reload["file"]) == ("file-change", "plugin.py")

    async def test_no_reload_without_hot_reload(self, plugin_dir):
        server = DevServer(plugin_dir, DevServerOptions(watch=False, hot_reload=False))
        fake = FakeSocket()
        server.connections.add_client(fake)
        await server.handle_file_event(FileEvent(ChangeKind.CHANGED, plugin_dir / "plugin.py", "plugin.py"))
        assert fake.types() == ["file-changed"]

    async def test_removed_file_does_not_reload(self, server, plugin_dir):
        fake = FakeSocket()
        server.connections.add_client(fake)
        await server.handle_file_event(FileEvent(ChangeKind.REMOVED, plugin_dir / "old.js", "old.js"))
        assert fake.types() == ["file-removed"]

    async def test_failing_client_is_dropped(self):
        manager = ConnectionManager()
        healthy = FakeSocket()
        manager.add_client(FakeSocket(fail=True))
        manager.add_client(healthy)

        reached = await manager.broadcast({"type": "reload", "data": {}})

        assert reached == 1
        assert manager.count == 1
        assert healthy.types() == ["reload"]
        assert manager.get_stats()["total_connections"] == 2

    async def test_close_all(self):
        manager = ConnectionManager()
        fake = FakeSocket()
        manager.add_client(fake)
        await manager.close_all()
        assert fake.closed_with == 1001
        assert manager.count == 0


class TestServerLifecycle:
    """Tests for start and stop against a real listener."""

    async def test_port_in_use(self, plugin_dir):
        holder = socket.create_server(("127.0.0.1", 0))
        try:
            port = holder.getsockname()[1]
            server = DevServer(plugin_dir, DevServerOptions(host="127.0.0.1", port=port, watch=False))
            with pytest.raises(PortInUseError) as exc_info:
                await server.start()
            assert exc_info.value.port == port
            assert server.running is False
        finally:
            holder.close()

    async def test_start_serves_and_stop_is_idempotent(self, server):
        await server.start()
        try:
            assert server.options.port != 0
            async with aiohttp.ClientSession() as session:
                async with session.get(f"{server.get_url()}/status") as response:
                    assert response.status == 200
                    assert (await response.json())["plugin"] == "stat-tracker"
                async with session.ws_connect(server.get_websocket_url()) as ws:
                    hello = await ws.receive_json(timeout=5)
                    assert hello["data"]["status"] == "connected"
        finally:
            await server.stop()
        assert server.running is False
        await server.stop()

    async def test_watcher_pushes_changes(self, plugin_dir):
        server = DevServer(plugin_dir, DevServerOptions(host="127.0.0.1", port=0))
        fake = FakeSocket()
        await server.start()
        server.connections.add_client(fake)
        target = plugin_dir / "plugin.py"
        try:
            assert server.watching

            def changed():
                target.write_text(target.read_text() + "\n")
                return "file-changed" in fake.types()

            await wait_for(changed, timeout=10, interval=0.3)
            assert "reload" in fake.types()
        finally:
            await server.stop()
        assert not server.watching


class TestFileWatcher:
    """Tests for mapping raw change records to file events."""

    def test_to_event(self, tmp_path):
        watcher = FileWatcher(tmp_path)
        event = watcher.to_event(Change.modified, str(tmp_path.resolve() / "components" / "W.js"))
        assert event.kind == ChangeKind.CHANGED
        assert event.relative == "components/W.js"

    def test_ignored_paths(self, tmp_path):
        watcher = FileWatcher(tmp_path, ignore_paths=[tmp_path / "build"])
        assert not watcher.watch_filter(Change.added, str(tmp_path / "node_modules" / "x.js"))
        assert not watcher.watch_filter(Change.added, str((tmp_path / "build" / "plugin.py").resolve()))
        assert watcher.watch_filter(Change.added, str(tmp_path / "plugin.py"))
