"""Capability interfaces handed to plugins, and their real implementations.

Each capability (logger, database, api, events, hooks) is an abstract interface
with two implementations: the ones in this module, backed by stdlib logging,
SQLite, aiohttp and in-process dispatch, and the in-memory mocks in
devkit.testing.mocks. Callers pick one at construction time.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import aiohttp

from devkit.constants import PANEL_API_URL
from devkit.plugins.manifest import ApiDefinition, HookDefinition

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


def matches_filter(record: Dict[str, Any], criteria: Optional[Dict[str, Any]]) -> bool:
    """True if every key in criteria equals the record's value, type included."""
    if not criteria:
        return True
    for key, expected in criteria.items():
        if key not in record:
            return False
        actual = record[key]
        if actual != expected or isinstance(actual, bool) != isinstance(expected, bool):
            return False
    return True


# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------


class PluginLogger(ABC):
    @abstractmethod
    def log(self, level: str, message: str, meta: Optional[Dict[str, Any]] = None) -> None:
        ...

    @abstractmethod
    def child(self, **bindings: Any) -> "PluginLogger":
        """Return a logger that adds bindings to every entry's metadata."""

    def debug(self, message: str, meta: Optional[Dict[str, Any]] = None) -> None:
        self.log("debug", message, meta)

    def info(self, message: str, meta: Optional[Dict[str, Any]] = None) -> None:
        self.log("info", message, meta)

    def warn(self, message: str, meta: Optional[Dict[str, Any]] = None) -> None:
        self.log("warn", message, meta)

    warning = warn

    def error(self, message: str, meta: Optional[Dict[str, Any]] = None) -> None:
        self.log("error", message, meta)


_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class StandardLogger(PluginLogger):
    """Writes plugin log entries to the ``plugin.<name>`` stdlib logger."""

    def __init__(self, plugin_name: str, bindings: Optional[Dict[str, Any]] = None):
        self.plugin_name = plugin_name
        self.bindings = dict(bindings or {})
        self._logger = logging.getLogger(f"plugin.{plugin_name}")

    def log(self, level: str, message: str, meta: Optional[Dict[str, Any]] = None) -> None:
        merged = {**self.bindings, **(meta or {})}
        self._logger.log(
            _LEVELS.get(level, logging.INFO),
            message,
            extra={"plugin_name": self.plugin_name, "meta": merged},
        )

    def child(self, **bindings: Any) -> "StandardLogger":
        return StandardLogger(self.plugin_name, {**self.bindings, **bindings})


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


class PluginModel(ABC):
    """Document-style access to one table."""

    @abstractmethod
    async def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def find_many(self, criteria: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        ...

    async def find_unique(self, criteria: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        records = await self.find_many(criteria)
        return records[0] if records else None

    @abstractmethod
    async def update(self, criteria: Dict[str, Any], data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def delete(self, criteria: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ...


class PluginDatabase(ABC):
    @abstractmethod
    async def query(self, sql: str, params: Optional[List[Any]] = None) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def transaction(self, callback: Callable[[Any], Awaitable[Any]]) -> Any:
        ...

    @abstractmethod
    def model(self, name: str) -> PluginModel:
        ...


class SqliteModel(PluginModel):
    def __init__(self, db: "SqliteDatabase", name: str):
        self._db = db
        self.name = name

    def _rows(self) -> List[tuple]:
        cur = self._db.connection.execute(
            "SELECT id, data FROM documents WHERE collection = ? ORDER BY id", (self.name,)
        )
        return cur.fetchall()

    async def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        conn = self._db.connection
        (max_id,) = conn.execute(
            "SELECT COALESCE(MAX(id), 0) FROM documents WHERE collection = ?", (self.name,)
        ).fetchone()
        record = {"id": max_id + 1, **data}
        conn.execute(
            "INSERT INTO documents (collection, id, data) VALUES (?, ?, ?)",
            (self.name, record["id"], json.dumps(record)),
        )
        conn.commit()
        return record

    async def find_many(self, criteria: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        records = [json.loads(data) for _id, data in self._rows()]
        return [r for r in records if matches_filter(r, criteria)]

    async def update(self, criteria: Dict[str, Any], data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for row_id, raw in self._rows():
            record = json.loads(raw)
            if matches_filter(record, criteria):
                record.update(data)
                self._db.connection.execute(
                    "UPDATE documents SET data = ? WHERE collection = ? AND id = ?",
                    (json.dumps(record), self.name, row_id),
                )
                self._db.connection.commit()
                return record
        return None

    async def delete(self, criteria: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for row_id, raw in self._rows():
            record = json.loads(raw)
            if matches_filter(record, criteria):
                self._db.connection.execute(
                    "DELETE FROM documents WHERE collection = ? AND id = ?", (self.name, row_id)
                )
                self._db.connection.commit()
                return record
        return None


class SqliteTransaction:
    def __init__(self, connection: sqlite3.Connection):
        self._connection = connection

    async def query(self, sql: str, params: Optional[List[Any]] = None) -> Dict[str, Any]:
        return _execute(self._connection, sql, params)

    async def commit(self) -> None:
        self._connection.commit()

    async def rollback(self) -> None:
        self._connection.rollback()


def _execute(connection: sqlite3.Connection, sql: str, params: Optional[List[Any]]) -> Dict[str, Any]:
    cur = connection.execute(sql, list(params or []))
    columns = [d[0] for d in cur.description] if cur.description else []
    rows = [dict(zip(columns, row)) for row in cur.fetchall()] if columns else []
    return {"rows": rows, "row_count": len(rows) if columns else cur.rowcount}


class SqliteDatabase(PluginDatabase):
    """Per-plugin document store kept in SQLite.

    Args:
        path: Database file, or ":memory:" for a throwaway store
    """

    def __init__(self, path: Union[str, Path] = ":memory:"):
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self.path = str(path)
        self.connection = sqlite3.connect(self.path)
        self.connection.execute(
            "CREATE TABLE IF NOT EXISTS documents ("
            "collection TEXT NOT NULL, id INTEGER NOT NULL, data TEXT NOT NULL, "
            "PRIMARY KEY (collection, id))"
        )
        self.connection.commit()

    async def query(self, sql: str, params: Optional[List[Any]] = None) -> Dict[str, Any]:
        result = _execute(self.connection, sql, params)
        self.connection.commit()
        return result

    async def transaction(self, callback: Callable[[Any], Awaitable[Any]]) -> Any:
        tx = SqliteTransaction(self.connection)
        try:
            result = await callback(tx)
        except Exception:
            self.connection.rollback()
            raise
        self.connection.commit()
        return result

    def model(self, name: str) -> SqliteModel:
        return SqliteModel(self, name)

    def close(self) -> None:
        self.connection.close()


# ---------------------------------------------------------------------------
# Outbound API
# ---------------------------------------------------------------------------


@dataclass
class ApiResponse:
    status: int
    data: Any = None
    headers: Dict[str, str] = field(default_factory=dict)


class PluginApi(ABC):
    """Outbound calls to the panel API plus route registration."""

    def __init__(self):
        self._routes: Dict[str, ApiDefinition] = {}

    @abstractmethod
    async def request(
        self,
        method: str,
        path: str,
        data: Any = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> ApiResponse:
        ...

    async def get(self, path: str, **options: Any) -> ApiResponse:
        return await self.request("GET", path, **options)

    async def post(self, path: str, data: Any = None, **options: Any) -> ApiResponse:
        return await self.request("POST", path, data, **options)

    async def put(self, path: str, data: Any = None, **options: Any) -> ApiResponse:
        return await self.request("PUT", path, data, **options)

    async def delete(self, path: str, **options: Any) -> ApiResponse:
        return await self.request("DELETE", path, **options)

    def register_route(self, definition: Union[ApiDefinition, Dict[str, Any]]) -> ApiDefinition:
        if isinstance(definition, dict):
            definition = ApiDefinition.model_validate(definition)
        self._routes[definition.key] = definition
        logger.debug(f"Registered route {definition.key}")
        return definition

    def unregister_route(self, path: str, method: str) -> None:
        self._routes.pop(f"{method.upper()}:{path}", None)

    @property
    def routes(self) -> Dict[str, ApiDefinition]:
        return self._routes


class HttpApi(PluginApi):
    """Calls the panel API over HTTP with aiohttp."""

    def __init__(self, base_url: str = PANEL_API_URL, token: Optional[str] = None, timeout: float = 30.0):
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    async def request(
        self,
        method: str,
        path: str,
        data: Any = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> ApiResponse:
        url = f"{self.base_url}/{path.lstrip('/')}"
        request_headers = dict(headers or {})
        if self.token:
            request_headers.setdefault("Authorization", f"Bearer {self.token}")
        client_timeout = aiohttp.ClientTimeout(total=timeout or self.timeout)

        async with aiohttp.ClientSession(timeout=client_timeout) as session:
            async with session.request(method, url, json=data, headers=request_headers) as response:
                if response.content_type == "application/json":
                    body = await response.json()
                else:
                    body = await response.text()
                logger.debug(f"{method} {url} -> HTTP {response.status}")
                return ApiResponse(status=response.status, data=body, headers=dict(response.headers))


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class PluginEvents(ABC):
    @abstractmethod
    def emit(self, event: str, data: Any = None) -> None:
        ...

    @abstractmethod
    def on(self, event: str, handler: Handler) -> None:
        ...

    @abstractmethod
    def off(self, event: str, handler: Optional[Handler] = None) -> None:
        ...

    @abstractmethod
    def once(self, event: str, handler: Handler) -> None:
        ...


class EventBus(PluginEvents):
    """Synchronous in-process event dispatch.

    Handlers run in registration order. A handler that raises is logged and the
    remaining handlers still run; nothing propagates to the emitter.
    """

    def __init__(self):
        self._listeners: Dict[str, List[Handler]] = {}

    def emit(self, event: str, data: Any = None) -> None:
        for handler in list(self._listeners.get(event, [])):
            try:
                result = handler(data)
                if inspect.isawaitable(result):
                    self._schedule(event, result)
            except Exception:
                logger.exception(f"Error in event handler for {event}")

    def _schedule(self, event: str, awaitable: Awaitable[Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"Async handler for {event} dropped: no running event loop")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        def report(task: asyncio.Task) -> None:
            if not task.cancelled() and task.exception() is not None:
                logger.error(f"Error in async event handler for {event}: {task.exception()}")

        loop.create_task(awaitable).add_done_callback(report)

    def on(self, event: str, handler: Handler) -> None:
        self._listeners.setdefault(event, []).append(handler)

    def off(self, event: str, handler: Optional[Handler] = None) -> None:
        if handler is None:
            self._listeners.pop(event, None)
            return
        handlers = self._listeners.get(event, [])
        for i, registered in enumerate(handlers):
            if registered is handler or getattr(registered, "__wrapped__", None) is handler:
                del handlers[i]
                break

    def once(self, event: str, handler: Handler) -> None:
        def once_handler(data: Any = None) -> Any:
            self.off(event, once_handler)
            return handler(data)

        once_handler.__wrapped__ = handler
        self.on(event, once_handler)

    def get_listeners(self, event: str) -> List[Handler]:
        return list(self._listeners.get(event, []))


# ---------------------------------------------------------------------------
# Hooks
# ---------------------------------------------------------------------------


@dataclass
class RegisteredHook:
    definition: HookDefinition
    handler: Optional[Callable[[Any], Any]] = None


class PluginHooks(ABC):
    @abstractmethod
    def register(
        self,
        definition: Union[HookDefinition, Dict[str, Any]],
        handler: Optional[Callable[[Any], Any]] = None,
    ) -> HookDefinition:
        ...

    @abstractmethod
    def unregister(self, name: str) -> None:
        ...

    @abstractmethod
    async def trigger(self, name: str, data: Any = None) -> Any:
        ...


class HookRegistry(PluginHooks):
    """Hook definitions keyed by name, each with an optional handler callable."""

    def __init__(self):
        self._hooks: Dict[str, RegisteredHook] = {}

    def register(
        self,
        definition: Union[HookDefinition, Dict[str, Any]],
        handler: Optional[Callable[[Any], Any]] = None,
    ) -> HookDefinition:
        if isinstance(definition, dict):
            definition = HookDefinition.model_validate(definition)
        if definition.name in self._hooks:
            logger.warning(f"Hook '{definition.name}' already registered, overwriting")
        self._hooks[definition.name] = RegisteredHook(definition, handler)
        return definition

    def unregister(self, name: str) -> None:
        self._hooks.pop(name, None)

    async def trigger(self, name: str, data: Any = None) -> Any:
        hook = self._hooks.get(name)
        if hook is None or hook.handler is None:
            return data
        result = hook.handler(data)
        if inspect.isawaitable(result):
            result = await result
        return result

    @property
    def registered(self) -> Dict[str, HookDefinition]:
        return {name: hook.definition for name, hook in self._hooks.items()}


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------


@dataclass
class Capabilities:
    """The five backing services a plugin context wraps."""

    logger: PluginLogger
    database: PluginDatabase
    api: PluginApi
    events: PluginEvents
    hooks: PluginHooks

    @classmethod
    def default(
        cls,
        plugin_name: str,
        database_path: Union[str, Path] = ":memory:",
        api_url: str = PANEL_API_URL,
        api_token: Optional[str] = None,
    ) -> "Capabilities":
        """Build the real capability set for a plugin."""
        return cls(
            logger=StandardLogger(plugin_name),
            database=SqliteDatabase(database_path),
            api=HttpApi(api_url, token=api_token),
            events=EventBus(),
            hooks=HookRegistry(),
        )
