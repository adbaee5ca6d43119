"""WebSocket client tracking and broadcast for the development server."""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)


def timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_message(message_type: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """A ``{type, data}`` envelope."""
    return {"type": message_type, "data": data if data is not None else {}}


@dataclass
class DevClient:
    """Connected development client"""
    id: str
    websocket: WebSocket
    connected_at: str = field(default_factory=timestamp)


class ConnectionManager:
    """Tracks open WebSocket connections and delivers messages to them.

    Delivery is per connection: a client whose send fails is dropped and the
    others still receive the message.
    """

    def __init__(self):
        self.clients: Dict[str, DevClient] = {}
        self.total_connections = 0
        self.total_messages_sent = 0

    def add_client(self, websocket: WebSocket) -> DevClient:
        client = DevClient(id=str(uuid.uuid4()), websocket=websocket)
        self.clients[client.id] = client
        self.total_connections += 1
        logger.info(f"Development client {client.id} connected")
        return client

    def remove_client(self, client_id: str) -> None:
        if self.clients.pop(client_id, None) is not None:
            logger.info(f"Development client {client_id} disconnected")

    async def send_to_client(self, client_id: str, message: Dict[str, Any]) -> bool:
        """Send to one client, dropping it if the send fails."""
        client = self.clients.get(client_id)
        if not client:
            return False

        try:
            await client.websocket.send_json(message)
            self.total_messages_sent += 1
            return True
        except Exception as e:
            logger.error(f"Failed to send to client {client_id}: {e}")
            self.remove_client(client_id)
            return False

    async def broadcast(self, message: Dict[str, Any]) -> int:
        """Send to every connected client.

        Returns:
            Number of clients the message reached
        """
        client_ids = list(self.clients)
        results = await asyncio.gather(*(self.send_to_client(cid, message) for cid in client_ids))
        return sum(results)

    async def close_all(self, code: int = 1001) -> None:
        """Close every connection (1001: going away)."""
        for client_id, client in list(self.clients.items()):
            try:
                await client.websocket.close(code=code)
            except Exception as e:
                logger.debug(f"Error closing client {client_id}: {e}")
            self.remove_client(client_id)

    @property
    def count(self) -> int:
        return len(self.clients)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "active_connections": len(self.clients),
            "total_connections": self.total_connections,
            "total_messages_sent": self.total_messages_sent,
        }
