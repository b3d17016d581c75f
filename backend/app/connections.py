from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Union

from fastapi import WebSocket
from fastapi.websockets import WebSocketDisconnect, WebSocketState
from pydantic import BaseModel

from .models import Player

logger = logging.getLogger(__name__)

Payload = Union[BaseModel, Mapping[str, Any], None]


def envelope(message_type: str, data: Payload = None) -> dict[str, Any]:
    if isinstance(data, BaseModel):
        body = data.model_dump(by_alias=True)
    else:
        body = dict(data or {})
    return {"type": message_type, "data": body}


class Connection:
    """A live client socket tagged with the role it connected as."""

    role: ClassVar[str]

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, message_type: str, data: Payload = None) -> None:
        """Send one message; dead or closing sockets are skipped, never raised."""

        if not self.is_open:
            logger.debug("Skipping %s to closed %s connection", message_type, self.role)
            return
        try:
            await self.websocket.send_json(envelope(message_type, data))
        except (RuntimeError, OSError, WebSocketDisconnect) as exc:
            logger.debug("Send of %s to %s failed: %s", message_type, self.role, exc)


class HostConnection(Connection):
    role = "host"


class PlayerConnection(Connection):
    role = "player"

    def __init__(self, websocket: WebSocket):
        super().__init__(websocket)
        self.player_id: Optional[str] = None


@dataclass
class Seat:
    connection: PlayerConnection
    player: Player


class ConnectionRegistry:
    """The single host link plus every joined player, in join order."""

    def __init__(self):
        self.host: Optional[HostConnection] = None
        self.seats: Dict[str, Seat] = {}

    @property
    def players(self) -> List[Player]:
        return [seat.player for seat in self.seats.values()]

    def names(self) -> List[str]:
        return [seat.player.name for seat in self.seats.values()]

    def is_host(self, conn: Connection) -> bool:
        return conn is self.host

    def seat_for(self, conn: PlayerConnection) -> Optional[Seat]:
        if conn.player_id is None:
            return None
        seat = self.seats.get(conn.player_id)
        if seat is None or seat.connection is not conn:
            return None
        return seat

    def add_player(self, conn: PlayerConnection, player: Player) -> Seat:
        conn.player_id = player.id
        seat = Seat(connection=conn, player=player)
        self.seats[player.id] = seat
        return seat

    def remove_player(self, player_id: str) -> Optional[Seat]:
        return self.seats.pop(player_id, None)

    def clear_players(self) -> None:
        self.seats = {}

    async def broadcast(self, message_type: str, data: Payload = None) -> None:
        await self.send_to_players(message_type, data)
        await self.send_to_host(message_type, data)

    async def send_to_players(self, message_type: str, data: Payload = None) -> None:
        for seat in list(self.seats.values()):
            await seat.connection.send(message_type, data)

    async def send_to_host(self, message_type: str, data: Payload = None) -> None:
        if self.host is not None:
            await self.host.send(message_type, data)

    async def send_to_player(self, player_id: str, message_type: str, data: Payload = None) -> None:
        seat = self.seats.get(player_id)
        if seat is not None:
            await seat.connection.send(message_type, data)
