"""
TicTacToeServer
Copyright (C) 2024 thiccaxe

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published
by the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import asyncio
import dataclasses
import logging
from typing import Optional
from urllib.parse import parse_qs, urlsplit

import websockets
from websockets.asyncio.server import ServerConnection, serve

from connection_registry import WebsocketChannel
from game_manager import GameManager
from server_data import ServerData

CLOSE_PLAYER_ID_REQUIRED = 4000
CLOSE_INTERNAL_ERROR = 4001
CLOSE_GOING_AWAY = 1001


@dataclasses.dataclass
class Handshake:
    player_id: str
    player_name: Optional[str]
    lobby: bool


def parse_handshake(path: str) -> Handshake:
    query = parse_qs(urlsplit(path).query)

    def first(key: str) -> Optional[str]:
        values = query.get(key)
        return values[0] if values else None

    return Handshake(
        player_id=first("id") or "",
        player_name=first("name"),
        lobby=first("lobby") == "true",
    )


class WebsocketServer:

    def __init__(self, config, data: ServerData, manager: GameManager):
        self._config = config
        self._data = data
        self._manager = manager
        self._websocket_server = None

    @property
    def port(self) -> Optional[int]:
        """Port actually bound, useful when configured with port 0."""
        if self._websocket_server is None:
            return None
        for sock in self._websocket_server.sockets:
            return sock.getsockname()[1]
        return None

    async def handler(self, websocket: ServerConnection):
        channel = None
        try:
            handshake = parse_handshake(websocket.request.path)
            if not handshake.player_id:
                logging.warning(f"Rejected connection from {websocket.remote_address}: no player id")
                await websocket.close(CLOSE_PLAYER_ID_REQUIRED, "Player ID is required")
                return
            channel = WebsocketChannel(websocket)
            channel.start()
            self._manager.player_connected(handshake.player_id, handshake.player_name, handshake.lobby, channel)
        except Exception as e:
            logging.error("Error in websocket connection handler")
            logging.exception(e)
            if channel is not None:
                self._manager.player_disconnected(handshake.player_id, channel)
                await channel.stop()
            await websocket.close(CLOSE_INTERNAL_ERROR, "Internal server error")
            return

        player_id = handshake.player_id
        shutdown_wait_task = asyncio.create_task(self._data.shutdown_event.wait())
        try:
            while True:
                recv_task = asyncio.create_task(websocket.recv())
                done, pending = await asyncio.wait(
                    [recv_task, shutdown_wait_task],
                    return_when=asyncio.FIRST_COMPLETED
                )

                # shutdown case
                if self._data.shutdown_event.is_set():
                    recv_task.cancel()
                    await websocket.close(CLOSE_GOING_AWAY, "Server shutting down")
                    break

                message = recv_task.result()
                self._manager.handle_message(player_id, message)
        except websockets.exceptions.ConnectionClosed:
            logging.debug(f"Websocket connection for {player_id=} closed")
        finally:
            shutdown_wait_task.cancel()
            self._manager.player_disconnected(player_id, channel)
            await channel.stop()

    async def __aenter__(self):
        logging.debug(f"Starting websocket server")
        self._websocket_server = await serve(
            self.handler, self._config["server"]["host"] or None, int(self._config["server"]["port"])
        )
        logging.info(f"Websocket server listening on port {self.port}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._websocket_server is not None:
            logging.debug(f"Stopping websocket server")
            self._data.shutdown_event.set()
            self._websocket_server.close()
            await self._websocket_server.wait_closed()
            self._websocket_server = None
