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
import json
import logging
from typing import Optional, Protocol

import websockets
from websockets.asyncio.server import ServerConnection
from websockets.protocol import State as WebsocketState

CLOSE_REPLACED = 4002
CLOSE_TOO_SLOW = 4003
MAX_PENDING_FRAMES = 256


def encode(message: dict) -> str:
    # compact separators keep every frame on one line
    return json.dumps(message, separators=(",", ":"))


class OutboundChannel(Protocol):
    @property
    def is_open(self) -> bool: ...

    def deliver(self, text: str) -> None: ...

    def close(self, code: int, reason: str) -> None: ...


class WebsocketChannel:
    """
    Outbound side of one websocket. deliver() only queues, the writer task does the sending,
    so whoever calls deliver() never waits on the network.
    A peer that lets more than `max_pending` frames pile up is closed rather than buffered.
    """

    def __init__(self, websocket: ServerConnection, max_pending: int = MAX_PENDING_FRAMES):
        self._websocket = websocket
        # one extra slot so the stop marker always fits
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue(maxsize=max_pending + 1)
        self._max_pending = max_pending
        self._writer: Optional[asyncio.Task] = None
        self._close_with: Optional[tuple[int, str]] = None
        self._closing = False

    @property
    def is_open(self) -> bool:
        return not self._closing and self._websocket.state == WebsocketState.OPEN

    def deliver(self, text: str) -> None:
        if self._closing:
            return
        if self._queue.qsize() >= self._max_pending:
            logging.warning(f"Peer {self._websocket.remote_address} is not reading, closing it")
            self.close(CLOSE_TOO_SLOW, "Too many pending messages")
            return
        self._queue.put_nowait(text)

    def close(self, code: int, reason: str) -> None:
        """Drops whatever is still queued and has the writer close the websocket."""
        if self._closing:
            return
        self._closing = True
        self._close_with = (code, reason)
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    def start(self) -> None:
        self._writer = asyncio.create_task(self._write_loop())

    async def _write_loop(self):
        while True:
            text = await self._queue.get()
            if text is None:
                break
            try:
                await self._websocket.send(text)
            except websockets.exceptions.ConnectionClosed:
                # the close event handles cleanup
                logging.debug(f"Dropped outbound frame, websocket closed")
                self._closing = True
                return
            except Exception as e:
                logging.error("Error sending to websocket")
                logging.exception(e)
                self._closing = True
                return

        if self._close_with is not None:
            await self._websocket.close(*self._close_with)

    async def stop(self) -> None:
        if self._writer is None:
            return
        if not self._closing:
            self._queue.put_nowait(None)
        try:
            await asyncio.wait_for(self._writer, timeout=1)
        except asyncio.TimeoutError:
            self._writer.cancel()
        self._writer = None


class ConnectionRegistry:

    def __init__(self, modes):
        self._modes = modes
        self._channels: dict[str, OutboundChannel] = dict()

    def __contains__(self, player_id: str) -> bool:
        return player_id in self._channels

    def __len__(self) -> int:
        return len(self._channels)

    def is_connected(self, player_id: str) -> bool:
        return player_id in self._channels

    def channel(self, player_id: str) -> Optional[OutboundChannel]:
        return self._channels.get(player_id)

    def register(self, player_id: str, channel: OutboundChannel) -> Optional[OutboundChannel]:
        """Returns the channel this one replaced, if the player id was already connected."""
        replaced = self._channels.get(player_id)
        self._channels[player_id] = channel
        if replaced is not None and replaced is not channel:
            logging.debug(f"Connection for {player_id=} replaced by a newer one")
            return replaced
        return None

    def unregister(self, player_id: str, channel: Optional[OutboundChannel] = None) -> bool:
        """
        Removes the player's channel. When `channel` is given, only removes it if it is
        still the registered one; a superseded connection closing must not evict its successor.
        """
        current = self._channels.get(player_id)
        if current is None:
            return False
        if channel is not None and current is not channel:
            return False
        del self._channels[player_id]
        return True

    def send(self, player_id: str, message: dict) -> None:
        channel = self._channels.get(player_id)
        if channel is None or not channel.is_open:
            logging.debug(f"Wanted to send {message.get('type')} to {player_id=} but it is not connected")
            return
        channel.deliver(encode(message))

    def send_many(self, player_ids, message: dict) -> None:
        for player_id in player_ids:
            self.send(player_id, message)

    def broadcast_to_lobby_browsers(self, message: dict) -> None:
        text = encode(message)
        for player_id, channel in list(self._channels.items()):
            if self._modes.is_lobby(player_id) and channel.is_open:
                channel.deliver(text)
