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
import datetime
import logging
import os

from config import Config, ConfigurationLoadError
from game_manager import GameManager
from logger import setup_logging
from server_data import ServerData
from websocket_server import WebsocketServer


class TicTacToeServer:

    def __init__(self, config):
        self._config = config
        self._data = ServerData(lobby_ttl=datetime.timedelta(seconds=self._config["lobby"]["ttl_seconds"]))
        self._manager = GameManager(self._data, default_player_name=self._config["players"]["default_name"])
        self._websocket_server = WebsocketServer(self._config, self._data, self._manager)

    async def begin(self):
        logging.info("Starting Tic Tac Toe Server")
        sweep_interval = self._config["lobby"]["sweep_interval_seconds"]
        async with self._websocket_server:
            try:
                logging.info("Ctrl^C to quit")
                while True:
                    await asyncio.sleep(sweep_interval or 1)
                    if sweep_interval:
                        self._manager.sweep_lobby()
            except asyncio.CancelledError:
                logging.info("Cancelled ...")
            except KeyboardInterrupt:
                logging.info("Cancelled ...")
            finally:
                logging.info("Stopping Server ...")


async def main():
    logging.info("Starting tic tac toe server ...")

    config = Config(os.environ.get("TICTACTOE_CONFIG", "./config.toml"))

    try:
        await config.initialize()
    except ConfigurationLoadError:
        logging.error("Could not load configuration. Exiting")
        return

    server = TicTacToeServer(config)
    await server.begin()


def run():
    setup_logging()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
