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
import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.traceback import install

# frames from these are hidden in tracebacks
import tomlkit, websockets

console = Console()


def setup_logging(level: Optional[str] = None):
    level = level or os.environ.get("LOGLEVEL", "INFO")
    logging_handler = RichHandler(
        level=level,
        console=console,
        rich_tracebacks=True,
        tracebacks_suppress=[tomlkit, websockets],
        log_time_format="[%X]",
    )

    logging.basicConfig(level="NOTSET", format="%(message)s", handlers=[logging_handler])

    # websockets logs every frame at debug level, keep it quiet unless asked
    logging.getLogger("websockets").setLevel(os.environ.get("WEBSOCKETS_LOGLEVEL", "WARNING"))

    install(console=console, suppress=[websockets])
