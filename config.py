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
from pathlib import Path
from typing import Optional, Union

import aiofiles
import tomlkit
import tomlkit.exceptions
import voluptuous.error
from voluptuous import All, Length, Optional as VOptional, Range, Schema


class ConfigurationLoadError(Exception): pass


class Config:
    config: tomlkit.TOMLDocument
    settings: dict
    config_opened: bool = False

    def __init__(self, config_location: Union[str, Path], environ: Optional[dict] = None):
        self.config_location = Path(config_location)
        self._environ = os.environ if environ is None else environ

        self.config_schema = Schema({
            VOptional('server', default=dict): {
                VOptional('host', default=""): str,
                VOptional('port', default=8080): All(int, Range(min=0, max=65535)),
            },
            VOptional('lobby', default=dict): {
                VOptional('ttl_seconds', default=600): All(int, Range(min=1)),
                VOptional('sweep_interval_seconds', default=60): All(int, Range(min=0)),
            },
            VOptional('players', default=dict): {
                VOptional('default_name', default="Anonymous"): All(str, Length(min=1)),
            },
        })

    @staticmethod
    def port_validator(port: str) -> int:
        try:
            port = int(port)
        except ValueError as e:
            raise voluptuous.error.Invalid(message="Port is not a number.") from e
        if not 0 <= port <= 65535:
            raise voluptuous.error.Invalid(message="Port out of range.")
        return port

    async def initialize(self):
        try:
            async with aiofiles.open(self.config_location, 'r') as config_file:
                file_data = await config_file.read()
                self.config = tomlkit.parse(file_data)
                logging.debug("Loaded Configuration without toml format error")
                logging.debug("Validating against Schema.")
                self.settings = self.config_schema(self.config.unwrap())
                self.config_opened = True
                logging.debug("Validated against Schema.")
        except FileNotFoundError as e:
            logging.exception(e)
            logging.warning(
                f"Could not find {self.config_location}. Copy from .example/config.toml to {self.config_location}")
            raise ConfigurationLoadError() from e
        except IOError as e:
            logging.exception(e)
            logging.warning(f"Could not open file {self.config_location}")
            raise ConfigurationLoadError() from e
        except tomlkit.exceptions.ParseError as e:
            logging.exception(e)
            logging.warning(f"Configuration in {self.config_location} is invalid")
            raise ConfigurationLoadError() from e
        except voluptuous.error.MultipleInvalid as e:
            logging.exception(e)
            logging.warning(f"Configuration in {self.config_location} does not match expected format")
            logging.warning(f"Issue configuration item: {e.path}")
            raise ConfigurationLoadError() from e

        if "WS_PORT" in self._environ:
            try:
                self.settings["server"]["port"] = self.port_validator(self._environ["WS_PORT"])
            except voluptuous.error.Invalid as e:
                logging.warning(f"WS_PORT={self._environ['WS_PORT']!r} is not usable: {e.msg}")
                raise ConfigurationLoadError() from e
            logging.debug(f"Port overridden by WS_PORT")

        logging.info(f"Configuration loaded.")

    def __getitem__(self, section: str) -> dict:
        return self.settings[section]
