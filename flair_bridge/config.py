#
# Copyright 2025 The FlairBridge contributors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

"""Bridge configuration.

The configuration file is a JSON object shaped like a homebridge platform
block::

    {
        "name": "Flair",
        "clientId": "...", "clientSecret": "...",
        "username": "...", "password": "...",
        "pollInterval": 60,
        "ventAccessoryType": "windowCovering",
        "hideVentTemperatureSensors": false,
        "hidePuckRooms": false,
        "hidePuckSensors": false
    }

Credentials can also come from FLAIR_CLIENT_ID, FLAIR_CLIENT_SECRET,
FLAIR_USERNAME and FLAIR_PASSWORD, which win over the file.
"""

import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from .exceptions import ConfigError

logger = logging.getLogger('flair-bridge')

DEFAULT_POLL_INTERVAL = 60
DEFAULT_POLL_JITTER = 20


class VentAccessoryType(str, Enum):
    """How vents are presented."""

    WINDOW_COVERING = 'windowCovering'
    FAN = 'fan'
    AIR_PURIFIER = 'airPurifier'
    HIDDEN = 'hidden'

    @classmethod
    def parse(cls, value: Optional[str]) -> 'VentAccessoryType':
        """Parse a presentation name; raises ValueError for unknown names."""
        if value is None:
            return cls.WINDOW_COVERING
        if isinstance(value, cls):
            return value
        normalized = value.replace('-', '').replace('_', '').lower()
        for member in cls:
            if member.value.lower() == normalized:
                return member
        raise ValueError(f"Unknown vent accessory type: {value}")


_ENV_CREDENTIALS = {
    'client_id': 'FLAIR_CLIENT_ID',
    'client_secret': 'FLAIR_CLIENT_SECRET',
    'username': 'FLAIR_USERNAME',
    'password': 'FLAIR_PASSWORD',
}


def _first(data: Dict[str, Any], *keys, default=None):
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


class BridgeConfig:
    """Recognized configuration options."""

    def __init__(self,
                 name: str = 'Flair',
                 client_id: Optional[str] = None,
                 client_secret: Optional[str] = None,
                 username: Optional[str] = None,
                 password: Optional[str] = None,
                 poll_interval: int = DEFAULT_POLL_INTERVAL,
                 poll_jitter: int = DEFAULT_POLL_JITTER,
                 structure_poll_interval: Optional[int] = None,
                 vent_accessory_type: str = VentAccessoryType.WINDOW_COVERING.value,
                 hide_vent_temperature_sensors: bool = False,
                 hide_puck_rooms: bool = False,
                 hide_puck_sensors: bool = False):
        self.name = name
        self.client_id = client_id
        self.client_secret = client_secret
        self.username = username
        self.password = password
        self.poll_interval = int(poll_interval)
        self.poll_jitter = int(poll_jitter)
        self.structure_poll_interval = int(structure_poll_interval) if structure_poll_interval else self.poll_interval
        # Kept as given; an unknown value is rejected per accessory, not here.
        self.vent_accessory_type = vent_accessory_type
        self.hide_vent_temperature_sensors = bool(hide_vent_temperature_sensors)
        self.hide_puck_rooms = bool(hide_puck_rooms)
        self.hide_puck_sensors = bool(hide_puck_sensors)

        if self.poll_interval <= 0:
            raise ConfigError(f"pollInterval must be positive, got {self.poll_interval}")
        if self.poll_jitter < 1:
            raise ConfigError(f"pollJitter must be at least 1, got {self.poll_jitter}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any], environ: Optional[Dict[str, str]] = None) -> 'BridgeConfig':
        environ = os.environ if environ is None else environ
        values = {
            'name': _first(data, 'name', default='Flair'),
            'client_id': _first(data, 'clientId', 'client_id'),
            'client_secret': _first(data, 'clientSecret', 'client_secret'),
            'username': _first(data, 'username'),
            'password': _first(data, 'password'),
            'poll_interval': _first(data, 'pollIntervalSeconds', 'pollInterval', 'poll_interval',
                                    default=DEFAULT_POLL_INTERVAL),
            'poll_jitter': _first(data, 'pollJitterSeconds', 'pollJitter', default=DEFAULT_POLL_JITTER),
            'structure_poll_interval': _first(data, 'structurePollInterval'),
            'vent_accessory_type': _first(data, 'ventPresentation', 'ventAccessoryType',
                                          default=VentAccessoryType.WINDOW_COVERING.value),
            'hide_vent_temperature_sensors': _first(data, 'hideVentTemperatureSensors', default=False),
            'hide_puck_rooms': _first(data, 'hidePuckRooms', default=False),
            'hide_puck_sensors': _first(data, 'hidePuckSensors', default=False),
        }
        for field, env_name in _ENV_CREDENTIALS.items():
            if environ.get(env_name):
                values[field] = environ[env_name]
        try:
            return cls(**values)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration: {e}")

    @property
    def vents_hidden(self) -> bool:
        try:
            return VentAccessoryType.parse(self.vent_accessory_type) == VentAccessoryType.HIDDEN
        except ValueError:
            return False

    def missing_credentials(self) -> List[str]:
        return [field for field in _ENV_CREDENTIALS if not getattr(self, field)]

    def has_valid_config(self) -> bool:
        """Log every missing credential; True when all are present."""
        labels = {
            'client_id': 'You need to enter a Flair Client Id',
            'client_secret': 'You need to enter a Flair Client Secret',
            'username': 'You need to enter your Flair username',
            'password': 'You need to enter your Flair password',
        }
        missing = self.missing_credentials()
        for field in missing:
            logger.error(labels[field])
        return not missing


def load_config(path: str, environ: Optional[Dict[str, str]] = None) -> BridgeConfig:
    """Load configuration from a JSON file (missing file means defaults + env)."""
    config_path = Path(os.path.expanduser(path))
    data: Dict[str, Any] = {}
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text(encoding='utf-8'))
        except ValueError as e:
            raise ConfigError(f"Failed to parse {config_path}: {e}")
        # Accept a whole homebridge config.json and pick the Flair platform block
        if 'platforms' in data:
            platforms = [p for p in data['platforms'] if p.get('platform') == 'Flair']
            if not platforms:
                raise ConfigError(f"No Flair platform block in {config_path}")
            data = platforms[0]
        logger.info(f"Loaded configuration from {config_path}")
    else:
        logger.warning(f"Configuration file {config_path} not found, using defaults and environment")
    return BridgeConfig.from_dict(data, environ)
