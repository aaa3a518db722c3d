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

"""Flair device and structure models.

Devices are replaced wholesale on every successful poll, so every model here
is built in one go from an API resource or from a persisted accessory context
and never partially merged.

API resources follow JSON:API::

    {"id": "...", "type": "vents", "attributes": {"name": "...", "percent-open": 50}}
"""

import uuid
from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any, Dict, Optional, Union

from .exceptions import AccessoryValidationError

# Namespace for accessory identities; must never change or every cached
# accessory is orphaned on the next start.
ACCESSORY_NAMESPACE = uuid.UUID('6f1c7d3e-8a5b-5c3e-9b1f-2d4e6a8c0f12')


class DeviceType(str, Enum):
    """Discriminant for the device variants exposed as accessories."""

    VENT = 'vent'
    PUCK = 'puck'
    ROOM = 'room'

    @classmethod
    def parse(cls, value: str) -> 'DeviceType':
        """Accept both our own tags and the plural JSON:API resource types."""
        if not value:
            raise AccessoryValidationError("Missing device type")
        normalized = value.lower()
        if normalized.endswith('s'):
            normalized = normalized[:-1]
        try:
            return cls(normalized)
        except ValueError:
            raise AccessoryValidationError(f"Unknown device type: {value}")


class FlairMode(str, Enum):
    """Structure operating mode."""

    MANUAL = 'manual'
    AUTO = 'auto'


class StructureHeatCoolMode(str, Enum):
    """Structure-wide heat/cool mode. OFF is what the Flair API calls 'float'."""

    OFF = 'float'
    HEAT = 'heat'
    COOL = 'cool'
    AUTO = 'auto'

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional['StructureHeatCoolMode']:
        if value is None:
            return None
        normalized = value.lower()
        if normalized == 'off':
            return cls.OFF
        return cls(normalized)


def accessory_uuid(device_id: str) -> str:
    """Stable accessory identity for a Flair device id."""
    return str(uuid.uuid5(ACCESSORY_NAMESPACE, device_id))


def _attr(attributes: Dict[str, Any], *names, default=None):
    for name in names:
        if attributes.get(name) is not None:
            return attributes[name]
    return default


class _DeviceMixin:
    """Shared persistence helpers for the device dataclasses."""

    device_type: DeviceType

    @property
    def uuid(self) -> str:
        return accessory_uuid(self.id)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        if not data or not data.get('id'):
            raise AccessoryValidationError(f"Cannot restore {cls.__name__} without an id")
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class Vent(_DeviceMixin):
    id: str
    name: str = ''
    percent_open: Optional[int] = None
    duct_temperature_c: Optional[float] = None
    duct_pressure: Optional[float] = None
    firmware_version_s: Optional[str] = None

    device_type = DeviceType.VENT

    @classmethod
    def from_api(cls, resource: Dict[str, Any], name: Optional[str] = None) -> 'Vent':
        attributes = resource.get('attributes', {})
        return cls(
            id=str(resource['id']),
            name=name or attributes.get('name', ''),
            percent_open=_attr(attributes, 'percent-open'),
            duct_temperature_c=_attr(attributes, 'duct-temperature-c'),
            duct_pressure=_attr(attributes, 'duct-pressure'),
            firmware_version_s=_attr(attributes, 'firmware-version-s'),
        )


@dataclass
class Puck(_DeviceMixin):
    id: str
    name: str = ''
    display_number: Optional[str] = None
    current_temperature_c: Optional[float] = None
    current_humidity: Optional[float] = None
    current_room_pressure: Optional[float] = None
    firmware_version_s: Optional[str] = None

    device_type = DeviceType.PUCK

    @classmethod
    def from_api(cls, resource: Dict[str, Any], name: Optional[str] = None) -> 'Puck':
        attributes = resource.get('attributes', {})
        return cls(
            id=str(resource['id']),
            name=name or attributes.get('name', ''),
            display_number=_attr(attributes, 'display-number'),
            current_temperature_c=_attr(attributes, 'current-temperature-c', 'room-temperature-c'),
            current_humidity=_attr(attributes, 'current-humidity', 'humidity'),
            current_room_pressure=_attr(attributes, 'current-room-pressure', 'room-pressure'),
            firmware_version_s=_attr(attributes, 'firmware-version-s'),
        )


@dataclass
class Room(_DeviceMixin):
    id: str
    name: str = ''
    current_temperature_c: Optional[float] = None
    current_humidity: Optional[float] = None
    set_point_c: Optional[float] = None
    active: bool = True
    pucks_inactive: Optional[str] = None
    firmware_version_s: Optional[str] = None

    device_type = DeviceType.ROOM

    @classmethod
    def from_api(cls, resource: Dict[str, Any], name: Optional[str] = None) -> 'Room':
        attributes = resource.get('attributes', {})
        return cls(
            id=str(resource['id']),
            name=name or attributes.get('name', ''),
            current_temperature_c=_attr(attributes, 'current-temperature-c'),
            current_humidity=_attr(attributes, 'current-humidity'),
            set_point_c=_attr(attributes, 'set-point-c'),
            active=bool(attributes.get('active', True)),
            pucks_inactive=_attr(attributes, 'pucks-inactive'),
        )


Device = Union[Vent, Puck, Room]

DEVICE_CLASSES = {
    DeviceType.VENT: Vent,
    DeviceType.PUCK: Puck,
    DeviceType.ROOM: Room,
}


def device_from_context(type_tag: str, payload: Dict[str, Any]) -> Device:
    """Rebuild a device snapshot from a persisted accessory context."""
    device_type = DeviceType.parse(type_tag)
    return DEVICE_CLASSES[device_type].from_dict(payload)


@dataclass
class Structure:
    id: str
    name: str = ''
    mode: Optional[FlairMode] = None
    structure_heat_cool_mode: Optional[StructureHeatCoolMode] = None
    set_point_temperature_c: Optional[float] = None

    @classmethod
    def from_api(cls, resource: Dict[str, Any]) -> 'Structure':
        attributes = resource.get('attributes', {})
        mode = attributes.get('mode')
        return cls(
            id=str(resource['id']),
            name=attributes.get('name', ''),
            mode=FlairMode(mode) if mode else None,
            structure_heat_cool_mode=StructureHeatCoolMode.parse(attributes.get('structure-heat-cool-mode')),
            set_point_temperature_c=attributes.get('set-point-temperature-c'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'mode': self.mode.value if self.mode else None,
            'structure_heat_cool_mode': self.structure_heat_cool_mode.name if self.structure_heat_cool_mode else None,
            'set_point_temperature_c': self.set_point_temperature_c,
        }
