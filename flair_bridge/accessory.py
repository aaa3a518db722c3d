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
"""In-process accessory model: accessories, services and characteristics.

Values only change through ``update_value``. A user command goes through
``Characteristic.handle_set`` which validates the value and hands it to the
owning synchronizer; the synchronizer pushes the confirmed value back once
the Flair cloud has answered.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .exceptions import AccessoryValidationError
from .homekit_uuids import (
    CHAR_FIRMWARE_REVISION,
    CHAR_MANUFACTURER,
    CHAR_MODEL,
    CHAR_NAME,
    CHAR_SERIAL_NUMBER,
    SERVICE_ACCESSORY_INFORMATION,
    get_characteristic_name,
    get_characteristic_uuid,
    get_service_name,
    get_value_description,
)

logger = logging.getLogger(__name__)

SetHandler = Callable[[Any], Awaitable[None]]
ServiceKey = Tuple[str, Optional[str]]


class Characteristic:
    """A single exposed value with optional bounds and a command handler."""

    def __init__(self, char_type: str, value: Any = None,
                 min_value: Optional[float] = None,
                 max_value: Optional[float] = None,
                 min_step: Optional[float] = None,
                 valid_values: Optional[List[int]] = None):
        self.type = char_type.upper()
        self.value = value
        self.min_value = min_value
        self.max_value = max_value
        self.min_step = min_step
        self.valid_values = valid_values
        self.set_handler: Optional[SetHandler] = None

    @property
    def name(self) -> str:
        return get_characteristic_name(self.type)

    @property
    def writable(self) -> bool:
        return self.set_handler is not None

    def set_props(self, min_value=None, max_value=None, min_step=None, valid_values=None) -> 'Characteristic':
        if min_value is not None:
            self.min_value = min_value
        if max_value is not None:
            self.max_value = max_value
        if min_step is not None:
            self.min_step = min_step
        if valid_values is not None:
            self.valid_values = list(valid_values)
        return self

    def on_set(self, handler: SetHandler) -> 'Characteristic':
        self.set_handler = handler
        return self

    def update_value(self, value: Any) -> bool:
        """Set the exposed value; returns True if it changed."""
        if value == self.value:
            return False
        self.value = value
        return True

    def validate(self, value: Any) -> Any:
        """Check a requested value against this characteristic's props."""
        if self.valid_values is not None:
            if value not in self.valid_values:
                raise AccessoryValidationError(
                    f"{self.name}: {value!r} is not one of {self.valid_values}")
            return value

        if self.min_value is None and self.max_value is None:
            return value

        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise AccessoryValidationError(f"{self.name}: expected a number, got {value!r}")
        if self.min_value is not None and value < self.min_value:
            raise AccessoryValidationError(f"{self.name}: {value} is below {self.min_value}")
        if self.max_value is not None and value > self.max_value:
            raise AccessoryValidationError(f"{self.name}: {value} is above {self.max_value}")
        return value

    async def handle_set(self, value: Any) -> None:
        if self.set_handler is None:
            raise AccessoryValidationError(f"{self.name} is read-only")
        await self.set_handler(self.validate(value))

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'type': self.type,
            'name': self.name,
            'value': self.value,
            'writable': self.writable,
        }
        description = get_value_description(self.type, self.value)
        if description is not None:
            data['description'] = description
        for prop in ('min_value', 'max_value', 'min_step', 'valid_values'):
            if getattr(self, prop) is not None:
                data[prop] = getattr(self, prop)
        return data


class Service:
    """A group of characteristics of one service type."""

    def __init__(self, service_type: str, name: Optional[str] = None, subtype: Optional[str] = None):
        self.type = service_type.upper()
        self.name = name
        self.subtype = subtype
        self.primary = False
        self.characteristics: Dict[str, Characteristic] = {}
        self.linked_services: List['Service'] = []

    @property
    def key(self) -> ServiceKey:
        return (self.type, self.subtype)

    def get_characteristic(self, char_type: str) -> Characteristic:
        """Return the characteristic, adding it when the service lacks it."""
        char_type = char_type.upper()
        characteristic = self.characteristics.get(char_type)
        if characteristic is None:
            characteristic = Characteristic(char_type)
            self.characteristics[char_type] = characteristic
        return characteristic

    def has_characteristic(self, char_type: str) -> bool:
        return char_type.upper() in self.characteristics

    def set_characteristic(self, char_type: str, value: Any) -> 'Service':
        self.get_characteristic(char_type).update_value(value)
        return self

    def update_characteristic(self, char_type: str, value: Any) -> 'Service':
        self.get_characteristic(char_type).update_value(value)
        return self

    def set_primary_service(self, primary: bool = True) -> 'Service':
        self.primary = primary
        return self

    def add_linked_service(self, service: 'Service') -> 'Service':
        if service not in self.linked_services:
            self.linked_services.append(service)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'name': self.name or get_service_name(self.type),
            'subtype': self.subtype,
            'primary': self.primary,
            'characteristics': [c.to_dict() for c in self.characteristics.values()],
        }


class Accessory:
    """An exposed accessory: a stable uuid, a persisted context and its services."""

    def __init__(self, display_name: str, uuid: str, context: Optional[Dict[str, Any]] = None):
        self.display_name = display_name
        self.uuid = uuid
        self.context: Dict[str, Any] = context if context is not None else {}
        self.services: Dict[ServiceKey, Service] = {}
        # Every accessory carries an information service.
        info = self.add_service(SERVICE_ACCESSORY_INFORMATION)
        info.set_characteristic(CHAR_NAME, display_name)
        for char_type in (CHAR_MANUFACTURER, CHAR_MODEL, CHAR_SERIAL_NUMBER, CHAR_FIRMWARE_REVISION):
            info.get_characteristic(char_type)

    @property
    def type_tag(self) -> Optional[str]:
        return self.context.get('type')

    def get_service(self, service_type: str, subtype: Optional[str] = None) -> Optional[Service]:
        return self.services.get((service_type.upper(), subtype))

    def add_service(self, service_type: str, name: Optional[str] = None, subtype: Optional[str] = None) -> Service:
        service = Service(service_type, name, subtype)
        if service.key in self.services:
            raise AccessoryValidationError(
                f"{self.display_name} already has a {get_service_name(service.type)} service")
        self.services[service.key] = service
        return service

    def get_or_add_service(self, service_type: str, name: Optional[str] = None, subtype: Optional[str] = None) -> Service:
        return self.get_service(service_type, subtype) or self.add_service(service_type, name, subtype)

    def remove_service(self, service: Service) -> None:
        self.services.pop(service.key, None)
        for other in self.services.values():
            if service in other.linked_services:
                other.linked_services.remove(service)

    def service_layout(self) -> List[Dict[str, Any]]:
        """The persisted shape of this accessory: which services it exposes."""
        return [
            {'type': s.type, 'subtype': s.subtype, 'name': s.name}
            for s in self.services.values()
            if s.type != SERVICE_ACCESSORY_INFORMATION
        ]

    def restore_services(self, layout: List[Dict[str, Any]]) -> None:
        """Recreate (empty) services from a persisted layout."""
        for entry in layout or []:
            self.get_or_add_service(entry['type'], entry.get('name'), entry.get('subtype'))

    def find_characteristic(self, name_or_uuid: str, writable_only: bool = False) -> Optional[Characteristic]:
        """Find a characteristic across services, preferring writable ones."""
        char_type = get_characteristic_uuid(name_or_uuid)
        fallback = None
        for service in self.services.values():
            characteristic = service.characteristics.get(char_type)
            if characteristic is None:
                continue
            if characteristic.writable:
                return characteristic
            if fallback is None:
                fallback = characteristic
        return None if writable_only else fallback

    def to_dict(self) -> Dict[str, Any]:
        return {
            'uuid': self.uuid,
            'name': self.display_name,
            'type': self.type_tag,
            'services': [s.to_dict() for s in self.services.values()],
        }
