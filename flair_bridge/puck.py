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
"""Puck synchronizer: temperature, humidity and room pressure sensors."""

import logging
from typing import List

from .homekit_uuids import (
    CHAR_CURRENT_RELATIVE_HUMIDITY,
    CHAR_CURRENT_TEMPERATURE,
    CHAR_PRESSURE,
    SERVICE_HUMIDITY_SENSOR,
    SERVICE_PRESSURE_SENSOR,
    SERVICE_TEMPERATURE_SENSOR,
)
from .models import DeviceType, Puck
from .synchronizer import ReadingSynchronizer, ServiceDefinition

logger = logging.getLogger(__name__)


class PuckSynchronizer(ReadingSynchronizer):
    device_type = DeviceType.PUCK
    model_name = 'Puck'

    @property
    def serial_number(self) -> str:
        return self.device.display_number or self.device.id

    def desired_services(self) -> List[ServiceDefinition]:
        return [
            (SERVICE_TEMPERATURE_SENSOR, None, self.name),
            (SERVICE_HUMIDITY_SENSOR, None, f"{self.name} Humidity"),
            (SERVICE_PRESSURE_SENSOR, None, f"{self.name} Pressure"),
        ]

    def configure_characteristics(self):
        temperature = self.accessory.get_service(SERVICE_TEMPERATURE_SENSOR)
        temperature.set_primary_service(True)
        temperature.add_linked_service(self.accessory.get_service(SERVICE_HUMIDITY_SENSOR))
        temperature.add_linked_service(self.accessory.get_service(SERVICE_PRESSURE_SENSOR))
        self.characteristic(SERVICE_HUMIDITY_SENSOR, CHAR_CURRENT_RELATIVE_HUMIDITY) \
            .set_props(min_value=0, max_value=100, min_step=1)

    def push_characteristics(self):
        puck = self.device
        if puck.current_temperature_c is not None:
            self.characteristic(SERVICE_TEMPERATURE_SENSOR, CHAR_CURRENT_TEMPERATURE) \
                .update_value(puck.current_temperature_c)
        if puck.current_humidity is not None:
            self.characteristic(SERVICE_HUMIDITY_SENSOR, CHAR_CURRENT_RELATIVE_HUMIDITY) \
                .update_value(puck.current_humidity)
        if puck.current_room_pressure is not None:
            self.characteristic(SERVICE_PRESSURE_SENSOR, CHAR_PRESSURE).update_value(puck.current_room_pressure)
        logger.debug(f"Pushed puck {self.name}: {puck.current_temperature_c}C, {puck.current_humidity}%")

    async def fetch(self) -> Puck:
        puck = await self.client.read_puck(self.device.id, self.device.name)
        # Readings do not carry the display number
        if puck.display_number is None:
            puck.display_number = self.device.display_number
        return puck
