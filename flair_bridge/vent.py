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
"""Vent synchronizer.

A vent is presented as one of:

- windowCovering: TargetPosition / CurrentPosition, any value 0-100
- fan: Fanv2 with Active and RotationSpeed in 50% steps
- airPurifier: AirPurifier with Active and RotationSpeed in 50% steps

plus a duct temperature sensor (unless hidden) and a duct pressure sensor.
"""

import logging
from typing import List

from .config import VentAccessoryType
from .exceptions import AccessoryValidationError
from .homekit_uuids import (
    ACTIVE_ACTIVE,
    ACTIVE_INACTIVE,
    AIR_PURIFIER_INACTIVE,
    AIR_PURIFIER_PURIFYING,
    AIR_PURIFIER_TARGET_MANUAL,
    CHAR_ACTIVE,
    CHAR_CURRENT_AIR_PURIFIER_STATE,
    CHAR_CURRENT_POSITION,
    CHAR_CURRENT_TEMPERATURE,
    CHAR_POSITION_STATE,
    CHAR_PRESSURE,
    CHAR_ROTATION_SPEED,
    CHAR_TARGET_AIR_PURIFIER_STATE,
    CHAR_TARGET_POSITION,
    POSITION_STATE_STOPPED,
    SERVICE_AIR_PURIFIER,
    SERVICE_FAN_V2,
    SERVICE_PRESSURE_SENSOR,
    SERVICE_TEMPERATURE_SENSOR,
    SERVICE_WINDOW_COVERING,
)
from .models import DeviceType, Vent
from .synchronizer import ReadingSynchronizer, ServiceDefinition

logger = logging.getLogger(__name__)

FAN_STEP = 50

PRESENTATION_SERVICES = {
    VentAccessoryType.WINDOW_COVERING: SERVICE_WINDOW_COVERING,
    VentAccessoryType.FAN: SERVICE_FAN_V2,
    VentAccessoryType.AIR_PURIFIER: SERVICE_AIR_PURIFIER,
}


def snap_to_step(value: float, step: int = FAN_STEP) -> int:
    """Round to the nearest step, halves rounding up."""
    return int(value / step + 0.5) * step


def vent_presentation(config) -> VentAccessoryType:
    """Presentation for vents under this configuration.

    Raises:
        AccessoryValidationError: unknown or hidden presentation
    """
    try:
        presentation = VentAccessoryType.parse(config.vent_accessory_type)
    except ValueError as e:
        raise AccessoryValidationError(str(e))
    if presentation == VentAccessoryType.HIDDEN:
        raise AccessoryValidationError("Vents are hidden by configuration")
    return presentation


class VentSynchronizer(ReadingSynchronizer):
    device_type = DeviceType.VENT
    model_name = 'Vent'

    def __init__(self, accessory, client, store, config):
        self.presentation = vent_presentation(config)
        self.show_temperature = not config.hide_vent_temperature_sensors
        super().__init__(accessory, client, store, config)

    @property
    def main_service_type(self) -> str:
        return PRESENTATION_SERVICES[self.presentation]

    def desired_services(self) -> List[ServiceDefinition]:
        services = [(self.main_service_type, None, self.name)]
        if self.show_temperature:
            services.append((SERVICE_TEMPERATURE_SENSOR, None, f"{self.name} Duct Temperature"))
        services.append((SERVICE_PRESSURE_SENSOR, None, f"{self.name} Duct Pressure"))
        return services

    def configure_characteristics(self):
        main = self.accessory.get_service(self.main_service_type)
        main.set_primary_service(True)
        if self.show_temperature:
            main.add_linked_service(self.accessory.get_service(SERVICE_TEMPERATURE_SENSOR))
        main.add_linked_service(self.accessory.get_service(SERVICE_PRESSURE_SENSOR))

        if self.presentation == VentAccessoryType.WINDOW_COVERING:
            main.get_characteristic(CHAR_TARGET_POSITION) \
                .set_props(min_value=0, max_value=100, min_step=1) \
                .on_set(self.set_target_position)
            main.get_characteristic(CHAR_CURRENT_POSITION).set_props(min_value=0, max_value=100, min_step=1)
            main.get_characteristic(CHAR_POSITION_STATE)
            return

        main.get_characteristic(CHAR_ROTATION_SPEED) \
            .set_props(min_value=0, max_value=100, min_step=FAN_STEP) \
            .on_set(self.set_rotation_speed)
        main.get_characteristic(CHAR_ACTIVE) \
            .set_props(valid_values=[ACTIVE_INACTIVE, ACTIVE_ACTIVE]) \
            .on_set(self.set_active)

        if self.presentation == VentAccessoryType.AIR_PURIFIER:
            main.get_characteristic(CHAR_CURRENT_AIR_PURIFIER_STATE)
            # Vents have no automatic mode
            main.get_characteristic(CHAR_TARGET_AIR_PURIFIER_STATE) \
                .set_props(valid_values=[AIR_PURIFIER_TARGET_MANUAL])

    def push_characteristics(self):
        vent = self.device
        main = self.accessory.get_service(self.main_service_type)

        if vent.percent_open is not None:
            if self.presentation == VentAccessoryType.WINDOW_COVERING:
                main.update_characteristic(CHAR_TARGET_POSITION, vent.percent_open)
                main.update_characteristic(CHAR_CURRENT_POSITION, vent.percent_open)
                main.update_characteristic(CHAR_POSITION_STATE, POSITION_STATE_STOPPED)
            else:
                is_open = vent.percent_open > 0
                main.update_characteristic(CHAR_ROTATION_SPEED, vent.percent_open)
                main.update_characteristic(CHAR_ACTIVE, ACTIVE_ACTIVE if is_open else ACTIVE_INACTIVE)
                if self.presentation == VentAccessoryType.AIR_PURIFIER:
                    main.update_characteristic(CHAR_CURRENT_AIR_PURIFIER_STATE,
                                               AIR_PURIFIER_PURIFYING if is_open else AIR_PURIFIER_INACTIVE)
                    main.update_characteristic(CHAR_TARGET_AIR_PURIFIER_STATE, AIR_PURIFIER_TARGET_MANUAL)

        if self.show_temperature and vent.duct_temperature_c is not None:
            self.characteristic(SERVICE_TEMPERATURE_SENSOR, CHAR_CURRENT_TEMPERATURE) \
                .update_value(vent.duct_temperature_c)
        if vent.duct_pressure is not None:
            self.characteristic(SERVICE_PRESSURE_SENSOR, CHAR_PRESSURE).update_value(vent.duct_pressure)

        logger.debug(f"Pushed vent {self.name}: open {vent.percent_open}%, duct {vent.duct_temperature_c}C")

    async def fetch(self) -> Vent:
        return await self.client.read_vent(self.device.id, self.device.name)

    # ========================================================================
    # Commands
    # ========================================================================

    async def set_percent_open(self, percent_open: float) -> Vent:
        """Ask the cloud to move the vent and show what it answered.

        Fractional percentages round to the nearest whole one, halves up.
        """
        percent_open = int(percent_open + 0.5)
        vent = await self.run_command(self.client.set_vent_open_percent(self.device.id, percent_open))
        logger.debug(f"Set {self.name} to {percent_open}% open, cloud reports {vent.percent_open}%")
        return vent

    async def set_target_position(self, value):
        await self.set_percent_open(value)

    async def set_rotation_speed(self, value):
        await self.set_percent_open(snap_to_step(value))

    async def set_active(self, value):
        if value == ACTIVE_INACTIVE:
            await self.set_percent_open(0)
        elif not self.device.percent_open:
            await self.set_percent_open(100)
