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
"""Room synchronizer: a thermostat driven by the room and its structure.

Temperatures and set point come from the room. The heating/cooling state is
derived from whether the room is active and from the structure's heat/cool
mode, so it changes both on room polls and on structure broadcasts.
"""

import logging
from typing import List, Optional

from .exceptions import AccessoryValidationError
from .homekit_uuids import (
    CHAR_CURRENT_HEATING_COOLING_STATE,
    CHAR_CURRENT_RELATIVE_HUMIDITY,
    CHAR_CURRENT_TEMPERATURE,
    CHAR_TARGET_HEATING_COOLING_STATE,
    CHAR_TARGET_TEMPERATURE,
    CHAR_TEMPERATURE_DISPLAY_UNITS,
    HEATING_COOLING_AUTO,
    HEATING_COOLING_COOL,
    HEATING_COOLING_HEAT,
    HEATING_COOLING_OFF,
    SERVICE_THERMOSTAT,
)
from .models import DeviceType, FlairMode, Room, Structure
from .structure import (
    TARGET_STATE_MODES,
    StructureModeCoordinator,
    current_heating_cooling_state,
    target_heating_cooling_state,
)
from .synchronizer import ReadingSynchronizer, ServiceDefinition

logger = logging.getLogger(__name__)

MIN_SET_POINT_C = 10
MAX_SET_POINT_C = 32
SET_POINT_STEP = 0.5
DISPLAY_UNITS_CELSIUS = 0


class RoomSynchronizer(ReadingSynchronizer):
    device_type = DeviceType.ROOM
    model_name = 'Room'

    def __init__(self, accessory, client, store, config, coordinator: StructureModeCoordinator):
        self.coordinator = coordinator
        self.structure: Optional[Structure] = coordinator.structure
        super().__init__(accessory, client, store, config)

    @property
    def thermostat(self):
        return self.accessory.get_service(SERVICE_THERMOSTAT)

    def desired_services(self) -> List[ServiceDefinition]:
        return [(SERVICE_THERMOSTAT, None, self.name)]

    def configure_characteristics(self):
        thermostat = self.thermostat
        thermostat.set_primary_service(True)
        thermostat.get_characteristic(CHAR_TARGET_TEMPERATURE) \
            .set_props(min_value=MIN_SET_POINT_C, max_value=MAX_SET_POINT_C, min_step=SET_POINT_STEP) \
            .on_set(self.set_target_temperature)
        thermostat.get_characteristic(CHAR_TARGET_HEATING_COOLING_STATE) \
            .set_props(valid_values=[HEATING_COOLING_OFF, HEATING_COOLING_HEAT,
                                     HEATING_COOLING_COOL, HEATING_COOLING_AUTO]) \
            .on_set(self.set_target_heating_cooling_state)
        thermostat.get_characteristic(CHAR_CURRENT_HEATING_COOLING_STATE) \
            .set_props(valid_values=[HEATING_COOLING_OFF, HEATING_COOLING_HEAT, HEATING_COOLING_COOL])
        thermostat.get_characteristic(CHAR_CURRENT_RELATIVE_HUMIDITY).set_props(min_value=0, max_value=100)
        thermostat.update_characteristic(CHAR_TEMPERATURE_DISPLAY_UNITS, DISPLAY_UNITS_CELSIUS)

    def push_characteristics(self):
        room = self.device
        thermostat = self.thermostat
        mode = self.structure.structure_heat_cool_mode if self.structure else None

        if room.current_temperature_c is not None:
            thermostat.update_characteristic(CHAR_CURRENT_TEMPERATURE, room.current_temperature_c)
        if room.set_point_c is not None:
            thermostat.update_characteristic(CHAR_TARGET_TEMPERATURE, room.set_point_c)
        if room.current_humidity is not None:
            thermostat.update_characteristic(CHAR_CURRENT_RELATIVE_HUMIDITY, room.current_humidity)
        thermostat.update_characteristic(CHAR_TARGET_HEATING_COOLING_STATE,
                                         target_heating_cooling_state(room.active, mode))
        thermostat.update_characteristic(CHAR_CURRENT_HEATING_COOLING_STATE,
                                         current_heating_cooling_state(room.active, mode))
        logger.debug(f"Pushed room {self.name}: {room.current_temperature_c}C, "
                     f"set point {room.set_point_c}C, active {room.active}")

    def update_from_structure(self, structure: Structure):
        """Recompute the derived state for a new structure snapshot."""
        self.structure = structure
        self.push_characteristics()

    async def fetch(self) -> Room:
        return await self.client.read_room(self.device.id)

    # ========================================================================
    # Commands
    # ========================================================================

    async def set_target_temperature(self, value):
        await self.run_command(self.client.set_room_setpoint(self.device.id, value))
        logger.debug(f"Set {self.name} set point to {value}C")

    async def set_room_active(self):
        if self.device.active:
            return
        await self.run_command(self.client.set_room_away(self.device.id, False))
        logger.debug(f"Set {self.name} to active")

    async def set_target_heating_cooling_state(self, value):
        if value == HEATING_COOLING_OFF:
            await self.run_command(self.client.set_room_away(self.device.id, True))
            logger.debug(f"Set {self.name} to away")
            return

        heat_cool_mode = TARGET_STATE_MODES.get(value)
        if heat_cool_mode is None:
            raise AccessoryValidationError(f"Unsupported heating/cooling state {value}")
        await self.set_room_active()
        # The coordinator pushes the new structure to every room, this one included
        await self.coordinator.set_mode(FlairMode.AUTO, heat_cool_mode)

    def start(self, scheduler, interval: float, jitter: int):
        poll = super().start(scheduler, interval, jitter)
        self.coordinator.register_room(self)
        return poll

    def stop(self):
        super().stop()
        self.coordinator.unregister_room(self)
