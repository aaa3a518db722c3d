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
"""Structure mode coordination.

The structure is the one home-level entity whose heat/cool mode applies to
every room. The coordinator owns the cached structure snapshot: it fetches it
once, replaces it on every mutation or refresh, and pushes each new snapshot
to the registered room synchronizers.

Mutations are serialized: a second mode change waits until the first has
applied both its operating mode and its heat/cool mode.
"""

import asyncio
import logging
from typing import List, Optional

from .exceptions import FlairError
from .homekit_uuids import (
    HEATING_COOLING_AUTO,
    HEATING_COOLING_COOL,
    HEATING_COOLING_HEAT,
    HEATING_COOLING_OFF,
)
from .models import FlairMode, Structure, StructureHeatCoolMode

logger = logging.getLogger(__name__)

# Target heating/cooling state values a room command can ask for
TARGET_STATE_MODES = {
    HEATING_COOLING_HEAT: StructureHeatCoolMode.HEAT,
    HEATING_COOLING_COOL: StructureHeatCoolMode.COOL,
    HEATING_COOLING_AUTO: StructureHeatCoolMode.AUTO,
}


def current_heating_cooling_state(active: bool, mode: Optional[StructureHeatCoolMode]) -> int:
    """What a room displays as its current heating/cooling state.

    The Flair API does not say whether an AUTO structure is heating or
    cooling right now, so AUTO shows as cooling.
    """
    if not active:
        return HEATING_COOLING_OFF
    if mode == StructureHeatCoolMode.HEAT:
        return HEATING_COOLING_HEAT
    if mode in (StructureHeatCoolMode.COOL, StructureHeatCoolMode.AUTO):
        return HEATING_COOLING_COOL
    return HEATING_COOLING_OFF


def target_heating_cooling_state(active: bool, mode: Optional[StructureHeatCoolMode]) -> int:
    """What a room displays as its target heating/cooling state."""
    if not active:
        return HEATING_COOLING_OFF
    if mode == StructureHeatCoolMode.HEAT:
        return HEATING_COOLING_HEAT
    if mode == StructureHeatCoolMode.COOL:
        return HEATING_COOLING_COOL
    if mode == StructureHeatCoolMode.AUTO:
        return HEATING_COOLING_AUTO
    return HEATING_COOLING_OFF


class StructureModeCoordinator:
    """Sole writer of the structure snapshot."""

    def __init__(self, client):
        self.client = client
        self.structure: Optional[Structure] = None
        self.rooms: List = []
        self._lock: Optional[asyncio.Lock] = None

    def _mutation_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    @property
    def busy(self) -> bool:
        return self._lock is not None and self._lock.locked()

    async def get_structure(self) -> Structure:
        """The cached structure, fetched from the cloud the first time."""
        if self.structure is None:
            try:
                self.structure = await self.client.get_primary_structure()
            except FlairError as e:
                logger.error(f"There was an error getting your primary Flair home from the API: {e}")
                raise
            logger.info(f"Using structure {self.structure.name} ({self.structure.id})")
        return self.structure

    async def set_mode(self, mode: FlairMode,
                       heat_cool_mode: Optional[StructureHeatCoolMode] = None) -> Structure:
        """Set the operating mode, then the heat/cool mode, then notify rooms.

        Raises:
            FlairError: the cloud rejected either change; the cached structure
                is dropped so the next access fetches it again
        """
        async with self._mutation_lock():
            try:
                structure = await self.get_structure()
                structure = await self.client.set_structure_mode(structure.id, mode)
                self.structure = structure
                if heat_cool_mode is not None:
                    structure = await self.client.set_structure_heat_cool_mode(structure.id, heat_cool_mode)
                    self.structure = structure
            except FlairError:
                self.structure = None
                raise
            logger.info(f"Structure {structure.name} set to {mode.value}/"
                        f"{heat_cool_mode.name if heat_cool_mode else '-'}")
            self.update_from_structure(structure)
            return structure

    async def set_set_point(self, set_point_c: float) -> Structure:
        async with self._mutation_lock():
            try:
                structure = await self.get_structure()
                structure = await self.client.set_structure_setpoint(structure.id, set_point_c)
            except FlairError:
                self.structure = None
                raise
            self.update_from_structure(structure)
            return structure

    async def refresh(self) -> Optional[Structure]:
        """Re-read the structure; on failure keep the cached one."""
        async with self._mutation_lock():
            try:
                if self.structure is None:
                    structure = await self.client.get_primary_structure()
                else:
                    structure = await self.client.get_structure(self.structure.id)
            except FlairError as e:
                logger.debug(f"Failed to refresh structure: {e}")
                return self.structure
            self.update_from_structure(structure)
            return structure

    def update_from_structure(self, structure: Structure):
        """Store a new snapshot and push it to every registered room."""
        self.structure = structure
        for room in list(self.rooms):
            room.update_from_structure(structure)
        logger.debug(f"Pushed structure mode {structure.structure_heat_cool_mode} to {len(self.rooms)} rooms")

    def register_room(self, room):
        if room not in self.rooms:
            self.rooms.append(room)

    def unregister_room(self, room):
        if room in self.rooms:
            self.rooms.remove(room)
