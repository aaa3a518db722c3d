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
"""Flair platform: restores cached accessories and discovers new ones.

Startup order:

1. check the configuration and the credentials (once)
2. fetch the structure
3. restore every cached accessory and start its poll
4. list the devices and reconcile them against the accessory set
5. start the periodic structure refresh
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from .__version__ import __version__
from .accessory import Accessory
from .client import FlairClient
from .exceptions import AccessoryValidationError, FlairError
from .models import Device, DeviceType
from .puck import PuckSynchronizer
from .reconcile import AccessoryReconciler, ReconcileResult
from .room import RoomSynchronizer
from .scheduler import PollingScheduler
from .structure import StructureModeCoordinator
from .synchronizer import ReadingSynchronizer
from .vent import VentSynchronizer

logger = logging.getLogger('flair-bridge')

ACTIVE_ROOM_STATUS = 'Active'

Rosters = Dict[DeviceType, List[Device]]


class FlairPlatform:
    """Top-level orchestrator tying the client, the store and the synchronizers together."""

    def __init__(self, config, store, client=None, scheduler: Optional[PollingScheduler] = None):
        self.config = config
        self.store = store
        self.client = client or FlairClient(
            config.client_id, config.client_secret, config.username, config.password)
        self.scheduler = scheduler or PollingScheduler()
        self.coordinator = StructureModeCoordinator(self.client)
        self.reconciler = AccessoryReconciler(
            store, self.create_synchronizer, on_added=self._activate, on_removed=self._deactivate)
        self.structure_poll = None
        self.started = False
        self._has_valid_credentials: Optional[bool] = None

    @property
    def accessories(self) -> Dict[str, Accessory]:
        return self.reconciler.accessories

    async def check_credentials(self) -> bool:
        """Check the credentials once with a cheap call; the answer is cached."""
        if self._has_valid_credentials is not None:
            return self._has_valid_credentials
        try:
            await self.client.get_users()
            self._has_valid_credentials = True
        except FlairError as e:
            self._has_valid_credentials = False
            logger.error("Error getting structure readings, this is usually incorrect credentials, "
                         f"ensure you entered the right credentials: {e}")
        return self._has_valid_credentials

    async def start(self) -> bool:
        """Restore, discover and start polling. Returns False if nothing could start."""
        if not self.config.has_valid_config():
            return False
        if not await self.check_credentials():
            return False

        try:
            await self.coordinator.get_structure()
        except FlairError:
            logger.warning("Rooms show as off until the structure can be read")

        await self.reconciler.restore_cached(self.store.load_accessories, self.hidden_types())

        await self.discover_devices()

        self.structure_poll = self.scheduler.schedule(
            self.config.structure_poll_interval, self.config.poll_jitter,
            self.coordinator.refresh, name="structure")
        self.started = True
        logger.info(f"Flair platform {self.config.name} started with {len(self.accessories)} accessories")
        return True

    async def stop(self):
        if self.structure_poll is not None:
            self.structure_poll.cancel()
            self.structure_poll = None
        await self.scheduler.cancel_all()
        await self.client.close()
        self.started = False

    def hidden_types(self) -> Set[DeviceType]:
        hidden = set()
        if self.config.vents_hidden:
            hidden.add(DeviceType.VENT)
        if self.config.hide_puck_rooms:
            hidden.add(DeviceType.ROOM)
        if self.config.hide_puck_sensors:
            hidden.add(DeviceType.PUCK)
        return hidden

    def configure_accessory(self, accessory: Accessory, hidden: Optional[Set[DeviceType]] = None):
        """Restore one cached accessory."""
        if hidden is None:
            hidden = self.hidden_types()
        return self.reconciler.restore(accessory, hidden)

    def create_synchronizer(self, accessory: Accessory) -> ReadingSynchronizer:
        device_type = DeviceType.parse(accessory.type_tag)
        if device_type == DeviceType.VENT:
            return VentSynchronizer(accessory, self.client, self.store, self.config)
        if device_type == DeviceType.PUCK:
            return PuckSynchronizer(accessory, self.client, self.store, self.config)
        if device_type == DeviceType.ROOM:
            return RoomSynchronizer(accessory, self.client, self.store, self.config, self.coordinator)
        raise AccessoryValidationError(f"No synchronizer for {device_type}")

    def _activate(self, synchronizer: ReadingSynchronizer):
        synchronizer.start(self.scheduler, self.config.poll_interval, self.config.poll_jitter)

    def _deactivate(self, synchronizer: ReadingSynchronizer):
        logger.debug(f"Stopped polling {synchronizer!r}")

    # ========================================================================
    # Discovery
    # ========================================================================

    async def fetch_rosters(self) -> Tuple[Rosters, List[DeviceType]]:
        """List every category that is not hidden.

        Returns:
            (devices per listed category, categories whose listing failed)
        """
        hidden = self.hidden_types()
        listings = {}
        if DeviceType.VENT not in hidden:
            listings[DeviceType.VENT] = self.client.list_vents()
        if DeviceType.ROOM not in hidden:
            listings[DeviceType.ROOM] = self.client.list_rooms()
        if DeviceType.PUCK not in hidden:
            listings[DeviceType.PUCK] = self.client.list_pucks()

        results = await asyncio.gather(*listings.values(), return_exceptions=True)

        rosters: Rosters = {}
        unavailable: List[DeviceType] = []
        for device_type, result in zip(listings, results):
            if isinstance(result, FlairError):
                logger.warning(f"Failed to list {device_type.value}s: {result}")
                unavailable.append(device_type)
                continue
            if isinstance(result, BaseException):
                raise result
            if device_type == DeviceType.ROOM:
                # Only rooms with working pucks report readings
                result = [room for room in result if room.pucks_inactive == ACTIVE_ROOM_STATUS]
            rosters[device_type] = result
        return rosters, unavailable

    async def discover_devices(self) -> ReconcileResult:
        rosters, unavailable = await self.fetch_rosters()
        return await self.reconciler.reconcile(rosters, unavailable)

    # ========================================================================
    # Accessory access
    # ========================================================================

    def get_accessory(self, uuid: str) -> Accessory:
        """Raises KeyError for an unknown uuid."""
        try:
            return self.accessories[uuid]
        except KeyError:
            raise KeyError(f"Unknown accessory: {uuid}")

    async def set_characteristic(self, uuid: str, name: str, value: Any) -> Dict[str, Any]:
        """Run a user command against one characteristic.

        Raises:
            KeyError: unknown accessory or characteristic
            AccessoryValidationError: read-only characteristic or value out of range
            FlairError: the cloud rejected the command
        """
        accessory = self.get_accessory(uuid)
        characteristic = accessory.find_characteristic(name)
        if characteristic is None:
            raise KeyError(f"{accessory.display_name} has no {name} characteristic")
        await characteristic.handle_set(value)
        return characteristic.to_dict()

    def status(self) -> Dict[str, Any]:
        counts = {t.value: 0 for t in DeviceType}
        for accessory in self.accessories.values():
            if accessory.type_tag in counts:
                counts[accessory.type_tag] += 1
        structure = self.coordinator.structure
        last = self.reconciler.last_result
        return {
            'version': __version__,
            'started': self.started,
            'accessories': counts,
            'polls': len(self.scheduler.polls),
            'last_discovery': last.to_dict() if last else None,
            'structure': structure.to_dict() if structure else None,
        }
