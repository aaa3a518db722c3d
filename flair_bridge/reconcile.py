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
"""Accessory reconciliation.

Keeps the registered accessory set in line with the Flair device roster:

- a device with no accessory gets one, identified by ``accessory_uuid(device.id)``
- a device that already has an accessory is left alone; its synchronizer is
  already polling
- an accessory whose device is not in this pass's roster is stopped,
  unregistered and dropped from the cache

A category missing from the roster (hidden by configuration) therefore loses
all its accessories. A category whose fetch failed is passed as
``unavailable`` and keeps its accessories until a later pass can list it.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Collection, Dict, Iterable, List, Mapping, Optional

from .accessory import Accessory
from .exceptions import AccessoryValidationError
from .models import Device, DeviceType
from .synchronizer import ReadingSynchronizer, accessory_context

logger = logging.getLogger(__name__)

SynchronizerFactory = Callable[[Accessory], ReadingSynchronizer]
SynchronizerCallback = Callable[[ReadingSynchronizer], Any]


@dataclass
class ReconcileResult:
    added: List[str] = field(default_factory=list)
    kept: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    unavailable: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            'added': list(self.added),
            'kept': list(self.kept),
            'removed': list(self.removed),
            'unavailable': list(self.unavailable),
        }


class AccessoryReconciler:
    """Owns the live accessory set and one synchronizer per accessory."""

    def __init__(self, store, create_synchronizer: SynchronizerFactory,
                 on_added: Optional[SynchronizerCallback] = None,
                 on_removed: Optional[SynchronizerCallback] = None):
        self.store = store
        self.create_synchronizer = create_synchronizer
        self.on_added = on_added
        self.on_removed = on_removed
        self.accessories: Dict[str, Accessory] = {}
        self.synchronizers: Dict[str, ReadingSynchronizer] = {}
        self.last_result: Optional[ReconcileResult] = None
        self._lock: Optional[asyncio.Lock] = None

    def _reconcile_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def restore(self, accessory: Accessory,
                hidden_types: Collection[DeviceType] = ()) -> Optional[ReadingSynchronizer]:
        """Wire a cached accessory to a new synchronizer.

        Accessories of a hidden category, or that cannot be rebuilt from
        their context, are unregistered instead. An accessory whose uuid is
        already live keeps its current synchronizer.
        """
        live = self.synchronizers.get(accessory.uuid)
        if live is not None:
            logger.debug(f"{accessory.display_name} is already registered, not restoring it again")
            return live

        try:
            device_type = DeviceType.parse(accessory.type_tag)
        except AccessoryValidationError as e:
            logger.error(f"Removing cached accessory {accessory.display_name}: {e}")
            self.store.unregister_accessories([accessory])
            return None

        if device_type in hidden_types:
            logger.info(f"Removing {device_type.value} accessory from cache since "
                        f"{device_type.value}s are now hidden: {accessory.display_name}")
            self.store.unregister_accessories([accessory])
            return None

        try:
            synchronizer = self.create_synchronizer(accessory)
        except AccessoryValidationError as e:
            logger.error(f"Failed to restore {accessory.display_name}: {e}")
            self.store.unregister_accessories([accessory])
            return None

        logger.info(f"Restoring {device_type.value} from cache: {accessory.display_name}")
        self._track(accessory, synchronizer)
        return synchronizer

    async def restore_cached(self, load_accessories: Callable[[], Iterable[Accessory]],
                             hidden_types: Collection[DeviceType] = ()) -> List[ReadingSynchronizer]:
        """Load the cache and restore every accessory in it.

        Runs under the reconciliation lock so a concurrent pass cannot
        register the same uuids in between.
        """
        async with self._reconcile_lock():
            restored = []
            for accessory in load_accessories():
                synchronizer = self.restore(accessory, hidden_types)
                if synchronizer is not None:
                    restored.append(synchronizer)
            return restored

    async def reconcile(self, rosters: Mapping[DeviceType, Iterable[Device]],
                        unavailable: Collection[DeviceType] = ()) -> ReconcileResult:
        """Diff the roster against the registered accessories and apply it.

        Args:
            rosters: devices per category that was listed this pass
            unavailable: categories whose listing failed

        Returns:
            uuids added, kept and removed
        """
        async with self._reconcile_lock():
            result = ReconcileResult(unavailable=[t.value for t in unavailable])
            current_uuids = set()

            for device_type, devices in rosters.items():
                for device in devices:
                    uuid = device.uuid
                    if uuid in current_uuids:
                        logger.debug(f"Device {device.name} ({device.id}) listed twice, ignoring")
                        continue
                    current_uuids.add(uuid)

                    existing = self.accessories.get(uuid)
                    if existing is not None:
                        if existing.type_tag != device.device_type.value:
                            logger.warning(f"{device.name} ({device.id}) is now reported as a "
                                           f"{device.device_type.value} but is cached as a "
                                           f"{existing.type_tag}; keeping the cached accessory")
                        else:
                            logger.debug(f"Discovered accessory already exists: {device.name}")
                        result.kept.append(uuid)
                        continue

                    if self._add(device):
                        result.added.append(uuid)

            for uuid, accessory in list(self.accessories.items()):
                if uuid in current_uuids:
                    continue
                if accessory.type_tag in result.unavailable:
                    logger.debug(f"Keeping {accessory.display_name}, its category could not be listed")
                    continue
                logger.info(f"Removing not found device: {accessory.display_name}")
                self.evict(uuid)
                result.removed.append(uuid)

            self.last_result = result
            logger.info(f"Reconciled accessories: {len(result.added)} added, "
                        f"{len(result.kept)} kept, {len(result.removed)} removed")
            return result

    def _add(self, device: Device) -> bool:
        accessory = Accessory(device.name, device.uuid, accessory_context(device))
        try:
            synchronizer = self.create_synchronizer(accessory)
        except AccessoryValidationError as e:
            logger.error(f"Not registering {device.device_type.value} {device.name}: {e}")
            return False

        logger.info(f"Registering new {device.device_type.value}: {device.name}")
        self.store.register_accessories([accessory])
        self._track(accessory, synchronizer)
        return True

    def _track(self, accessory: Accessory, synchronizer: ReadingSynchronizer):
        self.accessories[accessory.uuid] = accessory
        self.synchronizers[accessory.uuid] = synchronizer
        if self.on_added:
            self.on_added(synchronizer)

    def evict(self, uuid: str):
        """Stop the accessory's polling and unregister it."""
        accessory = self.accessories.pop(uuid, None)
        synchronizer = self.synchronizers.pop(uuid, None)
        if synchronizer is not None:
            synchronizer.stop()
            if self.on_removed:
                self.on_removed(synchronizer)
        if accessory is not None:
            self.store.unregister_accessories([accessory])
