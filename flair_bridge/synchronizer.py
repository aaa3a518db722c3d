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
"""Per-device reading synchronizers.

A synchronizer owns one accessory. It keeps the last good device snapshot,
pulls a fresh reading on every poll and pushes the mapped values into the
accessory's characteristics. User commands go to the Flair cloud first; the
answer is applied through the same path as a poll, so the exposed values only
ever show what the cloud confirmed.
"""

import logging
from typing import Any, Awaitable, Dict, List, Optional, Tuple

from .accessory import Accessory, Characteristic
from .exceptions import AccessoryValidationError, FlairError
from .homekit_uuids import (
    CHAR_FIRMWARE_REVISION,
    CHAR_MANUFACTURER,
    CHAR_MODEL,
    CHAR_NAME,
    CHAR_SERIAL_NUMBER,
    SERVICE_ACCESSORY_INFORMATION,
    get_service_name,
)
from .models import DEVICE_CLASSES, Device, DeviceType

logger = logging.getLogger(__name__)

MANUFACTURER = 'Flair'

# (service type, subtype, display name)
ServiceDefinition = Tuple[str, Optional[str], Optional[str]]


def accessory_context(device: Device) -> Dict[str, Any]:
    """Persisted context for a new accessory."""
    return {'type': device.device_type.value, 'device': device.to_dict()}


class ReadingSynchronizer:
    """Base class for the vent, puck and room synchronizers."""

    device_type: DeviceType
    model_name = 'Flair'

    def __init__(self, accessory: Accessory, client, store, config):
        self.accessory = accessory
        self.client = client
        self.store = store
        self.config = config
        self.poll = None
        # Bumped by every command; a poll that overlaps one is dropped
        self.command_generation = 0

        if accessory.type_tag != self.device_type.value:
            raise AccessoryValidationError(
                f"{accessory.display_name} is a {accessory.type_tag}, not a {self.device_type.value}")
        self.device = DEVICE_CLASSES[self.device_type].from_dict(accessory.context.get('device'))

        self.sync_services()
        self.configure_characteristics()
        self.update_information()
        self.push_characteristics()

    @property
    def name(self) -> str:
        return self.device.name or self.accessory.display_name

    @property
    def serial_number(self) -> str:
        return self.device.id

    # ========================================================================
    # Exposed surface
    # ========================================================================

    def desired_services(self) -> List[ServiceDefinition]:
        """Services this device should expose besides AccessoryInformation."""
        raise NotImplementedError

    def sync_services(self) -> bool:
        """Bring the accessory's services in line with desired_services().

        Only the difference is applied: stale services are removed, missing
        ones added, matching ones left alone. Returns True if anything changed.
        """
        desired = {}
        for service_type, subtype, name in self.desired_services():
            desired[(service_type.upper(), subtype)] = name

        changed = False
        for key, service in list(self.accessory.services.items()):
            if service.type == SERVICE_ACCESSORY_INFORMATION or key in desired:
                continue
            logger.info(f"Removing {get_service_name(service.type)} service from {self.accessory.display_name}")
            self.accessory.remove_service(service)
            changed = True

        for (service_type, subtype), name in desired.items():
            if self.accessory.get_service(service_type, subtype) is None:
                logger.debug(f"Adding {get_service_name(service_type)} service to {self.accessory.display_name}")
                self.accessory.add_service(service_type, name, subtype)
                changed = True

        if changed:
            self.store.update_accessories([self.accessory])
        return changed

    def characteristic(self, service_type: str, char_type: str, subtype: Optional[str] = None) -> Characteristic:
        service = self.accessory.get_service(service_type, subtype)
        if service is None:
            raise AccessoryValidationError(
                f"{self.accessory.display_name} has no {get_service_name(service_type)} service")
        return service.get_characteristic(char_type)

    def configure_characteristics(self):
        """Set characteristic props and command handlers."""
        pass

    def push_characteristics(self):
        """Push the current snapshot into the characteristics."""
        raise NotImplementedError

    def update_information(self):
        info = self.accessory.get_service(SERVICE_ACCESSORY_INFORMATION)
        info.update_characteristic(CHAR_NAME, self.name)
        info.update_characteristic(CHAR_MANUFACTURER, MANUFACTURER)
        info.update_characteristic(CHAR_MODEL, self.model_name)
        info.update_characteristic(CHAR_SERIAL_NUMBER, self.serial_number)
        if self.device.firmware_version_s is not None:
            info.update_characteristic(CHAR_FIRMWARE_REVISION, self.device.firmware_version_s)

    # ========================================================================
    # Polling
    # ========================================================================

    async def fetch(self) -> Device:
        """Read the current state of this device from the Flair cloud."""
        raise NotImplementedError

    async def refresh(self) -> Device:
        """Poll once; on failure keep and return the previous snapshot.

        A reading fetched while a command was issued may predate the
        command's confirmed state, so it is dropped.
        """
        generation = self.command_generation
        try:
            device = await self.fetch()
        except FlairError as e:
            logger.debug(f"Failed to refresh {self.name}: {e}")
            return self.device
        if generation != self.command_generation:
            logger.debug(f"Dropping reading for {self.name} that overlapped a command")
            return self.device
        self.update_from_device(device)
        return device

    async def run_command(self, request: Awaitable[Device]) -> Device:
        """Await a mutating cloud call and show the snapshot it answered with.

        Any poll in flight at some point during the call is dropped.
        """
        self.command_generation += 1
        try:
            device = await request
        finally:
            self.command_generation += 1
        self.update_from_device(device)
        return device

    def update_from_device(self, device: Device):
        """Replace the snapshot and push it out."""
        if not device.name:
            device.name = self.device.name
        self.device = device
        self.accessory.context['device'] = device.to_dict()
        self.update_information()
        self.push_characteristics()
        self.store.update_accessories([self.accessory])

    def start(self, scheduler, interval: float, jitter: int):
        """Start the repeating poll; the first poll runs right away."""
        self.stop()
        self.poll = scheduler.schedule(interval, jitter, self.refresh,
                                       name=f"{self.device_type.value}-{self.device.id}")
        return self.poll

    def stop(self):
        if self.poll is not None:
            self.poll.cancel()
            self.poll = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} ({self.device.id})>"
