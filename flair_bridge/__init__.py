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
"""Flair Bridge - Flair vents, pucks and rooms as HomeKit-style accessories."""

from .__version__ import __version__

__author__ = "FlairBridge Contributors"
__description__ = "Flair vents, pucks and rooms as HomeKit-style accessories"

from .accessory import Accessory, Characteristic, Service
from .client import FlairClient
from .config import BridgeConfig, VentAccessoryType, load_config
from .exceptions import (
    AccessoryValidationError,
    ConfigError,
    FlairApiError,
    FlairAuthError,
    FlairError,
    FlairTransportError,
)
from .models import DeviceType, FlairMode, Puck, Room, Structure, StructureHeatCoolMode, Vent
from .platform import FlairPlatform
from .reconcile import AccessoryReconciler, ReconcileResult
from .scheduler import PollingScheduler
from .store import AccessoryStore
from .structure import StructureModeCoordinator
from . import homekit_uuids

__all__ = [
    "__version__",
    "Accessory",
    "Characteristic",
    "Service",
    "FlairClient",
    "BridgeConfig",
    "VentAccessoryType",
    "load_config",
    "AccessoryValidationError",
    "ConfigError",
    "FlairApiError",
    "FlairAuthError",
    "FlairError",
    "FlairTransportError",
    "DeviceType",
    "FlairMode",
    "Puck",
    "Room",
    "Structure",
    "StructureHeatCoolMode",
    "Vent",
    "FlairPlatform",
    "AccessoryReconciler",
    "ReconcileResult",
    "PollingScheduler",
    "AccessoryStore",
    "StructureModeCoordinator",
    "homekit_uuids",
]
