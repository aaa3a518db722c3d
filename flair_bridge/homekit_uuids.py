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
"""
HomeKit UUID mappings for the services and characteristics we expose.

Apple standard types use the 0000XXXX-0000-1000-8000-0026BB765291 form.
The pressure service and characteristic are custom types; HomeKit has no
standard pressure sensor.
"""

# === SERVICES ===
SERVICE_ACCESSORY_INFORMATION = "0000003E-0000-1000-8000-0026BB765291"
SERVICE_THERMOSTAT = "0000004A-0000-1000-8000-0026BB765291"
SERVICE_HUMIDITY_SENSOR = "00000082-0000-1000-8000-0026BB765291"
SERVICE_TEMPERATURE_SENSOR = "0000008A-0000-1000-8000-0026BB765291"
SERVICE_WINDOW_COVERING = "0000008C-0000-1000-8000-0026BB765291"
SERVICE_FAN_V2 = "000000B7-0000-1000-8000-0026BB765291"
SERVICE_AIR_PURIFIER = "000000BB-0000-1000-8000-0026BB765291"
SERVICE_PRESSURE_SENSOR = "2B411C00-E2E2-4B21-A665-7F079E525404"

# === CHARACTERISTICS ===
# Accessory information
CHAR_MANUFACTURER = "00000020-0000-1000-8000-0026BB765291"
CHAR_MODEL = "00000021-0000-1000-8000-0026BB765291"
CHAR_NAME = "00000023-0000-1000-8000-0026BB765291"
CHAR_SERIAL_NUMBER = "00000030-0000-1000-8000-0026BB765291"
CHAR_FIRMWARE_REVISION = "00000052-0000-1000-8000-0026BB765291"

# Environment
CHAR_CURRENT_HEATING_COOLING_STATE = "0000000F-0000-1000-8000-0026BB765291"
CHAR_CURRENT_RELATIVE_HUMIDITY = "00000010-0000-1000-8000-0026BB765291"
CHAR_CURRENT_TEMPERATURE = "00000011-0000-1000-8000-0026BB765291"
CHAR_TARGET_HEATING_COOLING_STATE = "00000033-0000-1000-8000-0026BB765291"
CHAR_TARGET_TEMPERATURE = "00000035-0000-1000-8000-0026BB765291"
CHAR_TEMPERATURE_DISPLAY_UNITS = "00000036-0000-1000-8000-0026BB765291"
CHAR_PRESSURE = "2B411C00-E2E2-4B21-A665-7F079E525304"

# Position (window covering)
CHAR_CURRENT_POSITION = "0000006D-0000-1000-8000-0026BB765291"
CHAR_POSITION_STATE = "00000072-0000-1000-8000-0026BB765291"
CHAR_TARGET_POSITION = "0000007C-0000-1000-8000-0026BB765291"

# Fan / air purifier
CHAR_ROTATION_SPEED = "00000029-0000-1000-8000-0026BB765291"
CHAR_TARGET_AIR_PURIFIER_STATE = "000000A8-0000-1000-8000-0026BB765291"
CHAR_CURRENT_AIR_PURIFIER_STATE = "000000A9-0000-1000-8000-0026BB765291"
CHAR_ACTIVE = "000000B0-0000-1000-8000-0026BB765291"

HOMEKIT_SERVICES = {
    SERVICE_ACCESSORY_INFORMATION: "AccessoryInformation",
    SERVICE_THERMOSTAT: "Thermostat",
    SERVICE_HUMIDITY_SENSOR: "HumiditySensor",
    SERVICE_TEMPERATURE_SENSOR: "TemperatureSensor",
    SERVICE_WINDOW_COVERING: "WindowCovering",
    SERVICE_FAN_V2: "Fanv2",
    SERVICE_AIR_PURIFIER: "AirPurifier",
    SERVICE_PRESSURE_SENSOR: "PressureSensor",
}

HOMEKIT_CHARACTERISTICS = {
    CHAR_MANUFACTURER: "Manufacturer",
    CHAR_MODEL: "Model",
    CHAR_NAME: "Name",
    CHAR_SERIAL_NUMBER: "SerialNumber",
    CHAR_FIRMWARE_REVISION: "FirmwareRevision",
    CHAR_CURRENT_HEATING_COOLING_STATE: "CurrentHeatingCoolingState",
    CHAR_CURRENT_RELATIVE_HUMIDITY: "CurrentRelativeHumidity",
    CHAR_CURRENT_TEMPERATURE: "CurrentTemperature",
    CHAR_TARGET_HEATING_COOLING_STATE: "TargetHeatingCoolingState",
    CHAR_TARGET_TEMPERATURE: "TargetTemperature",
    CHAR_TEMPERATURE_DISPLAY_UNITS: "TemperatureDisplayUnits",
    CHAR_PRESSURE: "Pressure",
    CHAR_CURRENT_POSITION: "CurrentPosition",
    CHAR_POSITION_STATE: "PositionState",
    CHAR_TARGET_POSITION: "TargetPosition",
    CHAR_ROTATION_SPEED: "RotationSpeed",
    CHAR_TARGET_AIR_PURIFIER_STATE: "TargetAirPurifierState",
    CHAR_CURRENT_AIR_PURIFIER_STATE: "CurrentAirPurifierState",
    CHAR_ACTIVE: "Active",
}

# Enumerated characteristic values
HEATING_COOLING_OFF = 0
HEATING_COOLING_HEAT = 1
HEATING_COOLING_COOL = 2
HEATING_COOLING_AUTO = 3  # target state only

POSITION_STATE_DECREASING = 0
POSITION_STATE_INCREASING = 1
POSITION_STATE_STOPPED = 2

ACTIVE_INACTIVE = 0
ACTIVE_ACTIVE = 1

AIR_PURIFIER_INACTIVE = 0
AIR_PURIFIER_IDLE = 1
AIR_PURIFIER_PURIFYING = 2

AIR_PURIFIER_TARGET_MANUAL = 0
AIR_PURIFIER_TARGET_AUTO = 1

HOMEKIT_VALUES = {
    CHAR_CURRENT_HEATING_COOLING_STATE: {
        0: "Off",
        1: "Heat",
        2: "Cool",
    },
    CHAR_TARGET_HEATING_COOLING_STATE: {
        0: "Off",
        1: "Heat",
        2: "Cool",
        3: "Auto"
    },
    CHAR_POSITION_STATE: {
        0: "Decreasing",
        1: "Increasing",
        2: "Stopped"
    },
    CHAR_ACTIVE: {
        0: "Inactive",
        1: "Active"
    },
    CHAR_CURRENT_AIR_PURIFIER_STATE: {
        0: "Inactive",
        1: "Idle",
        2: "Purifying Air"
    },
    CHAR_TARGET_AIR_PURIFIER_STATE: {
        0: "Manual",
        1: "Auto"
    },
}

_CHARACTERISTICS_BY_NAME = {name.lower(): uuid for uuid, name in HOMEKIT_CHARACTERISTICS.items()}


def get_service_name(uuid: str) -> str:
    return HOMEKIT_SERVICES.get(uuid.upper(), uuid)


def get_characteristic_name(uuid: str) -> str:
    return HOMEKIT_CHARACTERISTICS.get(uuid.upper(), uuid)


def get_characteristic_uuid(name: str) -> str:
    """Resolve a characteristic name (case-insensitive) or UUID to its UUID."""
    if name.upper() in HOMEKIT_CHARACTERISTICS:
        return name.upper()
    try:
        return _CHARACTERISTICS_BY_NAME[name.lower()]
    except KeyError:
        raise KeyError(f"Unknown characteristic: {name}")


def get_value_description(char_uuid: str, value):
    """Human readable description for enumerated characteristic values."""
    return HOMEKIT_VALUES.get(char_uuid.upper(), {}).get(value)
