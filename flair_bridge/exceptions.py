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

"""Exceptions raised by Flair Bridge."""


class FlairError(Exception):
    """Base class for Flair Bridge errors."""

    pass


class FlairAuthError(FlairError):
    """Raised when the Flair cloud rejects our credentials."""

    pass


class FlairTransportError(FlairError):
    """Raised when a request to the Flair cloud could not be completed."""

    pass


class FlairApiError(FlairError):
    """Raised when the Flair cloud answers with an error status."""

    def __init__(self, status_code, error_message):
        self.status_code = status_code
        self.error_message = error_message
        if status_code is None:
            super().__init__(f"Invalid API response: {error_message}")
        else:
            super().__init__(f"API Error {status_code}: {error_message}")


class ConfigError(Exception):
    """Raised when the bridge configuration cannot be used."""

    pass


class AccessoryValidationError(Exception):
    """Raised when a single accessory cannot be built from its device or context."""

    pass
