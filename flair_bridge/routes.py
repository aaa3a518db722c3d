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
"""FastAPI route handlers for Flair Bridge."""

import logging
import os
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from .__version__ import __version__
from .exceptions import AccessoryValidationError, FlairError
from .models import FlairMode, StructureHeatCoolMode

logger = logging.getLogger(__name__)

# Security
security = HTTPBearer(auto_error=False)

# API key configuration (from environment variable)
# Multiple keys can be specified, space-separated
API_KEYS_RAW = os.environ.get('FLAIR_API_KEYS', '').strip()
API_KEYS = set(key.strip() for key in API_KEYS_RAW.split() if key.strip()) if API_KEYS_RAW else set()


class CharacteristicWrite(BaseModel):
    value: Any


class StructureModeRequest(BaseModel):
    mode: str = FlairMode.AUTO.value
    heat_cool_mode: Optional[str] = None


def get_api_key(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Optional[str]:
    """
    Validate API key from Authorization header.

    If API keys are configured (FLAIR_API_KEYS environment variable), checks Bearer token.
    If no API keys are configured, authentication is disabled.

    Returns:
        The validated API key, or None if authentication is disabled

    Raises:
        HTTPException 401 if authentication fails
    """
    if not API_KEYS:
        return None

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if credentials.credentials not in API_KEYS:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return credentials.credentials


def create_app():
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Flair Bridge",
        description="Flair vents, pucks and rooms as HomeKit-style accessories",
        version=__version__
    )

    if API_KEYS:
        logger.info(f"API authentication enabled ({len(API_KEYS)} key(s) configured)")
    else:
        logger.info("API authentication disabled (no FLAIR_API_KEYS configured)")

    return app


def register_routes(app: FastAPI, get_platform):
    """Register all API routes.

    Args:
        app: FastAPI application instance
        get_platform: Callable that returns the current FlairPlatform instance
    """

    def require_platform(started: bool = True):
        platform = get_platform()
        if platform is None:
            raise HTTPException(status_code=503, detail="Platform not created")
        if started and not platform.started:
            raise HTTPException(status_code=503, detail="Platform not started")
        return platform

    @app.get("/status", tags=["Status"])
    async def get_status(api_key: Optional[str] = Depends(get_api_key)):
        """Get overall bridge status; available while the platform is starting."""
        return require_platform(started=False).status()

    @app.get("/accessories", tags=["Accessories"])
    async def get_accessories(api_key: Optional[str] = Depends(get_api_key)):
        """Get all accessories with their services and last synchronized values."""
        platform = require_platform()
        return {
            "accessories": [a.to_dict() for a in platform.accessories.values()],
        }

    @app.get("/accessories/{uuid}", tags=["Accessories"])
    async def get_accessory(uuid: str, api_key: Optional[str] = Depends(get_api_key)):
        platform = require_platform()
        try:
            accessory = platform.get_accessory(uuid)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Accessory {uuid} not found")
        return {"accessory": accessory.to_dict()}

    @app.put("/accessories/{uuid}/characteristics/{name}", tags=["Accessories"])
    async def set_characteristic(uuid: str, name: str, body: CharacteristicWrite,
                                 api_key: Optional[str] = Depends(get_api_key)):
        """
        Send a command through a writable characteristic.

        The returned value is what the Flair cloud confirmed, which can
        differ from the requested value.
        """
        platform = require_platform()
        try:
            characteristic = await platform.set_characteristic(uuid, name, body.value)
        except KeyError as e:
            raise HTTPException(status_code=404, detail=str(e).strip("'\""))
        except AccessoryValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except FlairError as e:
            logger.warning(f"Command {name}={body.value!r} on {uuid} failed: {e}")
            raise HTTPException(status_code=502, detail=f"Flair API error: {e}")
        return {"success": True, "characteristic": characteristic}

    @app.post("/refresh", tags=["Accessories"])
    async def refresh(api_key: Optional[str] = Depends(get_api_key)):
        """Run a discovery pass now."""
        platform = require_platform()
        result = await platform.discover_devices()
        return result.to_dict()

    @app.post("/structure/mode", tags=["Structure"])
    async def set_structure_mode(body: StructureModeRequest, api_key: Optional[str] = Depends(get_api_key)):
        """Set the structure operating mode and, optionally, its heat/cool mode."""
        platform = require_platform()
        try:
            mode = FlairMode(body.mode.lower())
            heat_cool_mode = StructureHeatCoolMode.parse(body.heat_cool_mode)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        try:
            structure = await platform.coordinator.set_mode(mode, heat_cool_mode)
        except FlairError as e:
            raise HTTPException(status_code=502, detail=f"Flair API error: {e}")
        return {"success": True, "structure": structure.to_dict()}
