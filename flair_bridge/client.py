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

"""Flair cloud API client.

Token Management:
-----------------
- OAuth2 password grant with the client id/secret issued by Flair
- Lazy refresh: a token is only requested when a call needs one and the
  current one is missing or about to expire
- A 401 on a data call drops the token and retries the call once

Errors:
-------
- FlairAuthError: credentials rejected (token endpoint 400/401/403, or a
  data call still answered 401 after re-authenticating)
- FlairApiError: any other non-2xx answer, and 2xx answers that are not
  valid JSON or lack the expected resource
- FlairTransportError: connection failures and timeouts

Payloads follow JSON:API: reads unwrap ``data``; writes PATCH
``{"data": {"type": ..., "attributes": {...}}}`` and answer with the updated
resource.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import aiohttp

from .exceptions import FlairApiError, FlairAuthError, FlairTransportError
from .models import FlairMode, Puck, Room, Structure, StructureHeatCoolMode, Vent

logger = logging.getLogger('flair-bridge')


class FlairClient:
    """Async client for the Flair cloud API."""

    API_BASE_URL = "https://api.flair.co"
    TOKEN_PATH = "/oauth/token"
    SCOPE = ("vents.view vents.edit structures.view structures.edit "
             "pucks.view pucks.edit rooms.view rooms.edit users.view")

    # Refresh this many seconds before the server-side expiry
    TOKEN_EXPIRY_MARGIN = 60

    def __init__(self, client_id: str, client_secret: str, username: str, password: str,
                 session: Optional[aiohttp.ClientSession] = None,
                 base_url: Optional[str] = None,
                 timeout: float = 30.0):
        self.client_id = client_id
        self.client_secret = client_secret
        self.username = username
        self.password = password
        self.base_url = (base_url or self.API_BASE_URL).rstrip('/')
        self.timeout = aiohttp.ClientTimeout(total=timeout)

        self.access_token: Optional[str] = None
        self.token_expires_at: Optional[float] = None

        self._session = session
        self._owns_session = session is None
        self._auth_lock: Optional[asyncio.Lock] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self):
        """Close the HTTP session if we created it."""
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()
            logger.debug("Closed Flair API session")

    def has_valid_access_token(self) -> bool:
        return (
            self.access_token is not None
            and self.token_expires_at is not None
            and time.time() < self.token_expires_at - self.TOKEN_EXPIRY_MARGIN
        )

    async def authenticate(self):
        """Request a new access token with the password grant."""
        session = await self._get_session()
        form = {
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'username': self.username,
            'password': self.password,
            'grant_type': 'password',
            'scope': self.SCOPE,
        }
        try:
            async with session.post(f"{self.base_url}{self.TOKEN_PATH}", data=form) as resp:
                if resp.status in (400, 401, 403):
                    error_text = await resp.text()
                    raise FlairAuthError(f"Flair rejected the credentials: HTTP {resp.status} - {error_text}")
                if resp.status != 200:
                    error_text = await resp.text()
                    raise FlairApiError(resp.status, error_text)
                token_data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FlairTransportError(f"Token request failed: {e}") from e

        self.access_token = token_data['access_token']
        expires_in = token_data.get('expires_in', 3600)
        self.token_expires_at = time.time() + expires_in
        logger.info(f"Obtained Flair API token (expires in {expires_in}s)")

    async def ensure_authenticated(self):
        if self.has_valid_access_token():
            return
        # One token request at a time; every poller waits for the same token.
        if self._auth_lock is None:
            self._auth_lock = asyncio.Lock()
        async with self._auth_lock:
            if not self.has_valid_access_token():
                await self.authenticate()

    async def get_headers(self) -> Dict[str, str]:
        await self.ensure_authenticated()
        return {
            'Authorization': f'Bearer {self.access_token}',
            'Accept': 'application/vnd.api+json',
            'Content-Type': 'application/json',
        }

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None,
                       retry_auth: bool = True) -> Dict[str, Any]:
        session = await self._get_session()
        headers = await self.get_headers()
        url = f"{self.base_url}{path}"
        try:
            logger.debug(f"{method} {url}")
            async with session.request(method, url, headers=headers, json=payload) as resp:
                if resp.status == 401:
                    self.access_token = None
                    if retry_auth:
                        logger.debug(f"Token rejected for {path}, re-authenticating")
                    else:
                        raise FlairAuthError(f"Unauthorized: {method} {path}")
                elif resp.status >= 400:
                    error_text = await resp.text()
                    raise FlairApiError(resp.status, error_text)
                elif resp.status == 204:
                    return {}
                else:
                    try:
                        return await resp.json(content_type=None)
                    except ValueError as e:
                        raise FlairApiError(resp.status, f"Invalid JSON from {method} {path}: {e}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FlairTransportError(f"{method} {path} failed: {e}") from e

        return await self._request(method, path, payload, retry_auth=False)

    async def _get(self, path: str):
        body = await self._request('GET', path)
        if not isinstance(body, dict):
            raise FlairApiError(None, f"GET {path} did not answer with a JSON:API document")
        return body.get('data')

    async def _get_resource(self, path: str) -> Dict[str, Any]:
        resource = await self._get(path)
        if not isinstance(resource, dict):
            raise FlairApiError(None, f"GET {path} returned no resource")
        return resource

    async def _patch(self, resource_type: str, resource_id: str, attributes: Dict[str, Any]):
        payload = {'data': {'type': resource_type, 'attributes': attributes}}
        body = await self._request('PATCH', f"/api/{resource_type}/{resource_id}", payload)
        return body.get('data') if isinstance(body, dict) else None

    @staticmethod
    def _parse(model, resource, **kwargs):
        """Build a model from a JSON:API resource; malformed resources raise FlairApiError."""
        if not isinstance(resource, dict):
            raise FlairApiError(None, f"Expected a {model.__name__} resource, got {resource!r}")
        try:
            return model.from_api(resource, **kwargs)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise FlairApiError(None, f"Malformed {model.__name__} resource: {e!r}") from e

    # ========================================================================
    # Users
    # ========================================================================

    async def get_users(self) -> List[Dict[str, Any]]:
        """List users; used as the credential check."""
        return await self._get('/api/users') or []

    # ========================================================================
    # Devices
    # ========================================================================

    async def list_vents(self) -> List[Vent]:
        return [self._parse(Vent, r) for r in await self._get('/api/vents') or []]

    async def list_rooms(self) -> List[Room]:
        return [self._parse(Room, r) for r in await self._get('/api/rooms') or []]

    async def list_pucks(self) -> List[Puck]:
        return [self._parse(Puck, r) for r in await self._get('/api/pucks') or []]

    async def read_vent(self, vent_id: str, name: Optional[str] = None) -> Vent:
        """Latest reading for a vent. Readings carry no name, so pass it along."""
        reading = await self._get_resource(f'/api/vents/{vent_id}/current-reading')
        return self._parse(Vent, {'id': vent_id, 'attributes': reading.get('attributes') or {}}, name=name)

    async def read_puck(self, puck_id: str, name: Optional[str] = None) -> Puck:
        reading = await self._get_resource(f'/api/pucks/{puck_id}/current-reading')
        return self._parse(Puck, {'id': puck_id, 'attributes': reading.get('attributes') or {}}, name=name)

    async def read_room(self, room_id: str) -> Room:
        return self._parse(Room, await self._get_resource(f'/api/rooms/{room_id}'))

    async def set_vent_open_percent(self, vent_id: str, percent_open: int) -> Vent:
        return self._parse(Vent, await self._patch('vents', vent_id, {'percent-open': int(percent_open)}))

    async def set_room_setpoint(self, room_id: str, set_point_c: float) -> Room:
        return self._parse(Room, await self._patch('rooms', room_id, {'set-point-c': set_point_c}))

    async def set_room_away(self, room_id: str, away: bool) -> Room:
        return self._parse(Room, await self._patch('rooms', room_id, {'active': not away}))

    # ========================================================================
    # Structure
    # ========================================================================

    async def get_primary_structure(self) -> Structure:
        structures = [s for s in await self._get('/api/structures') or [] if isinstance(s, dict)]
        if not structures:
            raise FlairApiError(404, "No structures found for this account")
        primary = next((s for s in structures if (s.get('attributes') or {}).get('primary')), structures[0])
        return self._parse(Structure, primary)

    async def get_structure(self, structure_id: str) -> Structure:
        return self._parse(Structure, await self._get_resource(f'/api/structures/{structure_id}'))

    async def set_structure_mode(self, structure_id: str, mode: FlairMode) -> Structure:
        return self._parse(Structure, await self._patch('structures', structure_id, {'mode': mode.value}))

    async def set_structure_heat_cool_mode(self, structure_id: str, mode: StructureHeatCoolMode) -> Structure:
        return self._parse(
            Structure, await self._patch('structures', structure_id, {'structure-heat-cool-mode': mode.value}))

    async def set_structure_setpoint(self, structure_id: str, set_point_c: float) -> Structure:
        return self._parse(
            Structure, await self._patch('structures', structure_id, {'set-point-temperature-c': set_point_c}))
