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
"""SQLite-backed accessory store.

This is the host side of accessory persistence: restored accessories are
read from here at startup, and registration, context updates and removals
are written through immediately so a restart always sees the last state.
"""

import logging
import sqlite3
from typing import Dict, Iterable, List

from aiohomekit import hkjson

from .accessory import Accessory
from .database import ensure_schema_and_migrate

logger = logging.getLogger(__name__)


class AccessoryStore:
    """Persistent accessory cache with an in-memory index by uuid."""

    def __init__(self, db_path: str):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self.accessories: Dict[str, Accessory] = {}
        ensure_schema_and_migrate(self.db_path)

    def load_accessories(self) -> List[Accessory]:
        """Load all persisted accessories into memory and return them."""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.execute("SELECT uuid, display_name, context, services FROM accessories ORDER BY created_at, uuid")

        for uuid, display_name, context_json, services_json in cursor.fetchall():
            try:
                context = hkjson.loads(context_json)
                layout = hkjson.loads(services_json or "[]")
            except Exception as e:
                logger.warning(f"Failed to load cached accessory {display_name} ({uuid}): {e}")
                continue
            accessory = Accessory(display_name, uuid, context)
            accessory.restore_services(layout)
            self.accessories[uuid] = accessory

        conn.close()
        logger.info(f"Loaded {len(self.accessories)} accessories from cache")
        return list(self.accessories.values())

    def register_accessories(self, accessories: Iterable[Accessory]) -> None:
        """Add new accessories; registering a known uuid again is refused."""
        conn = sqlite3.connect(self.db_path)
        try:
            for accessory in accessories:
                if accessory.uuid in self.accessories:
                    logger.warning(f"Accessory {accessory.display_name} ({accessory.uuid}) is already registered")
                    continue
                conn.execute("""
                    INSERT OR REPLACE INTO accessories (uuid, display_name, device_type, context, services)
                    VALUES (?, ?, ?, ?, ?)
                """, (accessory.uuid, accessory.display_name, accessory.type_tag,
                      hkjson.dumps(accessory.context), hkjson.dumps(accessory.service_layout())))
                self.accessories[accessory.uuid] = accessory
                logger.debug(f"Registered accessory {accessory.display_name} ({accessory.uuid})")
            conn.commit()
        finally:
            conn.close()

    def update_accessories(self, accessories: Iterable[Accessory]) -> None:
        """Persist the current name and context of registered accessories."""
        conn = sqlite3.connect(self.db_path)
        try:
            for accessory in accessories:
                if accessory.uuid not in self.accessories:
                    logger.debug(f"Skipping context update for unregistered accessory {accessory.display_name}")
                    continue
                conn.execute("""
                    UPDATE accessories
                    SET display_name = ?, device_type = ?, context = ?, services = ?, updated_at = CURRENT_TIMESTAMP
                    WHERE uuid = ?
                """, (accessory.display_name, accessory.type_tag, hkjson.dumps(accessory.context),
                      hkjson.dumps(accessory.service_layout()), accessory.uuid))
            conn.commit()
        finally:
            conn.close()

    def unregister_accessories(self, accessories: Iterable[Accessory]) -> None:
        """Remove accessories from memory and database."""
        conn = sqlite3.connect(self.db_path)
        try:
            for accessory in accessories:
                self.accessories.pop(accessory.uuid, None)
                conn.execute("DELETE FROM accessories WHERE uuid = ?", (accessory.uuid,))
                logger.debug(f"Unregistered accessory {accessory.display_name} ({accessory.uuid})")
            conn.commit()
        finally:
            conn.close()

    def get(self, uuid: str):
        return self.accessories.get(uuid)
