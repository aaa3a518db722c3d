import asyncio

import pytest

from flair_bridge.exceptions import FlairTransportError
from flair_bridge.homekit_uuids import (
    HEATING_COOLING_AUTO,
    HEATING_COOLING_COOL,
    HEATING_COOLING_HEAT,
    HEATING_COOLING_OFF,
)
from flair_bridge.models import FlairMode, StructureHeatCoolMode
from flair_bridge.structure import (
    StructureModeCoordinator,
    current_heating_cooling_state,
    target_heating_cooling_state,
)


class RecordingRoom:
    def __init__(self):
        self.structures = []

    def update_from_structure(self, structure):
        self.structures.append(structure)


@pytest.mark.parametrize("mode", list(StructureHeatCoolMode) + [None])
def test_inactive_room_is_off_whatever_the_structure_mode(mode):
    assert current_heating_cooling_state(False, mode) == HEATING_COOLING_OFF
    assert target_heating_cooling_state(False, mode) == HEATING_COOLING_OFF


@pytest.mark.parametrize("mode, target, current", [
    (StructureHeatCoolMode.HEAT, HEATING_COOLING_HEAT, HEATING_COOLING_HEAT),
    (StructureHeatCoolMode.COOL, HEATING_COOLING_COOL, HEATING_COOLING_COOL),
    (StructureHeatCoolMode.OFF, HEATING_COOLING_OFF, HEATING_COOLING_OFF),
    (StructureHeatCoolMode.AUTO, HEATING_COOLING_AUTO, HEATING_COOLING_COOL),
    (None, HEATING_COOLING_OFF, HEATING_COOLING_OFF),
])
def test_active_room_mirrors_structure_mode(mode, target, current):
    assert target_heating_cooling_state(True, mode) == target
    assert current_heating_cooling_state(True, mode) == current


def test_structure_is_fetched_once(client):
    async def scenario():
        coordinator = StructureModeCoordinator(client)
        first = await coordinator.get_structure()
        second = await coordinator.get_structure()
        return first, second

    first, second = asyncio.run(scenario())

    assert first is second
    assert client.call_names().count('get_primary_structure') == 1


def test_set_mode_applies_mode_before_heat_cool_and_notifies_rooms(client):
    client.structure.structure_heat_cool_mode = StructureHeatCoolMode.COOL
    rooms = [RecordingRoom(), RecordingRoom()]

    async def scenario():
        coordinator = StructureModeCoordinator(client)
        for room in rooms:
            coordinator.register_room(room)
        structure = await coordinator.set_mode(FlairMode.AUTO, StructureHeatCoolMode.HEAT)
        return coordinator, structure

    coordinator, structure = asyncio.run(scenario())

    assert client.call_names() == ['get_primary_structure', 'set_structure_mode', 'set_structure_heat_cool_mode']
    assert structure.mode == FlairMode.AUTO
    assert structure.structure_heat_cool_mode == StructureHeatCoolMode.HEAT
    assert coordinator.structure.structure_heat_cool_mode == StructureHeatCoolMode.HEAT
    for room in rooms:
        assert room.structures == [structure]


def test_concurrent_mode_changes_are_serialized(client):
    async def scenario():
        coordinator = StructureModeCoordinator(client)
        await coordinator.get_structure()
        await asyncio.gather(
            coordinator.set_mode(FlairMode.AUTO, StructureHeatCoolMode.HEAT),
            coordinator.set_mode(FlairMode.AUTO, StructureHeatCoolMode.COOL),
        )
        return coordinator

    coordinator = asyncio.run(scenario())

    mutations = [c for c in client.calls if c[0].startswith('set_structure')]
    assert [(c[0], c[2]) for c in mutations] == [
        ('set_structure_mode', FlairMode.AUTO),
        ('set_structure_heat_cool_mode', StructureHeatCoolMode.HEAT),
        ('set_structure_mode', FlairMode.AUTO),
        ('set_structure_heat_cool_mode', StructureHeatCoolMode.COOL),
    ]
    assert coordinator.structure.structure_heat_cool_mode == StructureHeatCoolMode.COOL


def test_failed_mode_change_drops_cached_structure(client):
    client.fail.add('set_structure_heat_cool_mode')
    room = RecordingRoom()

    async def scenario():
        coordinator = StructureModeCoordinator(client)
        coordinator.register_room(room)
        await coordinator.get_structure()
        with pytest.raises(FlairTransportError):
            await coordinator.set_mode(FlairMode.AUTO, StructureHeatCoolMode.COOL)
        dropped = coordinator.structure is None
        client.fail.clear()
        refetched = await coordinator.get_structure()
        return dropped, refetched

    dropped, refetched = asyncio.run(scenario())

    assert dropped
    assert room.structures == []
    assert client.call_names().count('get_primary_structure') == 2
    assert refetched.mode == FlairMode.AUTO


def test_refresh_broadcasts_and_keeps_snapshot_on_failure(client):
    room = RecordingRoom()

    async def scenario():
        coordinator = StructureModeCoordinator(client)
        coordinator.register_room(room)
        await coordinator.refresh()
        before = coordinator.structure
        client.fail.add('get_structure')
        after = await coordinator.refresh()
        return before, after

    before, after = asyncio.run(scenario())

    assert after is before
    assert len(room.structures) == 1
    assert client.call_names() == ['get_primary_structure', 'get_structure']


def test_set_set_point(client):
    async def scenario():
        coordinator = StructureModeCoordinator(client)
        return await coordinator.set_set_point(19.5)

    structure = asyncio.run(scenario())

    assert structure.set_point_temperature_c == 19.5


def test_unregistered_room_is_not_notified(client):
    room = RecordingRoom()

    async def scenario():
        coordinator = StructureModeCoordinator(client)
        coordinator.register_room(room)
        coordinator.register_room(room)
        coordinator.unregister_room(room)
        await coordinator.set_mode(FlairMode.MANUAL)
        return coordinator

    coordinator = asyncio.run(scenario())

    assert coordinator.rooms == []
    assert room.structures == []
    assert 'set_structure_heat_cool_mode' not in client.call_names()
