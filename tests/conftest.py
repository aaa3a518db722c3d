import asyncio
from dataclasses import replace

import pytest

from flair_bridge.config import BridgeConfig
from flair_bridge.exceptions import FlairTransportError
from flair_bridge.models import FlairMode, Puck, Room, Structure, StructureHeatCoolMode, Vent
from flair_bridge.store import AccessoryStore


class FakeFlairClient:
    """In-memory stand-in for FlairClient.

    Every call is recorded in ``calls``; a method named in ``fail`` raises
    FlairTransportError instead of answering. A method named in ``gates``
    waits for that event before answering.
    """

    def __init__(self):
        self.vents = {}
        self.rooms = {}
        self.pucks = {}
        self.structure = Structure(
            id='s1', name='Home', mode=FlairMode.MANUAL,
            structure_heat_cool_mode=StructureHeatCoolMode.HEAT,
            set_point_temperature_c=21.0)
        self.calls = []
        self.fail = set()
        self.gates = {}
        self.closed = False

    async def _call(self, name, *args):
        self.calls.append((name,) + args)
        # Yield like a real network call would
        await asyncio.sleep(0)
        if name in self.gates:
            await self.gates[name].wait()
        if name in self.fail:
            raise FlairTransportError(f"{name} failed")

    def call_names(self):
        return [c[0] for c in self.calls]

    def add_vent(self, vent_id, name='Vent', percent_open=50, **kwargs):
        self.vents[vent_id] = Vent(id=vent_id, name=name, percent_open=percent_open, **kwargs)
        return self.vents[vent_id]

    def add_room(self, room_id, name='Room', pucks_inactive='Active', **kwargs):
        self.rooms[room_id] = Room(id=room_id, name=name, pucks_inactive=pucks_inactive, **kwargs)
        return self.rooms[room_id]

    def add_puck(self, puck_id, name='Puck', **kwargs):
        self.pucks[puck_id] = Puck(id=puck_id, name=name, **kwargs)
        return self.pucks[puck_id]

    async def get_users(self):
        await self._call('get_users')
        return [{'id': 'u1'}]

    async def list_vents(self):
        await self._call('list_vents')
        return [replace(v) for v in self.vents.values()]

    async def list_rooms(self):
        await self._call('list_rooms')
        return [replace(r) for r in self.rooms.values()]

    async def list_pucks(self):
        await self._call('list_pucks')
        return [replace(p) for p in self.pucks.values()]

    async def read_vent(self, vent_id, name=None):
        reading = replace(self.vents[vent_id], name='')
        await self._call('read_vent', vent_id)
        return reading

    async def read_puck(self, puck_id, name=None):
        reading = replace(self.pucks[puck_id], name='', display_number=None)
        await self._call('read_puck', puck_id)
        return reading

    async def read_room(self, room_id):
        reading = replace(self.rooms[room_id])
        await self._call('read_room', room_id)
        return reading

    async def set_vent_open_percent(self, vent_id, percent_open):
        await self._call('set_vent_open_percent', vent_id, percent_open)
        self.vents[vent_id].percent_open = percent_open
        return replace(self.vents[vent_id])

    async def set_room_setpoint(self, room_id, set_point_c):
        await self._call('set_room_setpoint', room_id, set_point_c)
        self.rooms[room_id].set_point_c = set_point_c
        return replace(self.rooms[room_id])

    async def set_room_away(self, room_id, away):
        await self._call('set_room_away', room_id, away)
        self.rooms[room_id].active = not away
        return replace(self.rooms[room_id])

    async def get_primary_structure(self):
        await self._call('get_primary_structure')
        return replace(self.structure)

    async def get_structure(self, structure_id):
        await self._call('get_structure', structure_id)
        return replace(self.structure)

    async def set_structure_mode(self, structure_id, mode):
        await self._call('set_structure_mode', structure_id, mode)
        self.structure.mode = mode
        return replace(self.structure)

    async def set_structure_heat_cool_mode(self, structure_id, mode):
        await self._call('set_structure_heat_cool_mode', structure_id, mode)
        self.structure.structure_heat_cool_mode = mode
        return replace(self.structure)

    async def set_structure_setpoint(self, structure_id, set_point_c):
        await self._call('set_structure_setpoint', structure_id, set_point_c)
        self.structure.set_point_temperature_c = set_point_c
        return replace(self.structure)

    async def close(self):
        self.closed = True


class RecordedPoll:
    def __init__(self, scheduler, name, interval, jitter, task):
        self.scheduler = scheduler
        self.name = name
        self.interval = interval
        self.jitter = jitter
        self.task = task
        self.cancelled = False

    def cancel(self):
        self.cancelled = True
        if self in self.scheduler.polls:
            self.scheduler.polls.remove(self)


class RecordingScheduler:
    """Scheduler that records registrations without running anything."""

    def __init__(self):
        self.polls = []
        self.history = []

    def schedule(self, interval, jitter, task, name="poll"):
        poll = RecordedPoll(self, name, interval, jitter, task)
        self.polls.append(poll)
        self.history.append(poll)
        return poll

    def find(self, name):
        return next((p for p in self.history if p.name == name), None)

    async def cancel_all(self):
        for poll in list(self.polls):
            poll.cancel()


def make_config(**overrides):
    values = dict(client_id='client', client_secret='secret', username='user@example.com', password='pw')
    values.update(overrides)
    return BridgeConfig(**values)


@pytest.fixture
def client():
    return FakeFlairClient()


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "flair-bridge.db")


@pytest.fixture
def store(db_path):
    return AccessoryStore(db_path)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def config_factory():
    return make_config
