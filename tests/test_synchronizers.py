import asyncio

import pytest

from flair_bridge.accessory import Accessory
from flair_bridge.exceptions import AccessoryValidationError, FlairTransportError
from flair_bridge.homekit_uuids import (
    CHAR_ACTIVE,
    CHAR_CURRENT_AIR_PURIFIER_STATE,
    CHAR_CURRENT_POSITION,
    CHAR_CURRENT_RELATIVE_HUMIDITY,
    CHAR_CURRENT_TEMPERATURE,
    CHAR_FIRMWARE_REVISION,
    CHAR_MANUFACTURER,
    CHAR_MODEL,
    CHAR_PRESSURE,
    CHAR_ROTATION_SPEED,
    CHAR_SERIAL_NUMBER,
    CHAR_TARGET_AIR_PURIFIER_STATE,
    CHAR_TARGET_POSITION,
    SERVICE_ACCESSORY_INFORMATION,
    SERVICE_AIR_PURIFIER,
    SERVICE_FAN_V2,
    SERVICE_HUMIDITY_SENSOR,
    SERVICE_PRESSURE_SENSOR,
    SERVICE_TEMPERATURE_SENSOR,
    SERVICE_WINDOW_COVERING,
)
from flair_bridge.puck import PuckSynchronizer
from flair_bridge.store import AccessoryStore
from flair_bridge.synchronizer import accessory_context
from flair_bridge.vent import VentSynchronizer, snap_to_step


def vent_accessory(vent):
    return Accessory(vent.name, vent.uuid, accessory_context(vent))


def value(accessory, service_type, char_type):
    return accessory.get_service(service_type).get_characteristic(char_type).value


def service_types(accessory):
    return sorted(s.type for s in accessory.services.values())


@pytest.fixture
def vent(client):
    return client.add_vent('V1', name='Office Vent', percent_open=40, duct_temperature_c=18.0,
                           duct_pressure=99.5, firmware_version_s='1.0')


def make_vent_synchronizer(vent, client, store, config, register=True):
    accessory = vent_accessory(vent)
    synchronizer = VentSynchronizer(accessory, client, store, config)
    if register:
        store.register_accessories([accessory])
    return synchronizer


def test_window_covering_shows_initial_position(vent, client, store, config):
    synchronizer = make_vent_synchronizer(vent, client, store, config)
    accessory = synchronizer.accessory

    assert value(accessory, SERVICE_WINDOW_COVERING, CHAR_TARGET_POSITION) == 40
    assert value(accessory, SERVICE_WINDOW_COVERING, CHAR_CURRENT_POSITION) == 40
    assert value(accessory, SERVICE_TEMPERATURE_SENSOR, CHAR_CURRENT_TEMPERATURE) == 18.0
    assert value(accessory, SERVICE_PRESSURE_SENSOR, CHAR_PRESSURE) == 99.5
    assert value(accessory, SERVICE_ACCESSORY_INFORMATION, CHAR_MANUFACTURER) == 'Flair'
    assert value(accessory, SERVICE_ACCESSORY_INFORMATION, CHAR_MODEL) == 'Vent'
    assert value(accessory, SERVICE_ACCESSORY_INFORMATION, CHAR_SERIAL_NUMBER) == 'V1'
    assert value(accessory, SERVICE_ACCESSORY_INFORMATION, CHAR_FIRMWARE_REVISION) == '1.0'
    assert accessory.get_service(SERVICE_WINDOW_COVERING).primary


def test_fan_presentation_shows_rotation_speed_and_active(vent, client, store, config_factory):
    synchronizer = make_vent_synchronizer(vent, client, store, config_factory(vent_accessory_type='fan'))
    accessory = synchronizer.accessory

    assert value(accessory, SERVICE_FAN_V2, CHAR_ROTATION_SPEED) == 40
    assert value(accessory, SERVICE_FAN_V2, CHAR_ACTIVE) == 1
    assert accessory.get_service(SERVICE_WINDOW_COVERING) is None
    rotation = accessory.get_service(SERVICE_FAN_V2).get_characteristic(CHAR_ROTATION_SPEED)
    assert rotation.min_step == 50


def test_air_purifier_presentation(vent, client, store, config_factory):
    client.vents['V1'].percent_open = 0
    synchronizer = make_vent_synchronizer(client.vents['V1'], client, store,
                                          config_factory(vent_accessory_type='airPurifier'))
    accessory = synchronizer.accessory

    assert value(accessory, SERVICE_AIR_PURIFIER, CHAR_ACTIVE) == 0
    assert value(accessory, SERVICE_AIR_PURIFIER, CHAR_CURRENT_AIR_PURIFIER_STATE) == 0
    assert value(accessory, SERVICE_AIR_PURIFIER, CHAR_TARGET_AIR_PURIFIER_STATE) == 0

    target = accessory.get_service(SERVICE_AIR_PURIFIER).get_characteristic(CHAR_TARGET_AIR_PURIFIER_STATE)
    with pytest.raises(AccessoryValidationError):
        asyncio.run(target.handle_set(1))


@pytest.mark.parametrize("presentation", ['hidden', 'curtain'])
def test_unusable_presentation_fails_construction(vent, client, store, config_factory, presentation):
    with pytest.raises(AccessoryValidationError):
        VentSynchronizer(vent_accessory(vent), client, store, config_factory(vent_accessory_type=presentation))


def test_hidden_temperature_sensor_is_not_exposed(vent, client, store, config_factory):
    synchronizer = make_vent_synchronizer(vent, client, store,
                                          config_factory(hide_vent_temperature_sensors=True))

    assert synchronizer.accessory.get_service(SERVICE_TEMPERATURE_SENSOR) is None
    assert synchronizer.accessory.get_service(SERVICE_PRESSURE_SENSOR) is not None


def test_successful_poll_replaces_snapshot_and_persists_it(vent, client, store, config, db_path):
    synchronizer = make_vent_synchronizer(vent, client, store, config)
    client.vents['V1'].percent_open = 100
    client.vents['V1'].duct_temperature_c = 20.0

    refreshed = asyncio.run(synchronizer.refresh())

    assert refreshed.percent_open == 100
    assert synchronizer.device.name == 'Office Vent'
    assert value(synchronizer.accessory, SERVICE_WINDOW_COVERING, CHAR_CURRENT_POSITION) == 100
    assert value(synchronizer.accessory, SERVICE_TEMPERATURE_SENSOR, CHAR_CURRENT_TEMPERATURE) == 20.0

    cached = AccessoryStore(db_path).load_accessories()[0]
    assert cached.context['device']['percent_open'] == 100
    assert cached.context['device']['name'] == 'Office Vent'


def test_failed_poll_keeps_previous_values(vent, client, store, config):
    synchronizer = make_vent_synchronizer(vent, client, store, config)
    before = synchronizer.device
    client.vents['V1'].percent_open = 100
    client.fail.add('read_vent')

    result = asyncio.run(synchronizer.refresh())

    assert result is before
    assert synchronizer.device is before
    assert value(synchronizer.accessory, SERVICE_WINDOW_COVERING, CHAR_CURRENT_POSITION) == 40


def test_command_shows_the_confirmed_value(vent, client, store, config):
    synchronizer = make_vent_synchronizer(vent, client, store, config)
    original = client.set_vent_open_percent

    async def partially_applied(vent_id, percent_open):
        # The vent only moved half way
        return await original(vent_id, percent_open // 2)

    client.set_vent_open_percent = partially_applied
    target = synchronizer.accessory.get_service(SERVICE_WINDOW_COVERING).get_characteristic(CHAR_TARGET_POSITION)

    asyncio.run(target.handle_set(90))

    assert target.value == 45
    assert value(synchronizer.accessory, SERVICE_WINDOW_COVERING, CHAR_CURRENT_POSITION) == 45


def test_failed_command_leaves_values_unchanged(vent, client, store, config):
    synchronizer = make_vent_synchronizer(vent, client, store, config)
    client.fail.add('set_vent_open_percent')
    target = synchronizer.accessory.get_service(SERVICE_WINDOW_COVERING).get_characteristic(CHAR_TARGET_POSITION)

    with pytest.raises(FlairTransportError):
        asyncio.run(target.handle_set(80))

    assert target.value == 40
    assert synchronizer.device.percent_open == 40


def test_poll_overlapping_a_command_does_not_revert_it(vent, client, store, config):
    synchronizer = make_vent_synchronizer(vent, client, store, config)
    target = synchronizer.accessory.get_service(SERVICE_WINDOW_COVERING).get_characteristic(CHAR_TARGET_POSITION)

    async def scenario():
        client.gates['read_vent'] = gate = asyncio.Event()
        polling = asyncio.create_task(synchronizer.refresh())
        while 'read_vent' not in client.call_names():
            await asyncio.sleep(0)
        await target.handle_set(100)
        gate.set()
        return await polling

    result = asyncio.run(scenario())

    assert client.vents['V1'].percent_open == 100
    assert result.percent_open == 100
    assert target.value == 100
    assert value(synchronizer.accessory, SERVICE_WINDOW_COVERING, CHAR_CURRENT_POSITION) == 100


def test_poll_after_a_command_applies_normally(vent, client, store, config):
    synchronizer = make_vent_synchronizer(vent, client, store, config)
    asyncio.run(synchronizer.set_percent_open(100))
    client.vents['V1'].percent_open = 60

    asyncio.run(synchronizer.refresh())

    assert value(synchronizer.accessory, SERVICE_WINDOW_COVERING, CHAR_CURRENT_POSITION) == 60


@pytest.mark.parametrize('requested,sent', [(33.7, 34), (33.2, 33), (49.5, 50), (0.4, 0), (100, 100)])
def test_fractional_target_position_is_rounded(vent, client, store, config, requested, sent):
    synchronizer = make_vent_synchronizer(vent, client, store, config)
    target = synchronizer.accessory.get_service(SERVICE_WINDOW_COVERING).get_characteristic(CHAR_TARGET_POSITION)

    asyncio.run(target.handle_set(requested))

    assert client.calls[-1] == ('set_vent_open_percent', 'V1', sent)
    assert target.value == sent


def test_out_of_range_command_never_reaches_the_cloud(vent, client, store, config):
    synchronizer = make_vent_synchronizer(vent, client, store, config)
    target = synchronizer.accessory.get_service(SERVICE_WINDOW_COVERING).get_characteristic(CHAR_TARGET_POSITION)

    with pytest.raises(AccessoryValidationError):
        asyncio.run(target.handle_set(150))

    assert 'set_vent_open_percent' not in client.call_names()


@pytest.mark.parametrize("requested, sent", [(0, 0), (24, 0), (25, 50), (60, 50), (75, 100), (100, 100)])
def test_snap_to_step(requested, sent):
    assert snap_to_step(requested) == sent


def test_fan_commands(vent, client, store, config_factory):
    synchronizer = make_vent_synchronizer(vent, client, store, config_factory(vent_accessory_type='fan'))
    fan = synchronizer.accessory.get_service(SERVICE_FAN_V2)

    async def scenario():
        await fan.get_characteristic(CHAR_ROTATION_SPEED).handle_set(60)
        await fan.get_characteristic(CHAR_ACTIVE).handle_set(0)
        await fan.get_characteristic(CHAR_ACTIVE).handle_set(1)

    asyncio.run(scenario())

    sent = [c[2] for c in client.calls if c[0] == 'set_vent_open_percent']
    assert sent == [50, 0, 100]
    assert fan.get_characteristic(CHAR_ROTATION_SPEED).value == 100
    assert fan.get_characteristic(CHAR_ACTIVE).value == 1


def test_activating_an_open_fan_sends_nothing(vent, client, store, config_factory):
    synchronizer = make_vent_synchronizer(vent, client, store, config_factory(vent_accessory_type='fan'))

    asyncio.run(synchronizer.accessory.get_service(SERVICE_FAN_V2).get_characteristic(CHAR_ACTIVE).handle_set(1))

    assert 'set_vent_open_percent' not in client.call_names()


def test_presentation_change_replaces_stale_service_once(vent, client, db_path, config, config_factory):
    store = AccessoryStore(db_path)
    make_vent_synchronizer(vent, client, store, config)

    # Restart with vents now shown as fans
    store = AccessoryStore(db_path)
    accessory = store.load_accessories()[0]
    assert accessory.get_service(SERVICE_WINDOW_COVERING) is not None
    synchronizer = VentSynchronizer(accessory, client, store, config_factory(vent_accessory_type='fan'))

    assert accessory.get_service(SERVICE_WINDOW_COVERING) is None
    assert accessory.get_service(SERVICE_FAN_V2) is not None
    assert synchronizer.sync_services() is False

    # A second restart with the same configuration changes nothing
    store = AccessoryStore(db_path)
    accessory = store.load_accessories()[0]
    layout = service_types(accessory)
    synchronizer = VentSynchronizer(accessory, client, store, config_factory(vent_accessory_type='fan'))
    assert service_types(accessory) == layout
    assert synchronizer.sync_services() is False


def test_hiding_temperature_sensor_after_restart_removes_it(vent, client, db_path, config, config_factory):
    make_vent_synchronizer(vent, client, AccessoryStore(db_path), config)

    store = AccessoryStore(db_path)
    accessory = store.load_accessories()[0]
    VentSynchronizer(accessory, client, store, config_factory(hide_vent_temperature_sensors=True))

    assert accessory.get_service(SERVICE_TEMPERATURE_SENSOR) is None
    reloaded = AccessoryStore(db_path).load_accessories()[0]
    assert reloaded.get_service(SERVICE_TEMPERATURE_SENSOR) is None


def test_wrong_type_tag_is_rejected(client, store, config):
    puck = client.add_puck('P1')
    with pytest.raises(AccessoryValidationError):
        VentSynchronizer(Accessory('P', puck.uuid, accessory_context(puck)), client, store, config)


def test_puck_sensors_and_serial_number(client, store, config):
    puck = client.add_puck('P1', name='Hall Puck', display_number='0A1B', current_temperature_c=21.5,
                           current_humidity=45, current_room_pressure=101.3)
    accessory = Accessory(puck.name, puck.uuid, accessory_context(puck))
    store.register_accessories([accessory])
    synchronizer = PuckSynchronizer(accessory, client, store, config)

    assert value(accessory, SERVICE_TEMPERATURE_SENSOR, CHAR_CURRENT_TEMPERATURE) == 21.5
    assert value(accessory, SERVICE_HUMIDITY_SENSOR, CHAR_CURRENT_RELATIVE_HUMIDITY) == 45
    assert value(accessory, SERVICE_PRESSURE_SENSOR, CHAR_PRESSURE) == 101.3
    assert value(accessory, SERVICE_ACCESSORY_INFORMATION, CHAR_SERIAL_NUMBER) == '0A1B'
    assert accessory.get_service(SERVICE_TEMPERATURE_SENSOR).primary

    client.pucks['P1'].current_temperature_c = 22.0
    asyncio.run(synchronizer.refresh())

    assert value(accessory, SERVICE_TEMPERATURE_SENSOR, CHAR_CURRENT_TEMPERATURE) == 22.0
    assert value(accessory, SERVICE_ACCESSORY_INFORMATION, CHAR_SERIAL_NUMBER) == '0A1B'
    assert synchronizer.device.name == 'Hall Puck'


def test_stop_cancels_the_poll(vent, client, store, config, scheduler):
    synchronizer = make_vent_synchronizer(vent, client, store, config)

    poll = synchronizer.start(scheduler, 60, 20)
    assert poll.name == 'vent-V1'
    assert poll.task == synchronizer.refresh

    synchronizer.stop()
    synchronizer.stop()

    assert poll.cancelled
    assert scheduler.polls == []
