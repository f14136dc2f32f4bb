"""Tests for the Plug Mini driver: initialization and command exchange."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from smartplug_ble.exceptions import NotConnectedError, ProtocolError, TransportError
from smartplug_ble.plug import PlugState
from smartplug_ble.switchbot.plug_mini import (
    CHAR_UUID_RX,
    CHAR_UUID_TX,
    SERVICE_DATA_UUID,
    SERVICE_UUID,
    PlugMini,
)

ADDRESS = "AA:BB:CC:DD:EE:FF"

TURN_ON = bytes([0x57, 0x0F, 0x50, 0x01, 0x01, 0x80])
TURN_OFF = bytes([0x57, 0x0F, 0x50, 0x01, 0x01, 0x00])
GET_STATE = bytes([0x57, 0x0F, 0x51, 0x01])


def _make_device(address=ADDRESS, name="WoPlugUS"):
    return BLEDevice(
        address,
        name,
        {"path": f"/org/bluez/hci0/dev_{address.replace(':', '_')}"},
    )


def _make_char(uuid: str) -> MagicMock:
    char = MagicMock()
    char.uuid = uuid
    return char


def _make_service(uuid: str, chars: list) -> MagicMock:
    service = MagicMock()
    service.uuid = uuid
    service.characteristics = chars
    return service


def _make_client(responses=(), char_uuids=(CHAR_UUID_RX, CHAR_UUID_TX), service_uuid=SERVICE_UUID):
    """Create a mock BleakClient that answers each write with the next response.

    ``client.written`` collects the packets written to the device and
    ``client.notify(data)`` delivers a notification on the TX
    characteristic by hand.
    """
    chars = {uuid: _make_char(uuid) for uuid in char_uuids}
    tx = chars.get(CHAR_UUID_TX, _make_char(CHAR_UUID_TX))
    pending = [bytes(r) for r in responses]
    callbacks = {}

    client = MagicMock()
    client.address = ADDRESS
    client.services = [_make_service(service_uuid, list(chars.values()))]
    client.written = []

    async def start_notify(char, callback):
        callbacks[char.uuid] = callback

    def notify(data, char=tx):
        callbacks[CHAR_UUID_TX](char, bytearray(data))

    async def write_gatt_char(char, data, response=False):
        client.written.append((char.uuid, bytes(data), response))
        if pending:
            notify(pending.pop(0))

    client.notify = notify
    client.start_notify = AsyncMock(side_effect=start_notify)
    client.write_gatt_char = AsyncMock(side_effect=write_gatt_char)
    client.disconnect = AsyncMock(return_value=True)
    return client


def _payloads(client) -> list[bytes]:
    return [data for _, data, _ in client.written]


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


# ── recognizer ────────────────────────────────────────────────────


def _adv(service_data: dict) -> AdvertisementData:
    return AdvertisementData(
        local_name=None,
        manufacturer_data={},
        service_data=service_data,
        service_uuids=[],
        tx_power=None,
        rssi=-60,
        platform_data=(),
    )


def test_check_advertisement_switchbot():
    assert PlugMini.check_advertisement(_adv({SERVICE_DATA_UUID: b"g\x00"}))


def test_check_advertisement_other_device():
    adv = _adv({"0000fe95-0000-1000-8000-00805f9b34fb": b"\x00"})
    assert not PlugMini.check_advertisement(adv)


def test_check_advertisement_no_service_data():
    assert not PlugMini.check_advertisement(_adv({}))


# ── initialization ────────────────────────────────────────────────


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_connect_ready(mock_connect):
    client = _make_client()
    mock_connect.return_value = client
    device = _make_device()

    plug = await PlugMini.connect(device)

    assert plug.state is PlugState.READY
    assert plug.device is device
    assert plug.address == ADDRESS
    assert plug.client is client
    assert repr(plug) == f"PlugMini({ADDRESS})"
    assert client.start_notify.call_args.args[0].uuid == CHAR_UUID_TX
    assert mock_connect.call_args.args[0] is device
    await plug.disconnect()


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_connect_missing_service(mock_connect):
    client = _make_client(service_uuid="0000180f-0000-1000-8000-00805f9b34fb")
    mock_connect.return_value = client

    with pytest.raises(ProtocolError, match="Plug Mini service not found"):
        await PlugMini.connect(_make_device())

    client.disconnect.assert_awaited_once()


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_connect_missing_request_char(mock_connect):
    mock_connect.return_value = _make_client(char_uuids=(CHAR_UUID_TX,))

    with pytest.raises(ProtocolError, match="request characteristic"):
        await PlugMini.connect(_make_device())


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_connect_missing_response_char(mock_connect):
    client = _make_client(char_uuids=(CHAR_UUID_RX,))
    mock_connect.return_value = client

    with pytest.raises(ProtocolError, match="response characteristic"):
        await PlugMini.connect(_make_device())

    client.start_notify.assert_not_called()


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_connect_transport_failure(mock_connect):
    mock_connect.side_effect = TransportError("connect failed")

    with pytest.raises(TransportError, match="connect failed"):
        await PlugMini.connect(_make_device())


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_connect_subscribe_failure(mock_connect):
    client = _make_client()
    client.start_notify = AsyncMock(side_effect=BleakError("Notify not permitted"))
    mock_connect.return_value = client

    with pytest.raises(TransportError, match="subscribe"):
        await PlugMini.connect(_make_device())

    client.disconnect.assert_awaited_once()


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_connect_failure_cleanup_error_does_not_mask(mock_connect):
    client = _make_client(service_uuid="0000180f-0000-1000-8000-00805f9b34fb")
    client.disconnect = AsyncMock(side_effect=BleakError("already gone"))
    mock_connect.return_value = client

    with pytest.raises(ProtocolError):
        await PlugMini.connect(_make_device())


# ── command exchange ──────────────────────────────────────────────


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_set_state_on(mock_connect):
    client = _make_client(responses=[b"\x01"])
    mock_connect.return_value = client
    plug = await PlugMini.connect(_make_device())

    await plug.set_state(True)

    assert client.written == [(CHAR_UUID_RX, TURN_ON, True)]


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_set_state_off(mock_connect):
    client = _make_client(responses=[b"\x01"])
    mock_connect.return_value = client
    plug = await PlugMini.connect(_make_device())

    await plug.set_state(False)

    assert _payloads(client) == [TURN_OFF]


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_set_state_bad_status(mock_connect):
    mock_connect.return_value = _make_client(responses=[b"\x00"])
    plug = await PlugMini.connect(_make_device())

    with pytest.raises(ProtocolError, match="invalid response"):
        await plug.set_state(True)


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
@pytest.mark.parametrize(("response", "expected"), [(b"\x01\x80", True), (b"\x01\x00", False)])
async def test_get_state(mock_connect, response, expected):
    client = _make_client(responses=[response])
    mock_connect.return_value = client
    plug = await PlugMini.connect(_make_device())

    assert await plug.get_state() is expected
    assert _payloads(client) == [GET_STATE]


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
@pytest.mark.parametrize("response", [b"\x01\x7f", b"\x00\x80", b"\x01", b""])
async def test_get_state_invalid_response(mock_connect, response):
    mock_connect.return_value = _make_client(responses=[response])
    plug = await PlugMini.connect(_make_device())

    with pytest.raises(ProtocolError):
        await plug.get_state()


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
@pytest.mark.parametrize(
    ("current", "expected_write"),
    [(b"\x01\x80", TURN_OFF), (b"\x01\x00", TURN_ON)],
)
async def test_toggle(mock_connect, current, expected_write):
    client = _make_client(responses=[current, b"\x01"])
    mock_connect.return_value = client
    plug = await PlugMini.connect(_make_device())

    await plug.toggle()

    assert _payloads(client) == [GET_STATE, expected_write]


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_toggle_stops_on_get_state_error(mock_connect):
    client = _make_client(responses=[b"\x00"])
    mock_connect.return_value = client
    plug = await PlugMini.connect(_make_device())

    with pytest.raises(ProtocolError):
        await plug.toggle()

    assert _payloads(client) == [GET_STATE]


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_send_request_returns_raw_response(mock_connect):
    mock_connect.return_value = _make_client(responses=[b"\x01\x02\x03"])
    plug = await PlugMini.connect(_make_device())

    assert await plug.send_request(0x0F, b"\x51\x01") == b"\x01\x02\x03"


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_write_failure(mock_connect):
    client = _make_client()
    client.write_gatt_char = AsyncMock(side_effect=BleakError("Not connected"))
    mock_connect.return_value = client
    plug = await PlugMini.connect(_make_device())

    with pytest.raises(TransportError, match="write failed"):
        await plug.set_state(True)


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_foreign_notification_not_taken_as_response(mock_connect):
    client = _make_client()
    mock_connect.return_value = client
    plug = await PlugMini.connect(_make_device())

    request = asyncio.ensure_future(plug.get_state())
    await _settle()
    client.notify(b"\x01\x80", char=_make_char("00002a19-0000-1000-8000-00805f9b34fb"))
    await _settle()
    assert not request.done()

    client.notify(b"\x01\x00")
    assert await asyncio.wait_for(request, timeout=1.0) is False


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_stale_response_discarded(mock_connect):
    client = _make_client(responses=[b"\x01\x80"])
    mock_connect.return_value = client
    plug = await PlugMini.connect(_make_device())

    client.notify(b"\x01\x00")  # unsolicited
    await _settle()

    assert await plug.get_state() is True


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_stale_responses_behind_full_slot_discarded(mock_connect):
    """The second unsolicited response is blocked behind the first one."""
    client = _make_client(responses=[b"\x01\x80"])
    mock_connect.return_value = client
    plug = await PlugMini.connect(_make_device())

    client.notify(b"\x01\x00")
    client.notify(b"\x01\x00")
    await _settle()

    assert await plug.get_state() is True


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_late_response_after_timeout_discarded(mock_connect):
    client = _make_client()
    mock_connect.return_value = client
    plug = await PlugMini.connect(_make_device(), response_timeout=0.1)

    with pytest.raises(TransportError, match="no response"):
        await plug.get_state()

    client.notify(b"\x01\x00")  # answer to the timed-out request
    client.notify(b"\x01\x00")
    await _settle()

    request = asyncio.ensure_future(plug.get_state())
    await _settle()
    client.notify(b"\x01\x80")
    assert await asyncio.wait_for(request, timeout=1.0) is True


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_concurrent_commands_serialized(mock_connect):
    """A second command waits until the first one has its response."""
    client = _make_client()
    mock_connect.return_value = client
    plug = await PlugMini.connect(_make_device())

    first = asyncio.ensure_future(plug.set_state(True))
    second = asyncio.ensure_future(plug.get_state())
    await _settle()
    assert _payloads(client) == [TURN_ON]

    client.notify(b"\x01")
    await asyncio.wait_for(first, timeout=1.0)
    await _settle()
    assert _payloads(client) == [TURN_ON, GET_STATE]

    client.notify(b"\x01\x80")
    assert await asyncio.wait_for(second, timeout=1.0) is True


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_response_timeout(mock_connect):
    mock_connect.return_value = _make_client()
    plug = await PlugMini.connect(_make_device(), response_timeout=0.1)

    with pytest.raises(TransportError, match="no response"):
        await plug.get_state()


# ── disconnect ────────────────────────────────────────────────────


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_disconnect(mock_connect):
    client = _make_client()
    mock_connect.return_value = client
    device = _make_device()
    plug = await PlugMini.connect(device)

    assert await plug.disconnect() is device

    assert plug.state is PlugState.DISCONNECTED
    assert plug.client is None
    client.disconnect.assert_awaited_once()
    with pytest.raises(NotConnectedError):
        await plug.set_state(True)


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_context_manager_disconnects(mock_connect):
    client = _make_client(responses=[b"\x01"])
    mock_connect.return_value = client

    async with await PlugMini.connect(_make_device()) as plug:
        await plug.set_state(True)

    assert plug.state is PlugState.DISCONNECTED
    client.disconnect.assert_awaited_once()


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_link_loss_fails_pending_command(mock_connect):
    client = _make_client()
    mock_connect.return_value = client
    plug = await PlugMini.connect(_make_device())
    on_disconnect = mock_connect.call_args.kwargs["disconnected_callback"]

    request = asyncio.ensure_future(plug.get_state())
    await _settle()
    on_disconnect(client)

    with pytest.raises(TransportError):
        await asyncio.wait_for(request, timeout=1.0)
    assert plug.state is PlugState.DISCONNECTED


@pytest.mark.asyncio
@patch("smartplug_ble.driver.establish_connection")
async def test_command_after_link_loss(mock_connect):
    client = _make_client()
    mock_connect.return_value = client
    plug = await PlugMini.connect(_make_device())

    mock_connect.call_args.kwargs["disconnected_callback"](client)

    with pytest.raises(NotConnectedError, match="state=disconnected"):
        await plug.get_state()
