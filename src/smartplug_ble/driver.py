"""Generic GATT request/response driver.

:class:`GattSmartPlug` implements everything a smart plug that talks
"write a request, get the answer as a notification" needs:

- connect through :func:`~smartplug_ble.connection.establish_connection`,
- locate the device's service plus its request and response
  characteristics,
- subscribe to the response characteristic and run a
  :class:`~smartplug_ble.forwarder.NotificationForwarder`,
- :meth:`GattSmartPlug.exchange` a request packet for its response.

The protocol has no request identifiers: the next notification on the
response characteristic *is* the answer to the last request.  Exchanges
on one handle are therefore serialized with an ``asyncio.Lock`` so a
second caller waits for the first response instead of stealing it.

Concrete drivers set the UUID class attributes and implement the codec
and the capability contract on top of :meth:`~GattSmartPlug.exchange`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

from .connection import TRANSPORT_ERRORS, disconnect_client, establish_connection
from .exceptions import NotConnectedError, TransportError
from .forwarder import NotificationForwarder
from .gatt import find_characteristic, find_service
from .plug import PlugState, SmartPlug

if TYPE_CHECKING:
    from bleak import BleakClient
    from bleak.backends.characteristic import BleakGATTCharacteristic
    from bleak.backends.device import BLEDevice

_LOGGER = logging.getLogger(__name__)

_GattPlugT = TypeVar("_GattPlugT", bound="GattSmartPlug")


class GattSmartPlug(SmartPlug):
    """Base class for drivers speaking request/notify over GATT.

    Parameters
    ----------
    device:
        The BLE device, as reported by the scanner.
    response_timeout:
        Seconds to wait for a response after a request was written.
        ``None`` (the default) waits indefinitely.
    """

    LABEL: ClassVar[str] = "GATT"
    SERVICE_UUID: ClassVar[str]
    REQUEST_CHAR_UUID: ClassVar[str]
    RESPONSE_CHAR_UUID: ClassVar[str]

    def __init__(
        self,
        device: BLEDevice,
        *,
        response_timeout: float | None = None,
    ) -> None:
        self._device = device
        self._response_timeout = response_timeout
        self._state = PlugState.DISCOVERED
        self._client: BleakClient | None = None
        self._request_char: BleakGATTCharacteristic | None = None
        self._forwarder = NotificationForwarder(
            self.RESPONSE_CHAR_UUID, device.address
        )
        self._request_lock = asyncio.Lock()

    @classmethod
    async def connect(
        cls: type[_GattPlugT], device: BLEDevice, **kwargs: Any
    ) -> _GattPlugT:
        """Connect to *device* and initialize a driver for it.

        Keyword arguments are passed to the constructor.

        Raises
        ------
        ProtocolError
            If the service or one of the characteristics is missing.
        TransportError
            If connecting or subscribing fails.
        """
        plug = cls(device, **kwargs)
        await plug._open()
        return plug

    @property
    def device(self) -> BLEDevice:
        return self._device

    @property
    def state(self) -> PlugState:
        return self._state

    @property
    def client(self) -> BleakClient | None:
        return self._client

    async def _open(self) -> None:
        self._state = PlugState.CONNECTING
        try:
            self._client = await establish_connection(
                self._device,
                disconnected_callback=self._on_disconnected,
            )
            self._state = PlugState.INITIALIZING
            await self._initialize(self._client)
            if self._state is PlugState.DISCONNECTED:
                raise TransportError(
                    f"{self.address}: disconnected during initialization"
                )
        except (Exception, asyncio.CancelledError):
            await self._abort()
            raise

        self._state = PlugState.READY
        _LOGGER.debug("%s: %s ready", self.address, type(self).__name__)

    async def _initialize(self, client: BleakClient) -> None:
        service = find_service(client, self.SERVICE_UUID, self.LABEL)
        response_char = find_characteristic(
            service, self.RESPONSE_CHAR_UUID, "response"
        )
        request_char = find_characteristic(
            service, self.REQUEST_CHAR_UUID, "request"
        )

        try:
            await client.start_notify(response_char, self._forwarder.on_notification)
        except TRANSPORT_ERRORS as exc:
            raise TransportError(
                f"{self.address}: subscribe to {response_char.uuid} failed: {exc}"
            ) from exc

        self._forwarder.start()
        self._request_char = request_char

    async def _abort(self) -> None:
        """Tear down a half-initialized connection."""
        self._state = PlugState.DISCONNECTED
        self._forwarder.stop()
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await disconnect_client(client)
        except TransportError:
            _LOGGER.debug(
                "%s: Disconnect after failed initialization raised",
                self.address,
                exc_info=True,
            )

    def _on_disconnected(self, client: BleakClient) -> None:
        if self._state is not PlugState.DISCONNECTED:
            _LOGGER.info("%s: Connection lost", self.address)
        self._state = PlugState.DISCONNECTED
        self._forwarder.end_stream()

    async def exchange(self, packet: bytes) -> bytes:
        """Write *packet* to the request characteristic and return the response.

        The write is acknowledged (``response=True``); the call then waits
        for the next notification on the response characteristic.

        Raises
        ------
        NotConnectedError
            If the handle is not ``READY``.
        TransportError
            If the write fails, the link drops while waiting, or
            *response_timeout* expires.
        """
        async with self._request_lock:
            if self._state is not PlugState.READY or self._client is None:
                raise NotConnectedError(
                    f"{self.address}: not ready (state={self._state.value})"
                )

            stale = self._forwarder.drain()
            if stale:
                _LOGGER.debug(
                    "%s: Discarded %d stale response(s)", self.address, stale
                )

            _LOGGER.debug("%s: Request %s", self.address, packet.hex())
            try:
                await self._client.write_gatt_char(
                    self._request_char, packet, response=True
                )
            except TRANSPORT_ERRORS as exc:
                raise TransportError(
                    f"{self.address}: write failed: {exc}"
                ) from exc

            if self._response_timeout is None:
                return await self._forwarder.receive()
            try:
                return await asyncio.wait_for(
                    self._forwarder.receive(), timeout=self._response_timeout
                )
            except asyncio.TimeoutError as exc:
                raise TransportError(
                    f"{self.address}: no response after "
                    f"{self._response_timeout:.1f} s"
                ) from exc

    async def disconnect(self) -> BLEDevice:
        """Disconnect and release the forwarder.

        The handle cannot be used afterwards; connect again through
        :meth:`connect` or the scanner.
        """
        self._state = PlugState.DISCONNECTED
        self._forwarder.stop()
        client, self._client = self._client, None
        if client is not None:
            await disconnect_client(client)
        return self._device
