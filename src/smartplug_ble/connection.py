"""Single-attempt connect and bounded disconnect.

Connections go through ``bleak_retry_connector.establish_connection``
with ``max_attempts=1``: it takes care of the BlueZ connect quirks
(stale service cache, in-progress connects) without adding a retry
policy of its own.  Retrying a failed device is left to the caller.

Every transport failure is re-raised as
:class:`~smartplug_ble.exceptions.TransportError` with the original
exception chained.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from bleak import BleakClient
from bleak.backends.device import BLEDevice
from bleak.exc import BleakError

from .const import DISCONNECT_TIMEOUT
from .exceptions import TransportError

_LOGGER = logging.getLogger(__name__)

# Errors bleak / bleak-retry-connector surface for a failed link.
TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    BleakError,
    asyncio.TimeoutError,
    EOFError,
    BrokenPipeError,
)

try:
    from bleak_retry_connector import establish_connection as _brc_establish_connection
except ImportError as _exc:
    raise ImportError(
        "bleak-retry-connector is required: pip install bleak-retry-connector"
    ) from _exc


async def establish_connection(
    device: BLEDevice,
    name: str | None = None,
    *,
    disconnected_callback: Callable[[BleakClient], None] | None = None,
    **kwargs: Any,
) -> BleakClient:
    """Connect to *device* once and return the connected client.

    Parameters
    ----------
    device:
        The BLE device to connect to.
    name:
        Device name for logging.
    disconnected_callback:
        Called by bleak when the link drops.
    **kwargs:
        Additional keyword arguments passed through to
        ``bleak_retry_connector.establish_connection()``.

    Raises
    ------
    TransportError
        If the connection attempt fails.
    """
    display_name = name or device.name or device.address
    _LOGGER.debug("%s: Connecting", display_name)
    try:
        client = await _brc_establish_connection(
            BleakClient,
            device,
            display_name,
            disconnected_callback=disconnected_callback,
            max_attempts=1,
            **kwargs,
        )
    except TRANSPORT_ERRORS as exc:
        _LOGGER.debug("%s: Connect failed: %s", display_name, exc)
        raise TransportError(f"{display_name}: connect failed: {exc}") from exc

    _LOGGER.info("%s: Connected", display_name)
    return client


async def disconnect_client(
    client: BleakClient, timeout: float = DISCONNECT_TIMEOUT
) -> None:
    """Disconnect *client*, giving up after *timeout* seconds."""
    try:
        await asyncio.wait_for(client.disconnect(), timeout=timeout)
    except TRANSPORT_ERRORS as exc:
        raise TransportError(
            f"{client.address}: disconnect failed: {exc}"
        ) from exc
    _LOGGER.info("%s: Disconnected", client.address)
