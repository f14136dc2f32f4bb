"""GATT lookups on a connected ``BleakClient``.

bleak resolves the service table as part of ``connect()``; these helpers
locate the service and characteristics a driver needs and turn a
missing entry into a :class:`~smartplug_ble.exceptions.ProtocolError`
that names what was not found.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .exceptions import ProtocolError

if TYPE_CHECKING:
    from bleak import BleakClient
    from bleak.backends.characteristic import BleakGATTCharacteristic
    from bleak.backends.service import BleakGATTService

_LOGGER = logging.getLogger(__name__)


def find_service(
    client: BleakClient, uuid: str, label: str = "GATT"
) -> BleakGATTService:
    """Return the service with *uuid* (case-insensitive).

    *label* is used in the error message, e.g. ``"Plug Mini"`` gives
    ``"Plug Mini service not found"``.
    """
    target = uuid.lower()
    if not client.services:
        _LOGGER.debug("%s: GATT services empty", client.address)
        raise ProtocolError(f"{label} service not found")

    for service in client.services:
        if service.uuid.lower() == target:
            return service

    _LOGGER.debug("%s: service %s not found", client.address, uuid)
    raise ProtocolError(f"{label} service not found")


def find_characteristic(
    service: BleakGATTService, uuid: str, label: str
) -> BleakGATTCharacteristic:
    """Return the characteristic with *uuid* inside *service*."""
    target = uuid.lower()
    for char in service.characteristics:
        if char.uuid.lower() == target:
            return char
    raise ProtocolError(f"{label} characteristic {uuid} not found")
