"""Driver for the SwitchBot Plug Mini.

Reference:
    - https://github.com/OpenWonderLabs/SwitchBotAPI-BLE/blob/latest/README.md
    - https://github.com/OpenWonderLabs/SwitchBotAPI-BLE/blob/latest/devicetypes/plugmini.md
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..driver import GattSmartPlug
from .protocol import (
    CMD_EXPANSION,
    GET_STATE_PAYLOAD,
    build_request,
    check_status,
    decode_response,
    parse_state,
    set_state_payload,
)

if TYPE_CHECKING:
    from bleak.backends.scanner import AdvertisementData

_LOGGER = logging.getLogger(__name__)

# Service-data key every SwitchBot device advertises.
SERVICE_DATA_UUID = "0000fd3d-0000-1000-8000-00805f9b34fb"

SERVICE_UUID = "cba20d00-224d-11e6-9fb8-0002a5d5c51b"
# RX and TX are named from the device's point of view: requests are
# written to RX, responses are notified on TX.
CHAR_UUID_RX = "cba20002-224d-11e6-9fb8-0002a5d5c51b"
CHAR_UUID_TX = "cba20003-224d-11e6-9fb8-0002a5d5c51b"


class PlugMini(GattSmartPlug):
    """A connected SwitchBot Plug Mini."""

    LABEL = "Plug Mini"
    SERVICE_UUID = SERVICE_UUID
    REQUEST_CHAR_UUID = CHAR_UUID_RX
    RESPONSE_CHAR_UUID = CHAR_UUID_TX

    @classmethod
    def check_advertisement(cls, advertisement_data: AdvertisementData) -> bool:
        return any(
            uuid.lower() == SERVICE_DATA_UUID
            for uuid in advertisement_data.service_data
        )

    async def send_request(self, opcode: int, payload: bytes = b"") -> bytes:
        """Send one command and return the raw response bytes."""
        return await self.exchange(build_request(opcode, payload))

    async def set_state(self, state: bool) -> None:
        data = await self.send_request(CMD_EXPANSION, set_state_payload(state))
        check_status(decode_response(data))
        _LOGGER.debug("%s: Switched %s", self.address, "on" if state else "off")

    async def get_state(self) -> bool:
        data = await self.send_request(CMD_EXPANSION, GET_STATE_PAYLOAD)
        return parse_state(decode_response(data))
