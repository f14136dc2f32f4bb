"""SwitchBot BLE wire codec.

Request packets are laid out as::

    offset 0   magic   0x57
    offset 1   header  bits 7-6 = mode, bits 3-0 = opcode
    offset 2.. payload (opcode specific)

Responses arrive as notifications.  Byte 0 is the status code (``0x01``
on success); the remaining bytes depend on the command.

Reference:
    https://github.com/OpenWonderLabs/SwitchBotAPI-BLE/blob/latest/devicetypes/plugmini.md
"""

from __future__ import annotations

from dataclasses import dataclass

from ..exceptions import ProtocolError

MAGIC = 0x57

CMD_EXPANSION = 0x0F

STATUS_OK = 0x01

STATE_OFF = 0x00
STATE_ON = 0x80

# Expansion sub-commands understood by the Plug Mini.
_EXT_SET_STATE = bytes([0x50, 0x01, 0x01])
GET_STATE_PAYLOAD = bytes([0x51, 0x01])

_STATE_TABLE = {
    STATE_OFF: False,
    STATE_ON: True,
}

_OPCODE_MASK = 0x0F
_MODE_MASK = 0x03
_MODE_SHIFT = 6


@dataclass(frozen=True)
class Command:
    opcode: int
    payload: bytes = b""
    mode: int = 0


@dataclass(frozen=True)
class Response:
    status: int
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


def encode_command(command: Command) -> bytes:
    """Encode *command* into a request packet."""
    if not 0 <= command.opcode <= _OPCODE_MASK:
        raise ValueError(f"opcode must fit in 4 bits, got {command.opcode:#x}")
    if not 0 <= command.mode <= _MODE_MASK:
        raise ValueError(f"mode must fit in 2 bits, got {command.mode:#x}")
    header = (command.mode << _MODE_SHIFT) | command.opcode
    return bytes([MAGIC, header]) + bytes(command.payload)


def build_request(opcode: int, payload: bytes = b"", mode: int = 0) -> bytes:
    """Shorthand for ``encode_command(Command(opcode, payload, mode))``."""
    return encode_command(Command(opcode, bytes(payload), mode))


def decode_command(packet: bytes) -> Command:
    """Decode a request packet back into a :class:`Command`."""
    if len(packet) < 2:
        raise ProtocolError(f"request too short ({len(packet)} bytes)")
    if packet[0] != MAGIC:
        raise ProtocolError(f"bad magic byte {packet[0]:#04x}")
    header = packet[1]
    return Command(
        opcode=header & _OPCODE_MASK,
        payload=bytes(packet[2:]),
        mode=(header >> _MODE_SHIFT) & _MODE_MASK,
    )


def decode_response(data: bytes) -> Response:
    if not data:
        raise ProtocolError("invalid response: empty")
    return Response(status=data[0], body=bytes(data[1:]))


def check_status(response: Response) -> Response:
    """Return *response* unchanged if its status byte signals success."""
    if not response.ok:
        raise ProtocolError(f"invalid response: status {response.status:#04x}")
    return response


def set_state_payload(state: bool) -> bytes:
    return _EXT_SET_STATE + bytes([STATE_ON if state else STATE_OFF])


def parse_state(response: Response) -> bool:
    """Map the state byte of a status-query response to a boolean."""
    check_status(response)
    if not response.body:
        raise ProtocolError("invalid response: missing state byte")
    try:
        return _STATE_TABLE[response.body[0]]
    except KeyError:
        raise ProtocolError(
            f"invalid response: unknown state {response.body[0]:#04x}"
        ) from None
