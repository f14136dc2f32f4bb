"""Exception hierarchy for smartplug-ble.

Two kinds of failure exist:

- :class:`ProtocolError` -- the device answered, but not the way the
  wire contract says it should (missing service or characteristic, bad
  status byte, unmapped state value).
- :class:`TransportError` -- the radio/connection layer failed (connect,
  write, subscribe, disconnect).  The underlying bleak exception is
  chained as ``__cause__``.
"""

from __future__ import annotations


class PlugError(Exception):
    """Base error for smartplug-ble."""


class ProtocolError(PlugError):
    """Raised when a device violates the expected wire contract."""


class TransportError(PlugError):
    """Raised when the underlying BLE transport fails."""


class NotConnectedError(TransportError):
    """Raised when a command is issued on a handle that is not ready."""
