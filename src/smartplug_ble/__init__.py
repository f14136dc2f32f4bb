"""smartplug-ble: discover and control BLE smart plugs.

Scans for advertisements with bleak, matches them to a protocol driver,
connects, and exposes every supported device through the same
:class:`SmartPlug` interface.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .adapters import discover_adapters, resolve_adapter
from .const import DISCONNECT_TIMEOUT, IS_LINUX, ScanLockConfig
from .driver import GattSmartPlug
from .exceptions import NotConnectedError, PlugError, ProtocolError, TransportError
from .forwarder import NotificationForwarder
from .plug import PlugState, SmartPlug
from .scan_lock import ScanLock, acquire_scan_lock, release_scan_lock
from .scanner import DRIVERS, match_driver, scan_and_connect
from .switchbot import PlugMini

__all__ = [
    # Scanning
    "scan_and_connect",
    "match_driver",
    "DRIVERS",
    # Capability contract
    "SmartPlug",
    "PlugState",
    # Drivers
    "GattSmartPlug",
    "PlugMini",
    "NotificationForwarder",
    # Errors
    "PlugError",
    "ProtocolError",
    "TransportError",
    "NotConnectedError",
    # Adapters
    "discover_adapters",
    "resolve_adapter",
    # Scan lock
    "ScanLockConfig",
    "ScanLock",
    "acquire_scan_lock",
    "release_scan_lock",
    # Constants
    "DISCONNECT_TIMEOUT",
    "IS_LINUX",
]
