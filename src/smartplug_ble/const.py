"""Constants and configuration dataclasses for smartplug-ble."""

from __future__ import annotations

import os
import platform
from dataclasses import dataclass

IS_LINUX = platform.system() == "Linux"

# Adapter used when enumeration finds nothing.
DEFAULT_ADAPTER = "hci0"

# How long to wait for a disconnect to complete before giving up.
DISCONNECT_TIMEOUT = 5.0


@dataclass
class ScanLockConfig:
    """Per-adapter lock that lets one process at a time scan for plugs.

    Every process sharing an adapter must use the same *lock_dir*.

    Parameters
    ----------
    enabled:
        Hold the lock for the whole of :func:`~smartplug_ble.scanner.scan_and_connect`.
    lock_dir:
        Directory for the lock files.
    lock_timeout:
        Seconds to wait for the lock before scanning without it.
    """

    enabled: bool = False
    lock_dir: str = "/run"
    lock_timeout: float = 30.0

    def path_for_adapter(self, adapter: str | None) -> str:
        """Return the lock file used for *adapter* (``None``: bleak's default)."""
        return os.path.join(
            self.lock_dir, f"smartplug-{adapter or 'default'}-scan.lock"
        )
