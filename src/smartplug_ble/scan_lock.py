"""Cross-process exclusive scan lock for BLE adapters.

BlueZ allows only one ``StartDiscovery`` per adapter, so a second
process starting a scan on the same adapter fails with
``org.bluez.Error.InProgress``.  :class:`ScanLock` holds an exclusive
``fcntl.flock`` on a per-adapter lock file for as long as a scan runs::

    async with ScanLock(config, "hci0"):
        async with BleakScanner(adapter="hci0") as scanner:
            ...

If the lock cannot be acquired within ``config.lock_timeout`` the scan
proceeds anyway and BlueZ gets to report the conflict.  ``flock`` locks
are released by the kernel when a process dies.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .const import ScanLockConfig

try:
    import fcntl

    _HAS_FCNTL = True
except ImportError:
    _HAS_FCNTL = False

_LOGGER = logging.getLogger(__name__)

_RETRY_INTERVAL = 0.25


def _try_lock(path: str) -> int | None:
    """Open *path* and try a non-blocking exclusive lock on it."""
    fd = os.open(path, os.O_CREAT | os.O_RDWR, 0o666)
    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        os.close(fd)
        return None
    return fd


async def acquire_scan_lock(
    config: ScanLockConfig | None,
    adapter: str | None,
) -> int | None:
    """Acquire the scan lock for *adapter*.

    Returns an open file descriptor holding the lock, or ``None`` when
    locking is disabled, unsupported, or timed out.
    """
    if config is None or not config.enabled or not _HAS_FCNTL:
        return None

    path = config.path_for_adapter(adapter)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + config.lock_timeout

    while True:
        try:
            fd = _try_lock(path)
        except OSError:
            _LOGGER.debug("Failed to open scan lock file %s", path, exc_info=True)
            return None

        if fd is not None:
            _LOGGER.debug("Acquired scan lock for %s (%s)", adapter, path)
            return fd

        if loop.time() >= deadline:
            _LOGGER.warning(
                "Timed out waiting for scan lock on %s after %.1f s "
                "- proceeding without lock",
                adapter,
                config.lock_timeout,
            )
            return None

        await asyncio.sleep(_RETRY_INTERVAL)


def release_scan_lock(fd: int | None) -> None:
    """Release a lock returned by :func:`acquire_scan_lock`.

    Safe to call with ``None``.
    """
    if fd is None:
        return
    try:
        fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)
    except OSError:
        _LOGGER.debug("Failed to release scan lock", exc_info=True)


class ScanLock:
    """Async context manager around :func:`acquire_scan_lock`."""

    __slots__ = ("_config", "_adapter", "_fd")

    def __init__(self, config: ScanLockConfig | None, adapter: str | None) -> None:
        self._config = config
        self._adapter = adapter
        self._fd: int | None = None

    async def __aenter__(self) -> ScanLock:
        self._fd = await acquire_scan_lock(self._config, self._adapter)
        return self

    async def __aexit__(self, *exc: object) -> None:
        release_scan_lock(self._fd)
        self._fd = None

    @property
    def acquired(self) -> bool:
        """Whether the scan lock is currently held."""
        return self._fd is not None
