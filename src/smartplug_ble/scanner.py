"""Scan for smart plugs and connect to the first one that matches.

:func:`scan_and_connect` runs a continuous ``BleakScanner`` and walks its
advertisement stream in arrival order.  For every advertisement:

1. the caller's *condition* decides whether the device is wanted at all;
2. each registered driver's recognizer looks at the advertisement, and
   the first driver that claims it is tried;
3. the driver connects and initializes.

The first device that gets through all three steps is returned, after
the scan has been stopped.  A candidate that fails to connect or
initialize is logged and skipped; it is not retried, though a later
advertisement from it goes through the steps again.

The advertisement stream never ends on its own, so without a *timeout*
the call only returns once a device has been connected.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

from bleak import BleakScanner

from .adapters import resolve_adapter
from .connection import TRANSPORT_ERRORS
from .const import IS_LINUX, ScanLockConfig
from .exceptions import PlugError, TransportError
from .plug import SmartPlug
from .scan_lock import ScanLock
from .switchbot import PlugMini

if TYPE_CHECKING:
    from bleak.backends.device import BLEDevice
    from bleak.backends.scanner import AdvertisementData

_LOGGER = logging.getLogger(__name__)

# Known drivers, tried in this order.  Adding a device type means adding
# a SmartPlug subclass here; nothing else in the scanner changes.
DRIVERS: tuple[type[SmartPlug], ...] = (PlugMini,)


def match_driver(
    advertisement_data: AdvertisementData,
    drivers: Sequence[type[SmartPlug]] = DRIVERS,
) -> type[SmartPlug] | None:
    """Return the first driver whose recognizer accepts the advertisement."""
    for driver in drivers:
        if driver.check_advertisement(advertisement_data):
            return driver
    return None


async def _try_candidate(
    device: BLEDevice,
    advertisement_data: AdvertisementData,
    condition: Callable[[BLEDevice], bool],
    drivers: Sequence[type[SmartPlug]],
) -> SmartPlug | None:
    """Run one advertisement through selection, recognition and connect.

    Returns the connected plug, or ``None`` if the device was skipped or
    failed.
    """
    if not condition(device):
        return None

    driver = match_driver(advertisement_data, drivers)
    if driver is None:
        return None

    _LOGGER.debug(
        "%s: Matched %s (rssi=%s), connecting",
        device.address,
        driver.__name__,
        advertisement_data.rssi,
    )
    try:
        return await driver.connect(device)
    except PlugError as exc:
        _LOGGER.debug(
            "%s: %s candidate failed, continuing scan: %s",
            device.address,
            driver.__name__,
            exc,
            exc_info=True,
        )
        return None


async def _scan(
    adapter: str | None,
    condition: Callable[[BLEDevice], bool],
    drivers: Sequence[type[SmartPlug]],
    scan_lock_config: ScanLockConfig | None,
    scanner_kwargs: dict[str, Any],
) -> SmartPlug:
    kwargs = dict(scanner_kwargs)
    if IS_LINUX and adapter is not None:
        kwargs.setdefault("adapter", adapter)

    async with ScanLock(scan_lock_config, adapter):
        _LOGGER.debug("Scanning on %s", adapter or "default adapter")
        plug: SmartPlug | None = None
        try:
            async with BleakScanner(**kwargs) as scanner:
                async for device, advertisement_data in scanner.advertisement_data():
                    plug = await _try_candidate(
                        device, advertisement_data, condition, drivers
                    )
                    if plug is not None:
                        break
        except TRANSPORT_ERRORS as exc:
            if plug is not None:
                await _release(plug)
            raise TransportError(
                f"Scan on {adapter or 'default adapter'} failed: {exc}"
            ) from exc
        except asyncio.CancelledError:
            if plug is not None:
                await _release(plug)
            raise

    if plug is None:
        raise TransportError("Advertisement stream ended unexpectedly")
    _LOGGER.info("%s: Connected to %r, scan stopped", plug.address, plug)
    return plug


async def _release(plug: SmartPlug) -> None:
    """Disconnect a plug that cannot be handed to the caller."""
    try:
        await plug.disconnect()
    except PlugError:
        _LOGGER.debug(
            "%s: Disconnect after failed scan raised", plug.address, exc_info=True
        )


async def scan_and_connect(
    adapter: str | None,
    condition: Callable[[BLEDevice], bool],
    *,
    drivers: Sequence[type[SmartPlug]] = DRIVERS,
    timeout: float | None = None,
    scan_lock_config: ScanLockConfig | None = None,
    **scanner_kwargs: Any,
) -> SmartPlug:
    """Scan until a supported smart plug is found and connected.

    Parameters
    ----------
    adapter:
        Adapter to scan on (e.g. ``"hci0"``).  ``None`` picks the first
        discovered adapter on Linux and bleak's default elsewhere.
    condition:
        Selection predicate called with every advertised ``BLEDevice``;
        only devices for which it returns ``True`` are considered.
    drivers:
        Drivers to try, in order.  Defaults to :data:`DRIVERS`.
    timeout:
        Give up after this many seconds.  If ``None`` (the default)
        there is no timeout and the call waits until a device matches.
        When the timeout fires, an ``asyncio.TimeoutError`` is raised.
    scan_lock_config:
        Cross-process scan lock configuration.  If ``None`` or
        ``enabled=False``, no locking is performed.
    **scanner_kwargs:
        Additional keyword arguments passed to ``BleakScanner``
        (e.g. ``scanning_mode``).

    Returns
    -------
    SmartPlug
        A ready handle for the first matching device.

    Raises
    ------
    TransportError
        If the scanner itself fails to start or stop.
    """
    effective_adapter = resolve_adapter(adapter)
    scan = _scan(
        effective_adapter, condition, drivers, scan_lock_config, scanner_kwargs
    )
    if timeout is not None:
        _LOGGER.debug("Scan timeout=%.0fs", timeout)
        return await asyncio.wait_for(scan, timeout=timeout)
    return await scan
