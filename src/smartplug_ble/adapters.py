"""Pick the adapter a scan runs on.

Only Linux names its adapters; elsewhere bleak uses the system adapter
and :func:`resolve_adapter` returns ``None``.
"""

from __future__ import annotations

import logging

from .const import DEFAULT_ADAPTER, IS_LINUX

_LOGGER = logging.getLogger(__name__)


def discover_adapters() -> list[str]:
    """Return the host's adapter names, sorted (e.g. ``["hci0", "hci1"]``).

    Falls back to ``[DEFAULT_ADAPTER]`` when ``bluetooth-adapters`` finds
    nothing or cannot query the HCI layer.
    """
    if not IS_LINUX:
        return [DEFAULT_ADAPTER]

    from bluetooth_adapters import get_adapters_from_hci

    try:
        names = sorted(a["name"] for a in get_adapters_from_hci().values())
    except Exception:
        _LOGGER.debug("Adapter enumeration failed", exc_info=True)
        names = []

    if not names:
        _LOGGER.debug("No adapters found, using %s", DEFAULT_ADAPTER)
        return [DEFAULT_ADAPTER]
    return names


def resolve_adapter(adapter: str | None) -> str | None:
    """Return *adapter*, or the first discovered one when it is ``None``."""
    if adapter is not None:
        return adapter
    if not IS_LINUX:
        return None
    return discover_adapters()[0]
