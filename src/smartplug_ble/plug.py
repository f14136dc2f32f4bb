"""The capability contract every smart-plug driver implements.

A driver is a concrete :class:`SmartPlug` subclass.  Besides the three
operations callers use (:meth:`~SmartPlug.set_state`,
:meth:`~SmartPlug.get_state` and :meth:`~SmartPlug.toggle`), it provides
the two hooks the scanner needs: an advertisement recognizer and an
async constructor that connects and initializes the device.

Callers hold a ``SmartPlug`` without knowing which driver matched::

    plug = await scan_and_connect(None, lambda device: True)
    async with plug:
        await plug.toggle()
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, TypeVar

from .exceptions import TransportError

if TYPE_CHECKING:
    from bleak.backends.device import BLEDevice
    from bleak.backends.scanner import AdvertisementData

_LOGGER = logging.getLogger(__name__)

_PlugT = TypeVar("_PlugT", bound="SmartPlug")


class PlugState(Enum):
    """Lifecycle of a device handle.

    ``READY`` is the only state that accepts commands.  ``DISCONNECTED``
    is terminal: there is no automatic reconnect.
    """

    DISCOVERED = "discovered"
    CONNECTING = "connecting"
    INITIALIZING = "initializing"
    READY = "ready"
    DISCONNECTED = "disconnected"


class SmartPlug(ABC):
    """A connected smart plug."""

    @classmethod
    @abstractmethod
    def check_advertisement(cls, advertisement_data: AdvertisementData) -> bool:
        """Return whether *advertisement_data* comes from this device type."""

    @classmethod
    @abstractmethod
    async def connect(cls: type[_PlugT], device: BLEDevice) -> _PlugT:
        """Connect to *device* and return a ready handle."""

    @property
    @abstractmethod
    def device(self) -> BLEDevice:
        """The ``BLEDevice`` this handle talks to."""

    @property
    @abstractmethod
    def state(self) -> PlugState:
        """Current lifecycle state."""

    @property
    def address(self) -> str:
        return self.device.address

    @property
    def name(self) -> str | None:
        return self.device.name

    @abstractmethod
    async def set_state(self, state: bool) -> None:
        """Switch the plug on (``True``) or off (``False``)."""

    @abstractmethod
    async def get_state(self) -> bool:
        """Return whether the plug is currently on."""

    async def toggle(self) -> None:
        """Invert the current state.

        This is a read followed by a write, not an atomic operation: a
        change made by someone else between the two goes unnoticed.
        """
        current = await self.get_state()
        await self.set_state(not current)

    @abstractmethod
    async def disconnect(self) -> BLEDevice:
        """Disconnect and return the underlying ``BLEDevice``."""

    async def __aenter__(self: _PlugT) -> _PlugT:
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc: object, tb: object
    ) -> None:
        if self.state is PlugState.DISCONNECTED:
            return
        if exc_type is None:
            await self.disconnect()
            return
        # Keep the body's exception.
        try:
            await self.disconnect()
        except TransportError:
            _LOGGER.debug(
                "%s: Disconnect after failed block raised",
                self.address,
                exc_info=True,
            )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.address})"
