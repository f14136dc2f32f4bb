"""Background forwarding of GATT notifications into a single-slot queue.

bleak delivers notifications through a callback.  The forwarder turns
that callback into a notification *stream* (an unbounded queue) and runs
one task per connected device that drains the stream, keeps only the
notifications coming from the response characteristic, and hands their
payloads to the command exchange through a capacity-1 queue.

Usage::

    forwarder = NotificationForwarder(RESPONSE_CHAR_UUID, address)
    await client.start_notify(response_char, forwarder.on_notification)
    forwarder.start()

    await client.write_gatt_char(request_char, packet, response=True)
    data = await forwarder.receive()

    forwarder.stop()

The response queue holds at most one unread response.  A second matching
notification blocks the task until the first one is read; the device
never sends two responses to one request, so this only matters for
unsolicited notifications.

Every notification is stamped with the drain epoch current when it
arrived.  :meth:`NotificationForwarder.drain` starts a new epoch, and
:meth:`NotificationForwarder.receive` discards responses from an older
one, including a response the task was still blocked on when the slot
was drained.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .exceptions import TransportError

if TYPE_CHECKING:
    from bleak.backends.characteristic import BleakGATTCharacteristic

_LOGGER = logging.getLogger(__name__)

# Marks the end of the notification stream.
_END = None


class NotificationForwarder:
    """Filter a device's notifications down to its response characteristic.

    Parameters
    ----------
    response_uuid:
        UUID of the characteristic the device answers on.
    name:
        Device name or address, used for logging only.
    """

    def __init__(self, response_uuid: str, name: str = "") -> None:
        self._response_uuid = response_uuid.lower()
        self._name = name
        self._stream: asyncio.Queue[tuple[int, str, bytes] | None] = asyncio.Queue()
        self._responses: asyncio.Queue[tuple[int, bytes]] = asyncio.Queue(maxsize=1)
        self._task: asyncio.Task[None] | None = None
        self._epoch = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> int:
        """Number of responses waiting to be read (0 or 1)."""
        return self._responses.qsize()

    def on_notification(
        self, characteristic: BleakGATTCharacteristic, data: bytearray
    ) -> None:
        """Notification callback for ``BleakClient.start_notify()``."""
        self._stream.put_nowait((self._epoch, characteristic.uuid, bytes(data)))

    def end_stream(self) -> None:
        """Signal that no more notifications will arrive.

        Called from the client's disconnected callback.  The task exits
        after forwarding whatever was queued before the end marker.
        """
        self._stream.put_nowait(_END)

    def start(self) -> None:
        """Start the forwarding task.  No-op if already started."""
        if self._task is not None:
            return
        self._task = asyncio.ensure_future(self._run())

    def stop(self) -> None:
        """Cancel the forwarding task.  Safe to call multiple times."""
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def drain(self) -> int:
        """Drop everything received so far.

        Returns how many unread responses were taken out of the slot.
        Responses still in the stream, or held by a blocked task, are
        discarded later by :meth:`receive`.
        """
        self._epoch += 1
        dropped = 0
        while not self._responses.empty():
            self._responses.get_nowait()
            dropped += 1
        return dropped

    async def receive(self) -> bytes:
        """Wait for the next response received since the last :meth:`drain`.

        Raises
        ------
        TransportError
            If the forwarder is not running (stream ended, stopped, or
            never started) and no response is pending.
        """
        while True:
            epoch, value = await self._next_response()
            if epoch == self._epoch:
                return value
            _LOGGER.debug(
                "%s: Discarded stale response %s", self._name, value.hex()
            )

    async def _next_response(self) -> tuple[int, bytes]:
        if not self._responses.empty():
            return self._responses.get_nowait()
        if not self.is_running:
            raise TransportError(f"{self._name}: notification stream closed")

        assert self._task is not None
        getter = asyncio.ensure_future(self._responses.get())
        try:
            await asyncio.wait(
                {getter, self._task}, return_when=asyncio.FIRST_COMPLETED
            )
            if getter.done():
                return getter.result()
        finally:
            if not getter.done():
                getter.cancel()

        # The task may have queued a response and ended in the same step.
        if not self._responses.empty():
            return self._responses.get_nowait()
        raise TransportError(f"{self._name}: notification stream closed")

    async def _run(self) -> None:
        try:
            while True:
                item = await self._stream.get()
                if item is _END:
                    _LOGGER.debug("%s: Notification stream ended", self._name)
                    break
                epoch, uuid, value = item
                if uuid.lower() != self._response_uuid:
                    _LOGGER.debug(
                        "%s: Ignoring notification from %s", self._name, uuid
                    )
                    continue
                _LOGGER.debug("%s: Response %s", self._name, value.hex())
                await self._responses.put((epoch, value))
        except asyncio.CancelledError:
            _LOGGER.debug("%s: Forwarder cancelled", self._name)
