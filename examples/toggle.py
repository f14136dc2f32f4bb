"""Connect to the first smart plug found and toggle it."""

from __future__ import annotations

import asyncio
import logging

from smartplug_ble import scan_and_connect


async def main() -> None:
    plug = await scan_and_connect(None, lambda device: True)
    print(f"Connected to {plug!r}")
    async with plug:
        await plug.toggle()
        print(f"{plug.address} is now {'on' if await plug.get_state() else 'off'}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
