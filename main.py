"""
stockkeeper entry point
Starts an inventory session and reports inventory status until interrupted.
"""

import asyncio

from loguru import logger

from stockkeeper.services.errors import InventoryError
from stockkeeper.session import InventorySession


async def main() -> None:
    """Main loop"""
    logger.info("Starting stockkeeper...")

    session = InventorySession()
    try:
        await session.start()

        logger.info("Loading inventory statistics...")
        stats = await session.materials.statistics()
        logger.info(f"Inventory: {stats.to_dict()}")

        low_stock = await session.materials.low_stock()
        for material in low_stock:
            logger.warning(
                f"  - Low stock: {material.name} ({material.stock:g}/{material.min_stock:g})"
            )

        logger.info("stockkeeper is running. Press Ctrl+C to stop.")
        while True:
            await asyncio.sleep(60)
            logger.debug(f"Health: {session.get_health_status()}")

    except InventoryError as e:
        logger.error(f"{e.user_message} ({e.correlation_id}): {e.message}")
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Received interrupt signal, shutting down...")
    finally:
        await session.close()
        logger.info("stockkeeper stopped")


if __name__ == "__main__":
    asyncio.run(main())
