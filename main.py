"""
lmsapi entry point
Starts the request pipeline with health polling and cache sweeps.
"""

import asyncio

from loguru import logger

from lmsapi.bootstrap import ApiContext
from lmsapi.log_setup import setup_logging
from lmsapi.settings import global_settings


async def main() -> None:
    setup_logging(global_settings.log_level)
    logger.info("Starting lmsapi...")

    ctx = ApiContext(global_settings)

    try:
        ctx.start()

        # First health check
        status = await ctx.health.check()
        logger.info(f"Backend status: {status.message}")

        logger.info("lmsapi is running. Press Ctrl+C to stop.")
        while True:
            await asyncio.sleep(60)

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
    except Exception as e:
        logger.error(f"Error in main loop: {e}")
    finally:
        await ctx.shutdown()
        logger.info("lmsapi stopped")


if __name__ == "__main__":
    asyncio.run(main())
