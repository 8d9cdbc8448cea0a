"""Check that DATABASE_URL points at a reachable database.

Run with: python -m scripts.check_connection
"""

import asyncio
import logging
import sys

from devevent.database import ConnectionCache, mask_database_url
from devevent.errors import ConfigurationError, ConnectivityError

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger("check_connection")


async def main() -> int:
    cache = ConnectionCache()
    try:
        await cache.acquire()
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return 1
    except ConnectivityError as exc:
        logger.error("Connection failed (%s): %s", exc.kind, exc.message)
        logger.error("Tip: %s", exc.hint)
        return 1

    logger.info("Connected to %s", mask_database_url(cache.database_url))
    await cache.release()
    logger.info("Disconnected.")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
