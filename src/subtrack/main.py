"""Application entry point."""

import asyncio
import logging
import sys

from subtrack.config import get_config
from subtrack.db.pool import close_pool
from subtrack.db.schema import migrate
from subtrack.payments.server import create_app, install_signal_handlers, run_server

logger = logging.getLogger(__name__)


async def boot() -> None:
    """
    Boot sequence: load config → migrate schema → serve until signalled → close pool.

    A database that is down at boot is logged and tolerated: checkout keeps
    working without local records, and webhooks answer 500 until it is back.
    """
    config = get_config()
    logger.info(f"Configuration loaded: env={config.env}")

    try:
        applied = await migrate()
        logger.info(f"Schema up to date ({applied} migration(s) applied)")
    except Exception as e:
        logger.warning(f"Database initialization failed, continuing without it: {e}")

    shutdown_event = asyncio.Event()
    install_signal_handlers(shutdown_event)

    try:
        await run_server(create_app(config), shutdown_event)
    finally:
        await close_pool()
        logger.info("Application shutdown complete")


def main() -> None:
    """Main entry point with logging configuration."""
    config = get_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        asyncio.run(boot())
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        sys.exit(0)
    except Exception as e:
        logging.error(f"Unexpected error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
