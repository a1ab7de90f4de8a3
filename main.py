"""Application entry point: runs the engine's background sweep."""

from __future__ import annotations

import asyncio

from config import Config, load_config
from core import get_logger, setup_logger
from core.app_initializer import ApplicationInitializer

logger = get_logger("app")


async def main(config: Config) -> None:
    """Main application entry point."""
    app = ApplicationInitializer(config)
    await app.initialize()
    await app.run()


if __name__ == "__main__":
    config = load_config()
    setup_logger(name="", level=config.log_level, log_file=config.log_file, colored=True)
    try:
        asyncio.run(main(config))
    except KeyboardInterrupt:
        logger.info("Application stopped by user")
    except Exception as e:
        logger.error(f"Application failed: {e}", exc_info=True)
