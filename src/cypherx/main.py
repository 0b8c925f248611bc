"""Main entry point - runs the wallet API server."""

import logging

import uvicorn

from cypherx.config import get_settings

logger = logging.getLogger(__name__)


def main():
    """Main entry point."""
    settings = get_settings()

    log_level = logging.DEBUG if settings.debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logger.info("Starting CypherX wallet...")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Chain: {settings.chain_name} ({settings.chain_id})")

    from cypherx.api.app import create_app

    uvicorn.run(
        create_app(),
        host=settings.api_host,
        port=settings.api_port,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
