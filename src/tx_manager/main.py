"""Application entry point for the transaction manager status server."""

from __future__ import annotations

import logging
import os

import uvicorn

from tx_manager.config.settings import AppConfig


def main() -> None:
    """Start the transaction manager server."""
    config = AppConfig()
    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    reload = os.getenv("TXMANAGER_RELOAD", "false").lower() in ("1", "true", "yes")
    uvicorn.run(
        "tx_manager.api.app:create_app",
        factory=True,
        host=config.server.host,
        port=config.server.port,
        reload=reload,
        log_level="debug" if config.debug else "info",
    )


if __name__ == "__main__":
    main()
