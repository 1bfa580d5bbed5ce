#!/usr/bin/env python3
"""
Studio Ledger Entry Point

Starts the FastAPI server with settings from STUDIO_* environment variables.
"""

import sys

from studio_ledger.config import get_config
from studio_ledger.logging_config import setup_logging
from studio_ledger.api import run_server


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(
        level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file
    )
    logger.info(f"Starting Studio Ledger on {config.api_host}:{config.api_port}")
    logger.info(f"Storage: {config.database_url.split('@')[-1]}")

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            debug=False,
            log_level=config.log_level,
            workers=config.api_workers
        )
    except KeyboardInterrupt:
        logger.info("Shutting down Studio Ledger")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
