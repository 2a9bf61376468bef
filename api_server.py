#!/usr/bin/env python
"""
API server entry point for Creator Subscriptions
"""
import logging
import sys

import uvicorn

from creator_subscriptions.app import create_app
from creator_subscriptions.config import config

logger = logging.getLogger(__name__)

app = create_app()


if __name__ == "__main__":
    logger.info(f"Starting Creator Subscriptions API on port {config.PORT}")
    try:
        uvicorn.run(
            app,
            host="0.0.0.0",
            port=config.PORT,
            log_config=None,  # Logging is configured by the app lifespan
            access_log=True,
        )
    except Exception as e:
        logger.error(f"Failed to start server: {e}", exc_info=True)
        sys.exit(1)
