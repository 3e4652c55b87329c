#!/usr/bin/env python3
"""
Main entry point for relaygate

An HTTP server that keeps LLM requests succeeding across rate-limited API
keys, unavailable models and flaky providers by rotating keys, failing over
across models and retrying with bounded backoff.
"""

import os
import uvicorn

from relaygate.utils.logging import setup_logging
from relaygate.api.app import create_app

# Setup logging
logger = setup_logging()


def main():
    """Main entry point for the application"""

    # Get configuration from environment
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 10006))
    log_level = os.getenv("LOG_LEVEL", "info").lower()

    logger.info("Starting relaygate", host=host, port=port, log_level=log_level)

    # Create the FastAPI application
    app = create_app()

    # In-flight guard and key cooldowns are process-local, so run one worker
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=log_level,
        workers=1,
        reload=False
    )


if __name__ == "__main__":
    main()
