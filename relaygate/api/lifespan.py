"""
Application lifespan management for FastAPI
"""

import os
from contextlib import asynccontextmanager
from fastapi import FastAPI

from ..core.config import ConfigManager
from ..core.gateway import Gateway
from ..core.llm_client import LLMClient
from ..utils.logging import setup_logging
from ..utils.transaction_logger import init_transaction_logger

logger = setup_logging()

# Global managers - initialized during lifespan
config_manager = None
llm_client = None
gateway = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    global config_manager, llm_client, gateway

    # Startup
    logger.info("Starting relaygate application")

    try:
        config_manager = ConfigManager()
        await config_manager.load_configs()

        log_dir = os.getenv("LOG_DIR", "logs")
        transaction_logging_enabled = os.getenv("TRANSACTION_LOGGING", "false").lower() == "true"
        init_transaction_logger(enabled=transaction_logging_enabled, log_dir=log_dir)
        logger.info("Transaction logging initialized",
                    enabled=transaction_logging_enabled,
                    log_dir=log_dir)

        llm_client = LLMClient(timeout_seconds=float(os.getenv("RELAYGATE_HTTP_TIMEOUT_SECONDS", "300")))
        await llm_client.start()

        gateway = Gateway.from_config(config_manager, llm_client)

        logger.info("relaygate application started successfully",
                    providers=list(gateway.providers))

    except Exception as e:
        logger.error("Failed to start application", error=str(e))
        raise

    yield

    # Shutdown
    logger.info("Shutting down relaygate application")

    if llm_client:
        await llm_client.stop()

    logger.info("relaygate application shutdown complete")


def get_gateway() -> Gateway:
    """Get the global gateway"""
    return gateway
