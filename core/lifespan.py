"""
Define application startup and shutdown procedures
"""

import re
from contextlib import asynccontextmanager
from fastapi import FastAPI
from core.config import get_settings

from core.db import create_db_and_tables
from core.logger import logger


# Helper function to log settings with sensitive value masking
def _log_setting(key: str, value):
    """Log a setting, masking sensitive values like passwords and secrets"""
    if ("PASSWORD" in key or "SECRET" in key) and value is not None:
        logger.info("  %s: %s", key, "*****")
    elif "SQLALCHEMY_DATABASE_URI" in key and value is not None:
        # Mask password in database URI if present
        masked_value = re.sub(r"://(.*?):(.*?)@", r"://\1:*****@", value)
        logger.info("  %s: %s", key, masked_value)
    else:
        logger.info("  %s: %s", key, value)


# Handle startup/shutdown tasks
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("In lifespan...starting up")

    # Print configuration settings (mask sensitive info)
    logger.info("Configuration Settings:")

    settings = get_settings()

    # Log computed fields first (they don't appear in vars())
    computed_fields = {
        "SQLALCHEMY_DATABASE_URI": settings.SQLALCHEMY_DATABASE_URI,
        "FILE_STORAGE_BUCKET": settings.FILE_STORAGE_BUCKET,
    }

    for key, value in computed_fields.items():
        _log_setting(key, value)

    # Log remaining settings
    for key, value in vars(settings).items():
        _log_setting(key, value)

    # Signing credentials are resolved on first URL request, not here
    logger.info("Creating database tables...")
    create_db_and_tables()

    logger.info("In lifespan...yield")
    try:
        yield
    finally:
        # Shutdown
        logger.info("In lifespan...shutting down")
