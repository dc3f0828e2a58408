#!/usr/bin/env python3
"""Startup script for the API server."""
import logging
import uvicorn

from hundi.config import settings

if __name__ == "__main__":
    logging.getLogger(__name__).info(f"Starting hundi API on port {settings.port}")
    uvicorn.run(
        "hundi.main:app",
        host=settings.host,
        port=settings.port,
        log_level="info"
    )
