"""Coinfolio - serve the API with uvicorn.

Host, port and auto-reload come from settings (API_HOST, API_PORT,
API_RELOAD); reload is meant for local development only.
"""
import logging

import uvicorn

from coinfolio.core.config import get_settings

logger = logging.getLogger(__name__)


def main():
    """Run the FastAPI application."""
    settings = get_settings()
    logger.info(f"Serving Coinfolio on {settings.api_host}:{settings.api_port} (reload={settings.api_reload})")
    uvicorn.run(
        "coinfolio.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )


if __name__ == "__main__":
    main()
