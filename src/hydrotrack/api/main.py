"""Hydrotrack API service entry point.

This module provides the application instance for ASGI servers (uvicorn)
and a run() function for direct execution.
"""

import logging

from hydrotrack.api import create_app
from hydrotrack.core.settings import get_settings_safe

logger = logging.getLogger(__name__)

# This is what uvicorn references: hydrotrack.api.main:app
app = create_app(get_settings_safe())


def run() -> None:
    """Run the API server using uvicorn.

    Called by the hydrotrack-api console script defined in pyproject.toml.
    """
    import uvicorn

    settings = get_settings_safe()
    if settings is None:
        logger.warning("Could not load settings, using defaults")
        host, port = "127.0.0.1", 8000
    else:
        host, port = settings.api_host, settings.api_port

    logger.info("Starting Hydrotrack API on %s:%d", host, port)

    uvicorn.run(
        "hydrotrack.api.main:app",
        host=host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run()
