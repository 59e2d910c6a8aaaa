"""Process entry-point – validates configuration and serves the HTTP transport.

Run with:
    python -m canvas_gateway.main
"""

from __future__ import annotations

import logging
import sys

import uvicorn

from canvas_gateway.config import settings
from canvas_gateway.mcp.http_server import create_app

logger = logging.getLogger("gateway.main")


def main() -> None:
    """CLI entry-point."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    missing = settings.missing_required()
    if missing:
        logger.error(
            "Missing required environment variables: %s. Please define them before starting the server.",
            ", ".join(missing),
        )
        sys.exit(1)

    app = create_app(settings)
    logger.info(
        "Serving %s v%s on http://%s:%s",
        settings.service_name,
        settings.service_version,
        settings.host,
        settings.port,
    )
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        timeout_keep_alive=60,
    )


if __name__ == "__main__":
    main()
