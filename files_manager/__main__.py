from __future__ import annotations

import uvicorn

from files_manager.config import get_settings
from files_manager.logging import get_logger

logger = get_logger(__name__)


def main() -> None:
    settings = get_settings()
    logger.info("server_starting", host=settings.host, port=settings.port)
    uvicorn.run(
        "files_manager.app:app",
        host=settings.host,
        port=settings.port,
        log_level="info",
        access_log=True,
    )


if __name__ == "__main__":
    main()
