"""Run the site API under uvicorn.

Settings come from the environment: API_HOST, API_PORT, API_WORKERS and
API_RELOAD (``true`` for local development). Logging is set up from
ENVIRONMENT and LOG_LEVEL before the app module is imported.

Usage:
    API_RELOAD=true python api_main.py
    rkc-api  # console script installed with the package
"""

import os

import uvicorn

from src.core.logging import configure_logging, get_logger

configure_logging()
logger = get_logger("api_main")


def main() -> None:
    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    reload = os.getenv("API_RELOAD", "false").lower() == "true"
    workers = 1 if reload else int(os.getenv("API_WORKERS", "1"))

    logger.info("api_server_starting", host=host, port=port, reload=reload, workers=workers)
    uvicorn.run(
        "src.api.app:app",
        host=host,
        port=port,
        reload=reload,
        workers=workers,
        log_config=None,
    )


if __name__ == "__main__":
    main()
