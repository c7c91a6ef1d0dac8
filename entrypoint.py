import os

import uvicorn

from logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def _env_flag(name: str) -> bool:
    return os.getenv(name, "false").lower() in ("1", "true", "yes")


def main():
    log_level = os.getenv("LOG_LEVEL", "DEBUG")
    setup_logging(log_level=log_level, log_file=os.getenv("LOG_FILE"))

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))
    reload = _env_flag("RELOAD")
    workers = 1 if reload else int(os.getenv("WORKERS", 1))

    logger.info(f"Starting chat rooms server on {host}:{port} (workers={workers}, reload={reload})")
    uvicorn.run(
        "app:app",
        host=host,
        port=port,
        reload=reload,
        workers=workers,
        log_level=log_level.lower(),
    )


if __name__ == "__main__":
    main()
