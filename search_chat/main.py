"""Development entry point: ``python -m search_chat.main``."""

import uvicorn

from search_chat.config import get_settings
from search_chat.logging import configure_structlog, get_logger


def main() -> None:
    configure_structlog()
    settings = get_settings()
    get_logger("search_chat.main").info("server.starting", port=settings.port)
    uvicorn.run("search_chat.server:app", host="0.0.0.0", port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
