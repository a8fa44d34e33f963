"""Gunicorn configuration for production deployment.

Run with ``gunicorn -c gunicorn_conf.py search_chat.server:app``.
"""

import multiprocessing
import os

from search_chat.logging import configure_structlog

# Bind configuration
port = os.environ.get("PORT", "3001")
bind = f"0.0.0.0:{port}"

# Worker configuration
# Chat turns are I/O bound; a couple of async workers per vCPU is enough
workers = int(os.environ.get("GUNICORN_WORKERS", min(2, multiprocessing.cpu_count())))
worker_class = "uvicorn.workers.UvicornWorker"

# Timeout configuration
# A streamed turn may last up to the 10 minute SSE limit
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "660"))
graceful_timeout = int(os.environ.get("GUNICORN_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.environ.get("GUNICORN_KEEPALIVE", "5"))

# Logging configuration
loglevel = os.environ.get("GUNICORN_LOG_LEVEL", "info")
accesslog = "-"
errorlog = "-"

backlog = 2048

max_requests = int(os.environ.get("GUNICORN_MAX_REQUESTS", "1000"))
max_requests_jitter = int(os.environ.get("GUNICORN_MAX_REQUESTS_JITTER", "50"))


def post_worker_init(worker) -> None:  # noqa: ANN001
    configure_structlog()
