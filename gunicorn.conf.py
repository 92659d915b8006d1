"""
Gunicorn Configuration

Uvicorn workers for the sales reconciliation API. Run more than one worker
only with IMPORT_SESSION_BACKEND=redis so every worker sees the same
import sessions.
"""

import multiprocessing
import os

# Server socket
bind = os.getenv("BIND", "0.0.0.0:8000")
backlog = 2048

# Worker processes
workers = int(os.getenv("WORKERS", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
max_requests = 10000
max_requests_jitter = 1000
# spreadsheet uploads are parsed in the request
timeout = 120
keepalive = 5
graceful_timeout = 30

proc_name = "salesrecon-api"

# Logging
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
accesslog = "-"


def when_ready(server):
    """Called when server is ready to receive connections."""
    if workers > 1 and os.getenv("IMPORT_SESSION_BACKEND", "memory").lower() != "redis":
        server.log.warning(
            "Import sessions are kept in worker memory; set IMPORT_SESSION_BACKEND=redis for %s workers",
            workers,
        )
