#!/usr/bin/env python
"""
Server Entry Point

Usage:
    Development:  python run_server.py --dev
    Production:   python run_server.py
    Gunicorn:     python run_server.py --gunicorn
                  (same as: gunicorn salesrecon.main:app -c gunicorn.conf.py)
"""

import argparse
import os
import subprocess

import uvicorn

from salesrecon.config import get_settings

APP = "salesrecon.main:app"


def run_dev_server(host: str, port: int) -> None:
    """Single process with auto-reload and debug logging."""
    os.environ.setdefault("LOG_FORMAT", "text")
    uvicorn.run(
        APP,
        host=host,
        port=port,
        reload=True,
        reload_dirs=["salesrecon"],
        log_level="debug",
    )


def run_prod_server(host: str, port: int) -> None:
    """Uvicorn workers without a process manager.

    Import sessions must live in Redis (IMPORT_SESSION_BACKEND=redis) when
    more than one worker runs.
    """
    uvicorn.run(
        APP,
        host=host,
        port=port,
        workers=int(os.getenv("WORKERS", 4)),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
    )


def run_gunicorn() -> None:
    subprocess.run(["gunicorn", APP, "-c", "gunicorn.conf.py"], check=True)


if __name__ == "__main__":
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Sales Reconciliation API Server")
    parser.add_argument("--dev", action="store_true", help="Run in development mode with auto-reload")
    parser.add_argument("--gunicorn", action="store_true", help="Run under Gunicorn")
    parser.add_argument("--host", default=settings.api_host, help="Interface to bind")
    parser.add_argument("--port", type=int, default=settings.api_port, help="Port to run on")
    args = parser.parse_args()

    if args.dev:
        run_dev_server(args.host, args.port)
    elif args.gunicorn:
        os.environ["BIND"] = f"{args.host}:{args.port}"
        run_gunicorn()
    else:
        run_prod_server(args.host, args.port)
