"""
Request Dependencies

Services live on app.state; routes reach them through these functions.
"""

from datetime import datetime
from typing import Callable

from fastapi import Request

from salesrecon.reconciliation.pipeline import ImportPipeline
from salesrecon.reconciliation.session import ImportSessionStore
from salesrecon.store.base import DocumentStore


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_sessions(request: Request) -> ImportSessionStore:
    return request.app.state.sessions


def get_pipeline(request: Request) -> ImportPipeline:
    return request.app.state.pipeline


def get_clock(request: Request) -> Callable[[], datetime]:
    return request.app.state.clock
