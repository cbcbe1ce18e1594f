"""
Shared dependencies for FastAPI endpoints.

"""

from expense_tracker.core.dependencies.auth import (
    get_auth_orchestrator,
    get_current_user,
    AuthOrchestrator,
    CurrentUser,
    DBSession,
)
from expense_tracker.core.dependencies.db import get_async_session

__all__ = [
    "get_auth_orchestrator",
    "get_async_session",
    "get_current_user",
    "AuthOrchestrator",
    "CurrentUser",
    "DBSession",
]
