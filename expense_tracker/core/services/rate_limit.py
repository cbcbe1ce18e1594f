"""
Per-IP request throttling.

Fixed-window counters kept in process memory, exposed as FastAPI
dependencies for the OTP send, OTP verify and login endpoints. These
throttles sit in front of the per-challenge cooldown and lockout, which
are enforced in the database by the OTP challenge manager.
"""

from abc import ABC, abstractmethod
import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Literal

from fastapi import Request

from expense_tracker.core.config import rate_limit_logger, settings
from expense_tracker.core.exceptions.types import RateLimitExceededException


@dataclass
class RateLimitResult:
    """
    Result of a rate limit check.

    Attributes:
        allowed: Whether the request is allowed.
        remaining: Number of remaining requests in the current window.
        limit: The maximum number of requests allowed.
        reset_at: When the rate limit window resets.
        retry_after: Seconds until the client can retry (only if not allowed).
    """

    allowed: bool
    remaining: int
    limit: int
    reset_at: datetime
    retry_after: int | None = None


class RateLimitBackend(ABC):
    @abstractmethod
    async def check(self, key: str, limit: int, window: int) -> RateLimitResult:
        """
        Count a request against a key and report whether it is allowed.

        Args:
            key: The rate limit key (e.g., "rate_limit:ip:192.168.1.1:/auth/login").
            limit: Maximum number of requests allowed in the window.
            window: Time window in seconds.
        """

    @abstractmethod
    async def reset(self, key: str | None = None) -> None:
        """Forget one key, or every key when none is given."""


class MemoryBackend(RateLimitBackend):
    """
    In-memory rate limit backend.

    Note:
        Data is lost on application restart and is not shared between
        worker processes.
    """

    def __init__(self):
        self._store: dict[str, tuple[int, datetime]] = {}
        self._lock = asyncio.Lock()

    def _evict_expired(self, now: datetime) -> None:
        # Callers hold the lock
        expired = [k for k, (_, reset_at) in self._store.items() if reset_at <= now]
        for k in expired:
            del self._store[k]

    async def check(self, key: str, limit: int, window: int) -> RateLimitResult:
        now = datetime.now(timezone.utc)

        async with self._lock:
            self._evict_expired(now)
            count, reset_at = self._store.get(key, (0, now))

            if now >= reset_at:
                # Window expired (or new key), start fresh
                reset_at = datetime.fromtimestamp(
                    now.timestamp() + window, tz=timezone.utc
                )
                self._store[key] = (1, reset_at)
                return RateLimitResult(
                    allowed=True,
                    remaining=limit - 1,
                    limit=limit,
                    reset_at=reset_at,
                )

            if count >= limit:
                retry_after = max(1, int((reset_at - now).total_seconds()))
                rate_limit_logger.warning(
                    f"Rate limit exceeded for key: {key}, retry after: {retry_after}s"
                )
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    limit=limit,
                    reset_at=reset_at,
                    retry_after=retry_after,
                )

            self._store[key] = (count + 1, reset_at)
            remaining = limit - count - 1
            rate_limit_logger.debug(
                f"Rate limit check passed for key: {key}, remaining: {remaining}"
            )
            return RateLimitResult(
                allowed=True,
                remaining=remaining,
                limit=limit,
                reset_at=reset_at,
            )

    async def reset(self, key: str | None = None) -> None:
        async with self._lock:
            if key is None:
                self._store.clear()
            else:
                self._store.pop(key, None)


# Shared by every dependency so counts survive across requests
_backend: RateLimitBackend = MemoryBackend()


def get_backend() -> RateLimitBackend:
    return _backend


async def reset_rate_limits() -> None:
    """Clear every counter."""
    await _backend.reset()


def format_rate_limit_key(
    key_type: Literal["ip", "user"],
    identifier: str,
    endpoint: str,
) -> str:
    """
    Format a rate limit key with consistent structure.

    Example:
        >>> format_rate_limit_key("ip", "192.168.1.1", "/auth/login")
        'rate_limit:ip:192.168.1.1:/auth/login'
    """
    return f"rate_limit:{key_type}:{identifier}:{endpoint}"


def rate_limit_by_ip(limit: int, window: int, scope: str | None = None) -> Callable:
    """
    Create a FastAPI dependency for IP-based rate limiting.

    Args:
        limit: Maximum requests allowed per window.
        window: Time window in seconds.
        scope: Key suffix shared by several endpoints; defaults to the request path.

    Returns:
        A FastAPI dependency function raising ``RateLimitExceededException``.

    Example:
        >>> @router.post("/login", dependencies=[Depends(rate_limit_by_ip(10, 900))])
        >>> async def login(...): ...
    """

    async def dependency(request: Request) -> RateLimitResult | None:
        if not settings.RATE_LIMIT_ENABLED:
            return None

        client_ip = request.client.host if request.client else "unknown"
        key = format_rate_limit_key("ip", client_ip, scope or request.url.path)

        result = await get_backend().check(key, limit, window)

        if not result.allowed:
            raise RateLimitExceededException(
                message=f"Too many requests. Try again in {result.retry_after} seconds.",
                retry_after=result.retry_after,
            )

        return result

    return dependency


otp_send_rate_limit = rate_limit_by_ip(
    settings.RATE_LIMIT_OTP_SEND_REQUESTS,
    settings.RATE_LIMIT_OTP_SEND_WINDOW,
    scope="otp-send",
)
otp_verify_rate_limit = rate_limit_by_ip(
    settings.RATE_LIMIT_OTP_VERIFY_REQUESTS,
    settings.RATE_LIMIT_OTP_VERIFY_WINDOW,
    scope="otp-verify",
)
login_rate_limit = rate_limit_by_ip(
    settings.RATE_LIMIT_LOGIN_REQUESTS,
    settings.RATE_LIMIT_LOGIN_WINDOW,
    scope="login",
)


__all__ = [
    "RateLimitResult",
    "RateLimitBackend",
    "MemoryBackend",
    "get_backend",
    "reset_rate_limits",
    "format_rate_limit_key",
    "rate_limit_by_ip",
    "otp_send_rate_limit",
    "otp_verify_rate_limit",
    "login_rate_limit",
]
