import asyncio
import functools
import random
from typing import Callable, Optional
import httpx
from storefront import logger

TRANSIENT_EXCEPTIONS = (httpx.ConnectError, httpx.ReadTimeout, httpx.WriteTimeout, httpx.PoolTimeout,
                        httpx.ConnectTimeout, httpx.RemoteProtocolError, httpx.NetworkError)


def is_transient_http_error(exc: BaseException) -> bool:
    if isinstance(exc, asyncio.CancelledError):
        return False
    if isinstance(exc, TRANSIENT_EXCEPTIONS):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code if exc.response is not None else None
        # provider side failure -> retry ; 4xx -> surface immediately
        return bool(status_code and 500 <= status_code < 600)
    return bool(getattr(exc, "transient", False))


async def _sleep_with_jitter(delay: float, jitter: float) -> None:
    jitter_val = random.uniform(-jitter * delay, jitter * delay)
    await asyncio.sleep(max(0.0, delay + jitter_val))


def retry_async(
    *,
    attempts: int = 3,
    base_delay: float = 0.5,
    factor: float = 2.0,
    max_delay: float = 8.0,
    jitter: float = 0.15,
    if_retryable: Optional[Callable[[BaseException], bool]] = None,
):
    """Retry an async callable on transient failures with exponential backoff.

    Non-retryable exceptions and the last failure are re-raised unchanged.
    """
    if if_retryable is None:
        if_retryable = is_transient_http_error

    def deco(fn: Callable):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            for attempt in range(1, attempts + 1):
                try:
                    return await fn(*args, **kwargs)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    if not if_retryable(exc) or attempt == attempts:
                        raise

                    delay = min(max_delay, base_delay * (factor ** (attempt - 1)))
                    logger.warning("retry.attempt_failed", extra={
                        "callable": getattr(fn, "__qualname__", str(fn)),
                        "attempt": attempt,
                        "retry_in": round(delay, 3),
                        "error": str(exc),
                    })
                    await _sleep_with_jitter(delay, jitter)
        return wrapper
    return deco
