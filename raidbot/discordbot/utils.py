import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import discord

T = TypeVar("T")

_logger = logging.getLogger(__name__)


async def api_call_with_retries(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    retries: int = 3,
    base_delay: float = 0.5,
    log: Optional[logging.Logger] = None,
    **kwargs: Any,
) -> T:
    """Execute an async Discord call with exponential backoff.

    Only server side failures (HTTP 5xx, or errors without a status) are
    retried; a 404 or 403 is raised straight away so callers can react to it.

    Parameters
    ----------
    func:
        Awaitable callable representing the API request.
    retries:
        Number of attempts before giving up. Defaults to 3.
    base_delay:
        Initial delay in seconds before retrying. Each subsequent retry doubles
        this delay.
    log:
        Optional logger to use. Defaults to a module-level logger.
    """

    logger = log or _logger
    attempt = 0
    while True:
        try:
            return await func(*args, **kwargs)
        except Exception as exc:
            status = getattr(exc, "status", None)
            if isinstance(exc, discord.HTTPException):
                retryable = status is None or 500 <= int(status) < 600
            elif status is not None:
                retryable = 500 <= int(status) < 600
            else:
                retryable = False
            if attempt >= retries - 1 or not retryable:
                if retryable:
                    logger.error(
                        "API call failed",
                        extra={"attempt": attempt + 1, "status": status, "error": str(exc)},
                    )
                raise
            logger.warning(
                "API call retry",
                extra={"attempt": attempt + 1, "status": status, "error": str(exc)},
            )
            delay = base_delay * (2 ** attempt)
            attempt += 1
            await asyncio.sleep(delay)
