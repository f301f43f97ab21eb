"""
Retries with exponential backoff for calls to remote services

The Web API throttles clients with 429 responses that carry a Retry-After
header, and gateways in front of it fail transiently with 502/503/504.
Reads of records, metadata and Vault secrets go through
``retry_remote_operation``; batch writes never do, since a replayed batch
could apply the same change twice.

Usage:
    from utils.retry import retry_remote_operation

    @retry_remote_operation(max_retries=3, base_delay=1.0)
    def fetch_page(session, url):
        response = session.get(url, timeout=30)
        response.raise_for_status()
        return response.json()
"""

import logging
import random
import time
from functools import wraps
from typing import Any, Callable, Optional, Tuple, Type

import requests

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

# Lower-cased fragments of messages raised by sockets and HTTP adapters
TRANSIENT_MESSAGES = (
    "connection reset",
    "connection refused",
    "connection aborted",
    "broken pipe",
    "timed out",
    "timeout",
    "temporarily unavailable",
    "too many requests",
)

JITTER_RATIO = 0.25
MIN_DELAY = 0.1


def backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> float:
    """
    Delay before retry number ``attempt + 1``.

    Grows as ``base_delay * exponential_base ** attempt`` up to ``max_delay``;
    with jitter the result is spread by up to 25% either way.
    """
    delay = min(base_delay * exponential_base ** attempt, max_delay)
    if not jitter:
        return delay
    spread = delay * JITTER_RATIO
    return max(MIN_DELAY, delay + random.uniform(-spread, spread))


def retry_after_seconds(exception: Exception) -> Optional[float]:
    """Seconds requested by a Retry-After header on an HTTP error, if any."""
    response = getattr(exception, "response", None)
    if response is None:
        return None
    header = getattr(response, "headers", {}).get("Retry-After")
    if not isinstance(header, (str, int, float)):
        return None
    try:
        value = float(header)
    except ValueError:
        # HTTP-date form
        return None
    return value if value >= 0 else None


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: Optional[Tuple[Type[Exception], ...]] = None,
    should_retry: Optional[Callable[[Exception], bool]] = None,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    delay_hint: Optional[Callable[[Exception], Optional[float]]] = None,
):
    """
    Decorator that retries a function with exponential backoff

    Args:
        max_retries: Retries after the first attempt (default: 3)
        base_delay: Delay before the first retry, in seconds (default: 1.0)
        max_delay: Upper bound for any single delay (default: 60.0)
        exponential_base: Growth factor between retries (default: 2.0)
        jitter: Randomize each delay by up to 25% (default: True)
        retryable_exceptions: Exception types to retry (default: any)
        should_retry: Predicate deciding whether a caught exception is retried
        on_retry: Callback(attempt, exception, delay) before each wait; its
            own failures are logged and ignored
        delay_hint: Returns a server-requested delay for an exception (e.g.
            from Retry-After), used instead of the backoff when given

    Example:
        @retry_with_backoff(
            max_retries=5,
            retryable_exceptions=(requests.ConnectionError,),
            on_retry=lambda attempt, exc, delay: RETRIES.inc(),
        )
        def request_token():
            return session.post(token_url, data=form, timeout=30)
    """
    def is_retryable(exception: Exception) -> bool:
        if retryable_exceptions and not isinstance(exception, retryable_exceptions):
            return False
        return should_retry is None or should_retry(exception)

    def next_delay(attempt: int, exception: Exception) -> float:
        hinted = delay_hint(exception) if delay_hint else None
        if hinted is not None:
            return min(hinted, max_delay)
        return backoff_delay(attempt, base_delay, max_delay, exponential_base, jitter)

    def decorator(func: Callable) -> Callable:
        name = getattr(func, "__name__", "function")

        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if not is_retryable(e):
                        logger.debug(f"{name} failed with non-retryable {type(e).__name__}: {e}")
                        raise
                    if attempt >= max_retries:
                        logger.error(
                            f"{name} failed after {max_retries} retries: {type(e).__name__}: {e}"
                        )
                        raise

                    delay = next_delay(attempt, e)
                    attempt += 1
                    logger.warning(
                        f"{name} failed ({type(e).__name__}: {e}), "
                        f"retry {attempt}/{max_retries} in {delay:.2f}s"
                    )

                    if on_retry:
                        try:
                            on_retry(attempt, e, delay)
                        except Exception as callback_error:
                            logger.error(f"Error in retry callback: {callback_error}")

                    time.sleep(delay)

        return wrapper
    return decorator


def is_retryable_remote_exception(exception: Exception) -> bool:
    """
    Decide whether a failed remote call is worth retrying

    HTTP errors are retried only for throttling, timeouts and transient
    server or gateway statuses; 400, 401, 403, 404 and 412 fail at once.
    Connection failures and timeouts are always retried.
    """
    if isinstance(exception, requests.HTTPError):
        response = exception.response
        return response is not None and response.status_code in RETRYABLE_STATUS_CODES

    if isinstance(exception, (requests.ConnectionError, requests.Timeout)):
        return True

    if not isinstance(exception, (OSError, TimeoutError)):
        return False

    message = str(exception).lower()
    return isinstance(exception, (ConnectionError, TimeoutError)) or any(
        fragment in message for fragment in TRANSIENT_MESSAGES
    )


def retry_remote_operation(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
):
    """
    Retry a remote read on transient failures only

    Honors Retry-After on throttled responses.

    Example:
        @retry_remote_operation(max_retries=5)
        def get_entity_definition(session, url):
            response = session.get(url, timeout=30)
            response.raise_for_status()
            return response.json()
    """
    return retry_with_backoff(
        max_retries=max_retries,
        base_delay=base_delay,
        max_delay=max_delay,
        should_retry=is_retryable_remote_exception,
        on_retry=on_retry,
        delay_hint=retry_after_seconds,
    )
