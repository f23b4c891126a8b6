"""
Resilience Module: Circuit Breakers and Retry.

Each database binding gets its own `pybreaker` circuit breaker so a backend
that is down fails fast without affecting other databases. Only transient
connection failures count against a breaker; rejected plans, invalid queries
and cancellations are excluded.
"""
import threading
import time
from typing import Callable, Dict, List, Optional, Type, TypeVar

import pybreaker

from queryproc.common.cancellation import CancellationToken
from queryproc.common.errors import (
    BackendConnectionError,
    ExecutionError,
    InvalidQueryError,
    QueryCancelledError,
    UnknownReferenceError,
    UnsupportedOperationError,
)
from queryproc.common.logger import get_logger

logger = get_logger("resilience")

T = TypeVar("T")

SOFT_FAILURES: List[Type[Exception]] = [
    ExecutionError,
    InvalidQueryError,
    UnknownReferenceError,
    UnsupportedOperationError,
    QueryCancelledError,
]


class ObservabilityListener(pybreaker.CircuitBreakerListener):
    """Listener to export circuit breaker state changes and failures to logs."""

    def state_change(self, cb, old_state, new_state):
        old_name = old_state.name if old_state else None
        logger.warning(
            f"Circuit Breaker '{cb.name}' changed state: {old_name} -> {new_state.name}"
        )

    def failure(self, cb, exc):
        logger.error(
            f"Circuit Breaker '{cb.name}' recorded failure: {type(exc).__name__}: {exc}"
        )


def create_breaker(
    name: str,
    fail_max: int = 5,
    reset_timeout: int = 30,
    exclude: Optional[List[Type[Exception]]] = None
) -> pybreaker.CircuitBreaker:
    """Factory to create a configured Circuit Breaker."""
    return pybreaker.CircuitBreaker(
        fail_max=fail_max,
        reset_timeout=reset_timeout,
        name=name,
        listeners=[ObservabilityListener()],
        exclude=exclude if exclude is not None else list(SOFT_FAILURES)
    )


_breakers: Dict[str, pybreaker.CircuitBreaker] = {}
_breakers_lock = threading.Lock()


def get_breaker(database_key: str, fail_max: int = 5, reset_timeout: int = 30) -> pybreaker.CircuitBreaker:
    """Returns the breaker guarding ``database_key``, creating it on first use."""
    with _breakers_lock:
        breaker = _breakers.get(database_key)
        if breaker is None:
            breaker = create_breaker(
                name=f"DB_BREAKER[{database_key}]",
                fail_max=fail_max,
                reset_timeout=reset_timeout,
            )
            _breakers[database_key] = breaker
        return breaker


def reset_breakers() -> None:
    """Closes and forgets every database breaker."""
    with _breakers_lock:
        for breaker in _breakers.values():
            breaker.close()
        _breakers.clear()


def call_with_retry(
    func: Callable[[], T],
    breaker: pybreaker.CircuitBreaker,
    retries: int = 2,
    backoff_sec: float = 0.5,
    cancel_token: Optional[CancellationToken] = None,
) -> T:
    """Runs ``func`` through ``breaker``, retrying connection failures.

    Delays grow as ``backoff_sec * 2 ** attempt``. The wait between attempts is
    interrupted by ``cancel_token``. An open breaker is reported as a
    non-retryable ``BackendConnectionError``.
    """
    attempt = 0
    while True:
        if cancel_token is not None and cancel_token.is_cancelled():
            raise QueryCancelledError(reason=cancel_token.reason or "cancelled")
        try:
            return breaker.call(func)
        except pybreaker.CircuitBreakerError as e:
            raise BackendConnectionError(
                f"Circuit breaker '{breaker.name}' is open: {e}",
                retryable=False,
                breaker=breaker.name,
            ) from e
        except BackendConnectionError as e:
            if not e.retryable or attempt >= retries:
                raise
            delay = backoff_sec * (2 ** attempt)
            attempt += 1
            logger.warning(
                f"Connection failure ({e.message}); retry {attempt}/{retries} in {delay:.2f}s"
            )
            if cancel_token is not None:
                if cancel_token.wait(delay):
                    raise QueryCancelledError(reason=cancel_token.reason or "cancelled") from e
            else:
                time.sleep(delay)
