from __future__ import annotations

import functools
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_before_delay,
    wait_fixed,
)

T = TypeVar("T")

RetryHook = Callable[[int, Optional[BaseException]], None]


def fixed_retry(
    attempts: int,
    delay_s: float,
    *,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    budget_s: Optional[float] = None,
    sleep: Optional[Callable[[float], None]] = None,
    on_retry: Optional[RetryHook] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Retry a call a bounded number of times with a fixed pause in between.

    ``attempts`` counts the first call. When ``budget_s`` is set, no new
    attempt starts once the pause before it would cross the budget. The last
    error is re-raised unchanged once attempts run out.
    """
    stop = stop_after_attempt(max(1, int(attempts)))
    if budget_s is not None:
        stop = stop | stop_before_delay(max(0.0, float(budget_s)))
    wait = wait_fixed(max(0.0, float(delay_s)))

    def _before_sleep(retry_state: RetryCallState) -> None:
        if on_retry is None:
            return
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None and outcome.failed else None
        on_retry(retry_state.attempt_number, error)

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            retrying = Retrying(
                stop=stop,
                wait=wait,
                retry=retry_if_exception_type(retry_on),
                reraise=True,
                before_sleep=_before_sleep,
                sleep=sleep or time.sleep,
            )
            return retrying(func, *args, **kwargs)

        return wrapper

    return decorator
