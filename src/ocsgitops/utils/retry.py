# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocsgitops/utils/retry.py
import time
from typing import Callable, TypeVar

T = TypeVar("T")


def call_with_retry(
    fn: Callable[[], T],
    *,
    retries: int,
    delay: float,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[int, Exception], None] | None = None,
    sleep: Callable[[float], None] | None = None,
) -> T:
    """
    Call *fn* up to *retries* times.

    The last exception is re-raised unchanged so callers keep its type
    (and exit code). Never sleeps after the final attempt.
    """
    sleep = sleep or time.sleep
    for attempt in range(1, retries + 1):
        try:
            return fn()
        except retry_on as exc:
            if on_retry:
                on_retry(attempt, exc)
            if attempt == retries:
                raise
            sleep(delay)
    raise ValueError("retries must be >= 1")
