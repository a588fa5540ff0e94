#!/usr/bin/env python3
"""
wait_loop.py: Poll a condition at a fixed interval until it holds.

    check → ready?  yes → on_ready(), return True
                    no  → sleep(interval) → check again ...

There is no attempt limit and no backoff: the interval is the same on every
iteration. The only way out besides success is the `cancel` event, looked at
before each check and used as the sleep itself, so a cancel during the sleep
wakes the loop immediately.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Protocol

import wait_conditions
from wait_conditions import WaitSpec

logger = logging.getLogger("spa.wait_loop")

Checker = Callable[[wait_conditions.WaitKind, str], bool]


class CancelToken(Protocol):
    """The subset of threading.Event the loop needs."""

    def is_set(self) -> bool: ...

    def wait(self, timeout: Optional[float] = None) -> bool: ...


def run(
    spec: WaitSpec,
    on_ready: Callable[[], None],
    *,
    cancel: Optional[CancelToken] = None,
    checker: Optional[Checker] = None,
    logger: logging.Logger = logger,
) -> bool:
    """
    Block until `spec` is satisfied, then call `on_ready` once.

    Returns True when on_ready ran, False when `cancel` was set first (in
    which case on_ready is never called). Exceptions from the checker, such
    as UnknownWaitTypeError, propagate on the first check.
    """
    if cancel is None:
        cancel = threading.Event()
    if checker is None:
        checker = wait_conditions.check

    logger.info(
        "Waiting for %s %s (checking every %gs)",
        spec.kind.value, spec.target, spec.interval,
    )
    attempt = 0
    while True:
        if cancel.is_set():
            logger.info("Wait cancelled after %d check(s)", attempt)
            return False

        attempt += 1
        if checker(spec.kind, spec.target):
            logger.info("Condition met on check #%d", attempt)
            on_ready()
            return True

        if cancel.wait(spec.interval):
            logger.info("Wait cancelled after %d check(s)", attempt)
            return False
