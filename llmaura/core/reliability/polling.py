"""
Bounded polling — wait for an external daemon with probe-and-sleep.

The calling step cannot move on until the daemon it just started
answers, so polling blocks the run.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


def wait_until(
    probe: Callable[[], bool],
    attempts: int,
    interval: float,
    *,
    what: str = "condition",
    sleep: Callable[[float], None] = time.sleep,
    on_wait: Callable[[int], None] | None = None,
) -> bool:
    """Call ``probe`` up to ``attempts`` times, ``interval`` seconds apart.

    Args:
        probe: Returns True once the awaited condition holds.
        attempts: Maximum number of probes (>= 1).
        interval: Seconds slept after each failed probe.
        what: Description used in debug logging.
        sleep: Injected for tests.
        on_wait: Called with the attempt number after each failed probe.

    Returns:
        True as soon as a probe succeeds, False after the last failed probe.
    """
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1, got {attempts}")

    for attempt in range(1, attempts + 1):
        if probe():
            logger.debug("%s ready after %d probe(s)", what, attempt)
            return True
        if on_wait is not None:
            on_wait(attempt)
        if attempt < attempts:
            sleep(interval)

    logger.debug("%s not ready after %d probes", what, attempts)
    return False
