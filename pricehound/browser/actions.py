"""Reusable browser actions: randomized sleep and selector racing.

Design rules:
  - All pacing delays are randomized (uniform within a window).
  - Waits on DOM elements are always bounded by a timeout.
"""

import asyncio
import logging
import random
from typing import Any

logger = logging.getLogger(__name__)


async def random_sleep(min_s: float, max_s: float) -> float:
    """Sleep for a random duration between min_s and max_s seconds.

    Floor enforcement: min_s is always respected as the absolute minimum.
    If max_s < min_s, max_s is raised to min_s.

    Returns the actual sleep duration (useful for testing).
    """
    floor = max(min_s, 0.0)
    ceiling = max(max_s, floor)
    duration = random.uniform(floor, ceiling)
    await asyncio.sleep(duration)
    return duration


async def wait_for_any(
    page: Any,
    selectors: tuple[str, ...],
    *,
    timeout_ms: int,
) -> str | None:
    """Race ``wait_for_selector`` over several selectors.

    Args:
        page: Browser page object (patchright Page or mock).
        selectors: Candidate selectors, all awaited concurrently.
        timeout_ms: Upper bound for each wait.

    Returns:
        The first selector that appeared, or None if none did in time.
    """
    tasks = {
        asyncio.ensure_future(page.wait_for_selector(selector, timeout=timeout_ms)): selector
        for selector in selectors
    }
    pending = set(tasks)
    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            # Iterate in declaration order so simultaneous matches resolve the same way
            for task in (t for t in tasks if t in done):
                if task.exception() is None and task.result() is not None:
                    logger.debug("Selector '%s' appeared", tasks[task])
                    return tasks[task]
        logger.debug("None of %d selectors appeared within %dms", len(selectors), timeout_ms)
        return None
    finally:
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
