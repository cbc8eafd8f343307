"""Rotation policy: when to restart the browser to shed its fingerprint.

Decisions are pure reads of the session counters; the worker acts on them.
Auto-resets because every restart zeroes the session counters.
"""

import logging
from typing import Protocol

from pricehound.core.config import RotationConfig

logger = logging.getLogger(__name__)


class RotationCounters(Protocol):
    """Counter surface of a browser session, so tests can pass a fake."""

    @property
    def age_seconds(self) -> float: ...
    @property
    def jobs_since_restart(self) -> int: ...
    @property
    def searches_since_restart(self) -> int: ...


class RotationPolicy:
    """Evaluates the age, job-count and search-cadence rotation triggers.

    Usage::

        policy = RotationPolicy(settings.rotation)
        reason = policy.restart_reason(session)
        if reason:
            await session.restart(reason)
    """

    def __init__(self, config: RotationConfig) -> None:
        self._config = config

    def restart_reason(self, session: RotationCounters) -> str | None:
        """Return why the session is due for a scheduled restart, or None."""
        reason = self.age_reason(session)
        if reason is not None:
            return reason
        if session.jobs_since_restart >= self._config.restart_after_jobs:
            return f"{session.jobs_since_restart} jobs processed since last restart"
        return None

    def age_reason(self, session: RotationCounters) -> str | None:
        """Return a reason when the session outlived its interval, or None.

        Checked before every search as well, so a long job cannot hold an
        old browser past the limit.
        """
        interval_s = self._config.restart_interval_hours * 3600
        if session.age_seconds >= interval_s:
            return f"session age {session.age_seconds / 3600:.1f}h reached limit"
        return None

    def search_rotation_due(self, session: RotationCounters) -> bool:
        """Return True when the search count hit the proactive cadence."""
        cadence = self._config.restart_every_n_searches
        if cadence <= 0:
            return False
        count = session.searches_since_restart
        due = count > 0 and count % cadence == 0
        if due:
            logger.debug("Search cadence reached: %d searches since restart", count)
        return due
