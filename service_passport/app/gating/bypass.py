"""
Grace period during which score gating is not enforced.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional

from shared.logging import get_logger


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BypassWindow:
    """Bypass state computed once at startup.

    ``enabled_until`` of ``None`` means no window was configured and gating
    is always enforced.
    """

    def __init__(self, enabled_until: Optional[datetime] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.enabled_until = enabled_until
        self.clock = clock

    @classmethod
    def from_config(cls, start: Optional[date], days: Optional[int],
                    clock: Callable[[], datetime] = utcnow) -> "BypassWindow":
        """Build the window from a start date and a duration in days.

        A duration without a start date counts from process start.
        """
        logger = get_logger("passport.bypass")
        if not days:
            logger.info("Bypass window not configured, gating enforced")
            return cls(None, clock)

        if start is None:
            begins = clock()
        else:
            begins = datetime.combine(start, time.min, tzinfo=timezone.utc)

        enabled_until = begins + timedelta(days=days)
        logger.info("Bypass window configured", enabled_until=enabled_until.isoformat())
        return cls(enabled_until, clock)

    def is_expired(self) -> bool:
        """Whether gating should be enforced now."""
        if self.enabled_until is None:
            return True
        return self.clock() >= self.enabled_until
