"""Clock - the single source of "now" for the rule engine."""

from datetime import datetime, timezone


class Clock:
    """Wall clock returning timezone-aware UTC datetimes.

    Services never call ``datetime.now()`` directly so that pause/resume and
    expiry math can be driven by a manual clock in tests.
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


clock = Clock()


def get_clock() -> Clock:
    """FastAPI dependency returning the process clock."""
    return clock
