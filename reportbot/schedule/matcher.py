"""Decide whether a schedule fires at a given business-time instant.

Matching is exact to the minute, so it relies on the tick loop firing once per
minute. A monthly schedule for day 29-31 simply does not fire in months that
lack that day; there is no rounding down to the last day of the month.
"""

from datetime import datetime, tzinfo
from zoneinfo import ZoneInfo

from reportbot.schedule.types import Schedule


def resolve_timezone(name: str) -> ZoneInfo:
    """Load the business timezone, e.g. ``America/Sao_Paulo``."""
    return ZoneInfo(name)


def business_now(tz: tzinfo, now: datetime | None = None) -> datetime:
    """Current instant (or ``now``) expressed in the business timezone.

    Naive ``now`` values are taken to already be business time.
    """
    if now is None:
        return datetime.now(tz)
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)
    return now.astimezone(tz)


def day_of_week(moment: datetime) -> int:
    """Day of week with Sunday as 0, matching ``Schedule.day_of_week``."""
    return moment.isoweekday() % 7


def should_run(schedule: Schedule, now: datetime) -> bool:
    """True when ``schedule`` is due at ``now`` (already in business time)."""
    if not schedule.is_active:
        return False
    if schedule.hour != now.hour or schedule.minute != now.minute:
        return False

    if schedule.frequency == "daily":
        return True
    if schedule.frequency == "weekly":
        return schedule.day_of_week == day_of_week(now)
    if schedule.frequency == "monthly":
        return schedule.day_of_month == now.day
    return False
