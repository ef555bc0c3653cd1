"""
Duration Formatting
===================

Human-readable elapsed time for account pages.
"""

from __future__ import annotations

from datetime import datetime, timezone


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def membership_duration(since: datetime, now: datetime) -> str:
    """
    Describe how long ago ``since`` was, in the largest whole calendar unit.

    Examples:
        2 years, 1 month, 12 days, Today
    """
    since, now = _aware(since), _aware(now)
    if now <= since:
        return "Today"

    months = (now.year - since.year) * 12 + (now.month - since.month)
    if (now.day, now.timetz()) < (since.day, since.timetz()):
        months -= 1

    years, months = divmod(months, 12)
    if years:
        return _plural(years, "year")
    if months:
        return _plural(months, "month")

    days = (now - since).days
    if days:
        return _plural(days, "day")
    return "Today"
