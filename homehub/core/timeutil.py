from datetime import datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo
from .config import settings

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def now_local() -> datetime:
    return now_utc().astimezone(local_tz())


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.timezone)


def parse_hhmm(s: str) -> time:
    h, m = s.strip().split(":")[:2]
    return time(hour=int(h), minute=int(m))


def time_today(t: time, now: datetime, tz: tzinfo) -> datetime:
    """Today's occurrence of wall-clock time ``t`` in ``tz``, as an aware datetime."""
    local = now.astimezone(tz)
    return datetime.combine(local.date(), t, tzinfo=tz)


def next_occurrence(at: datetime, now: datetime) -> datetime:
    """Roll ``at`` forward by whole days until it is strictly in the future."""
    while at <= now:
        at += timedelta(days=1)
    return at


def time_of_day_is_between(start: datetime, stop: datetime, now: datetime, tz: tzinfo) -> bool:
    """Compare only the local time of day; windows crossing midnight wrap."""
    s = start.astimezone(tz).time().replace(tzinfo=None)
    e = stop.astimezone(tz).time().replace(tzinfo=None)
    t = now.astimezone(tz).time().replace(tzinfo=None)
    if s <= e:
        return s <= t <= e
    return t >= s or t <= e


def weekday_name(now: datetime, tz: tzinfo) -> str:
    return WEEKDAYS[now.astimezone(tz).weekday()]
