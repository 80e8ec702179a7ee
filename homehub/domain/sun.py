from __future__ import annotations
from datetime import date, datetime, timezone, tzinfo
from typing import Optional

from astral import LocationInfo
from astral.sun import sun


def sun_times(
    day: date, latitude: float, longitude: float, tz: tzinfo = timezone.utc
) -> tuple[Optional[datetime], Optional[datetime]]:
    """
    Sunrise and sunset for a calendar day in ``tz``. Longitude is east-positive.
    Returns (None, None) during polar day or night.
    """
    observer = LocationInfo(latitude=latitude, longitude=longitude).observer
    try:
        times = sun(observer, date=day, tzinfo=tz)
    except ValueError:
        return None, None
    return times["sunrise"], times["sunset"]
