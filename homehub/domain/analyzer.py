from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterable, Optional, Union

from .models import DeviceEvent, Segment
from .summary import format_duration

logger = logging.getLogger(__name__)

HISTORY_LOOKBACK = timedelta(hours=24)
MAX_EVENTS = 1000
LEVEL_ON_THRESHOLD = 5
RANGE_WARNING = timedelta(hours=24)


def combine_date_and_time(date_str: Optional[str], time_str: Optional[str], tz: tzinfo) -> Optional[datetime]:
    """``YYYY-MM-DD`` plus ``HH:MM`` (or an ISO timestamp whose clock time is used), seconds zeroed."""
    if not date_str or not time_str:
        return None
    try:
        day = date.fromisoformat(date_str.strip()[:10])
    except ValueError:
        logger.warning("combine_date_and_time(): unable to parse date %r", date_str)
        return None

    clock: Optional[time] = None
    if "T" in time_str:
        try:
            stamp = datetime.fromisoformat(time_str.strip())
            if stamp.tzinfo is not None:
                stamp = stamp.astimezone(tz)
            clock = stamp.time()
        except ValueError:
            clock = None
    if clock is None:
        try:
            h, m = time_str.strip().split(":")[:2]
            clock = time(int(h), int(m))
        except ValueError:
            logger.warning("combine_date_and_time(): unable to parse time %r", time_str)
            return None
    return datetime.combine(day, time(clock.hour, clock.minute), tzinfo=tz)


def event_to_state(evt: DeviceEvent) -> Optional[str]:
    if evt.name == "switch":
        return "on" if evt.value == "on" else "off"
    if evt.name == "level":
        try:
            level = int(evt.value)
        except (TypeError, ValueError):
            return None
        return "on" if level >= LEVEL_ON_THRESHOLD else "off"
    return None


def merge_segments(segments: list[Segment]) -> list[Segment]:
    if len(segments) < 2:
        return list(segments)
    ordered = sorted(segments, key=lambda s: (s.start, s.end))
    merged: list[Segment] = []
    current = ordered[0]
    for seg in ordered[1:]:
        if seg.state == current.state and seg.start <= current.end:
            current = Segment(current.start, max(current.end, seg.end), current.state)
        else:
            merged.append(current)
            current = seg
    merged.append(current)
    return merged


def build_segments(events: Iterable[DeviceEvent], start: datetime, end: datetime) -> list[Segment]:
    """
    Turn raw switch/level history into on/off segments clipped to [start, end].
    Events before ``start`` only establish the initial state; unknown means off.
    """
    if end <= start:
        return []
    current: Optional[str] = None
    last_change = start
    saw_in_range = False
    segments: list[Segment] = []

    for evt in sorted(events, key=lambda e: e.ts_utc):
        ts = evt.ts_utc
        if ts > end:
            break
        state = event_to_state(evt)
        if state is None:
            continue
        if ts < start:
            current = state
            continue
        saw_in_range = True
        if current is None:
            current = "off"
        seg_start = max(last_change, start)
        seg_end = min(ts, end)
        if seg_end > seg_start:
            segments.append(Segment(seg_start, seg_end, current))
        current = state
        last_change = ts

    if not saw_in_range:
        if current == "on":
            return [Segment(start, end, "on")]
        return []

    if last_change < end:
        segments.append(Segment(max(last_change, start), end, current or "off"))
    return merge_segments(segments)


@dataclass
class DeviceHistory:
    device_id: str
    name: str
    segments: list[Segment] = field(default_factory=list)
    truncated: bool = False

    @property
    def label_html(self) -> str:
        name = self.name or "(unknown)"
        if self.truncated:
            return f"{name} <span style='color:#ff6666'>(truncated)</span>"
        return name


@dataclass(frozen=True)
class DeviceStats:
    device_id: str
    name: str
    on_segments: int
    on_seconds: float
    percent_on: int


def device_stats(history: DeviceHistory, start: datetime, end: datetime) -> DeviceStats:
    total = (end - start).total_seconds()
    on_seconds = 0.0
    count = 0
    for seg in history.segments:
        if seg.state != "on":
            continue
        s = max(seg.start, start)
        e = min(seg.end, end)
        if e > s:
            on_seconds += (e - s).total_seconds()
            count += 1
    pct = int(round(on_seconds * 100.0 / total)) if total > 0 else 0
    return DeviceStats(history.device_id, history.name, count, on_seconds, pct)


def render_stats_table(histories: list[DeviceHistory], start: datetime, end: datetime) -> str:
    rows = [
        "<table style='width:100%;border-collapse:collapse;font-size:11px;'>",
        "<tr style='font-weight:bold;border-bottom:1px solid #555;'>"
        "<td>Device</td><td>On segments</td><td>Total on time</td><td>% of period on</td></tr>",
    ]
    for h in histories:
        st = device_stats(h, start, end)
        rows.append(
            "<tr style='border-bottom:1px solid #333;'>"
            f"<td>{h.label_html}</td><td>{st.on_segments}</td>"
            f"<td>{format_duration(st.on_seconds)}</td><td>{st.percent_on}%</td></tr>"
        )
    rows.append("</table>")
    return "".join(rows)


_TIMELINE_STYLE = """
<style>
.timeline-container { font-size:11px; line-height:1.2; }
.timeline-row { display:flex; align-items:center; margin:4px 0; }
.timeline-label { width:150px; padding-right:8px; text-align:right; white-space:nowrap; }
.timeline-bar { position:relative; flex:1; height:16px; background:#222; border-radius:8px; overflow:hidden; }
.timeline-seg-on { position:absolute; top:0; bottom:0; background:#4caf50; }
.timeline-axis { margin-left:150px; font-size:10px; display:flex; justify-content:space-between; margin-bottom:4px; }
</style>
"""


def render_timeline(histories: list[DeviceHistory], start: datetime, end: datetime, tz: tzinfo) -> str:
    total = (end - start).total_seconds()
    if not histories or total <= 0:
        return "No data for this period."
    mid = start + (end - start) / 2

    def short(d: datetime) -> str:
        return d.astimezone(tz).strftime("%H:%M")

    out = [_TIMELINE_STYLE, '<div class="timeline-container">', '<div class="timeline-axis">',
           f"<span>{short(start)}</span><span>{short(mid)}</span><span>{short(end)}</span>", "</div>"]
    for h in histories:
        out.append(f'<div class="timeline-row"><div class="timeline-label">{h.label_html}</div>')
        out.append('<div class="timeline-bar">')
        for seg in h.segments:
            s = max(seg.start, start)
            e = min(seg.end, end)
            if e <= s or seg.state != "on":
                continue
            left = (s - start).total_seconds() * 100.0 / total
            width = (e - s).total_seconds() * 100.0 / total
            out.append(f'<div class="timeline-seg-on" style="left:{left:.3f}%;width:{width:.3f}%;"></div>')
        out.append("</div></div>")
    out.append("</div>")
    return "".join(out)


@dataclass(frozen=True)
class AnalyzerConfig:
    app_id: str
    label: str = "Vacation Lighting Analyzer"
    devices: tuple[str, ...] = ()


@dataclass
class AnalysisResult:
    start: datetime
    end: datetime
    over_24h: bool
    devices: list[DeviceHistory]
    stats: list[DeviceStats]
    stats_html: str
    timeline_html: str

    @property
    def duration_text(self) -> str:
        return format_duration((self.end - self.start).total_seconds())


class HistoryAnalyzer:
    """Rebuilds on/off timelines for tracked lights from the recorded event history."""

    def __init__(self, config: AnalyzerConfig, hub, tz: tzinfo) -> None:
        self.config = config
        self._hub = hub
        self._tz = tz

    async def history(self, device_id: str, start: datetime, end: datetime) -> DeviceHistory:
        dev = self._hub.get(device_id)
        name = dev.display_name if dev is not None else device_id
        if end <= start:
            return DeviceHistory(device_id, name)
        events = await self._hub.events_between(device_id, start - HISTORY_LOOKBACK, end, MAX_EVENTS)
        return DeviceHistory(
            device_id=device_id,
            name=name,
            segments=build_segments(events, start, end),
            truncated=len(events) >= MAX_EVENTS,
        )

    async def analyze(
        self,
        start: datetime,
        end: datetime,
        devices: Optional[Iterable[str]] = None,
    ) -> AnalysisResult:
        if end < start:
            raise ValueError("End time must be after start time.")
        ids = list(devices) if devices is not None else list(self.config.devices)
        histories = [await self.history(d, start, end) for d in ids]
        return AnalysisResult(
            start=start,
            end=end,
            over_24h=(end - start) > RANGE_WARNING,
            devices=histories,
            stats=[device_stats(h, start, end) for h in histories],
            stats_html=render_stats_table(histories, start, end),
            timeline_html=render_timeline(histories, start, end, self._tz),
        )


def parse_range(
    start: Union[str, datetime],
    end: Union[str, datetime],
    tz: tzinfo,
) -> tuple[datetime, datetime]:
    """Accept datetimes or ``"YYYY-MM-DD HH:MM"`` strings; naive values are local."""
    out = []
    for value in (start, end):
        if isinstance(value, datetime):
            out.append(value if value.tzinfo else value.replace(tzinfo=tz))
            continue
        day, _, clock = value.strip().partition(" ")
        parsed = combine_date_and_time(day, clock, tz)
        if parsed is None:
            raise ValueError("Unable to parse the selected dates/times.")
        out.append(parsed)
    return out[0], out[1]
