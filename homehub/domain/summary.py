from __future__ import annotations
from datetime import datetime
from typing import Optional, Sequence


def build_summary_message(
    kind: str,
    cycles: int,
    lights_on: int,
    lights_off: int,
    on_names: Optional[Sequence[str]] = None,
    off_names: Optional[Sequence[str]] = None,
) -> str:
    """Notification text for the daily summary (kind="daily") or a test cycle (kind="test")."""
    on_names = list(on_names or [])
    off_names = list(off_names or [])

    if kind == "test":
        if cycles == 0 and lights_on == 0 and lights_off == 0 and not on_names and not off_names:
            return (
                "🧪 Vacation Lighting Test Complete:\n"
                "• No cycles or light actions were recorded\n"
                "(Check your configuration.)"
            )
        msg = (
            "🧪 Vacation Lighting Test Complete:\n"
            f"• 🟢 {cycles} cycle(s) simulated\n"
            f"• 💡 {lights_on} light(s) turned on\n"
            "• 💤 Light offs will occur automatically as their random durations expire\n"
        )
        msg += _name_lines(on_names, off_names)
        return msg + "\n🔁 This mirrors real vacation-mode behavior."

    if cycles == 0 and not on_names and not off_names:
        return (
            "📊 Vacation Lighting Daily Summary:\n"
            "• No cycles ran in the last 24 hours\n"
            "• Likely outside the time window, not armed, or not triggered"
        )
    msg = (
        "📊 Vacation Lighting Daily Summary:\n"
        f"• 🟢 {cycles} cycle(s) simulated\n"
        f"• 💡 {lights_on} light(s) turned on\n"
        f"• 💤 {lights_off} light(s) turned off\n"
    )
    msg += _name_lines(on_names, off_names)
    return msg + (
        "• 🔁 Additional light offs may still occur (queued)\n\n"
        "🏠 Summary covers the last 24 hours of vacation-mode behavior."
    )


def _name_lines(on_names: list[str], off_names: list[str]) -> str:
    out = ""
    if on_names:
        out += f"• 💡 Lights turned on: {', '.join(on_names)}\n"
    if off_names:
        out += f"• 💤 Lights turned off: {', '.join(off_names)}\n"
    return out


def next_cycle_status(next_at: Optional[datetime], now: datetime) -> str:
    if next_at is None:
        return "not scheduled."
    diff = (next_at - now).total_seconds()
    if diff <= 0:
        return "any moment."
    mins = round(diff / 60.0)
    if mins <= 1:
        return "~1 minute."
    return f"~{mins} minutes."


def active_lights_warning(requested: Optional[int], available: int) -> str:
    if not available or requested is None:
        return ""
    if requested > available:
        return (
            f"Note: Active lights per cycle ({requested}) exceeds configured lights ({available}); "
            f"app will clamp to {available}."
        )
    if requested < 1:
        return "Warning: Active lights per cycle must be at least 1."
    return ""


def format_duration(seconds: Optional[float]) -> str:
    if seconds is None:
        return "-"
    total = int(seconds)
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    if h > 0:
        return f"{h}h {m}m"
    if m > 0:
        return f"{m}m {s}s"
    return f"{s}s"
