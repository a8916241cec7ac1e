"""Status line rendering for a coordinator snapshot."""

from __future__ import annotations

from datetime import datetime

from rich.text import Text

from nodoze.models import Snapshot

ACTIVE_ICON = "☀"
INACTIVE_ICON = "☾"


def format_remaining(now: datetime, deadline: datetime) -> str:
    """Abbreviated hours and minutes left, e.g. ``1h 5m`` or ``42m``."""
    minutes = max(0, int((deadline - now).total_seconds()) // 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def status_title(snapshot: Snapshot, now: datetime) -> str:
    if not snapshot.is_active:
        return "Inactive"
    if snapshot.deadline is not None:
        return f"Active for: {format_remaining(now, snapshot.deadline)}"
    return "Active"


def status_icon(snapshot: Snapshot) -> str:
    return ACTIVE_ICON if snapshot.is_active else INACTIVE_ICON


def render_status(snapshot: Snapshot, now: datetime) -> Text:
    style = "bold green" if snapshot.is_active else "dim"
    text = Text()
    text.append(f"{status_icon(snapshot)} ", style=style)
    text.append(status_title(snapshot, now), style=style)
    if snapshot.active_since is not None:
        text.append(f"  since {snapshot.active_since:%H:%M}", style="dim")
    smart = "on" if snapshot.smart_enabled else "off"
    text.append(f"  [intelligent mode: {smart}]", style="cyan")
    return text
