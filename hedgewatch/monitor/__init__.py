"""Terminal views: ANSI round renderer and the live round monitor."""

from hedgewatch.monitor.live import LiveRoundMonitor
from hedgewatch.monitor.renderer import render_round, render_round_list

__all__ = ["LiveRoundMonitor", "render_round", "render_round_list"]
