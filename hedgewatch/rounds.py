"""
Round listing — groups round identifiers into recurring series.

Rounds of the same series share a slug prefix and differ by an embedded
date/time token, e.g.::

    ethereum-up-or-down-february-19-2am-et  →  ethereum-up-or-down
    ethereum-up-or-down-february-19-3am-et  →  ethereum-up-or-down

The prefix is everything before ``-<month name>-``. Slugs without a month
token form a group of their own.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Iterable

from hedgewatch.models import RoundInfo

__all__ = ["round_prefix", "group_rounds"]

_MONTHS = (
    "january|february|march|april|may|june|july|"
    "august|september|october|november|december"
)
_PREFIX_RE = re.compile(rf"^(.+?)-(?:{_MONTHS})-", re.IGNORECASE)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def round_prefix(slug: str) -> str:
    """Return the series prefix of a round slug."""
    match = _PREFIX_RE.match(slug)
    return match.group(1) if match else slug


def _ts_key(ts: str | None) -> datetime:
    """Sortable instant for an ISO-8601 timestamp; unparseable sorts oldest."""
    if not ts:
        return _EPOCH
    try:
        parsed = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def group_rounds(rounds: Iterable[RoundInfo]) -> dict[str, list[RoundInfo]]:
    """Group rounds by series prefix, most recent activity first.

    Rounds inside a group are sorted by ``latest_ts`` descending, and the
    groups themselves are ordered by their most recent round.
    """
    groups: dict[str, list[RoundInfo]] = {}
    for info in rounds:
        groups.setdefault(round_prefix(info.slug), []).append(info)

    for members in groups.values():
        members.sort(key=lambda r: _ts_key(r.latest_ts), reverse=True)

    ordered = sorted(
        groups.items(), key=lambda item: _ts_key(item[1][0].latest_ts), reverse=True
    )
    return dict(ordered)
