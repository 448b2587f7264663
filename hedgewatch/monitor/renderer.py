"""
ANSI terminal renderer for reconstructed rounds.

All visual/display logic lives here — zero domain logic.
Called by the CLI (``show``, ``replay``, ``rounds``) and by
LiveRoundMonitor on every refresh.
"""

from __future__ import annotations

import re
from datetime import datetime

from hedgewatch.models import AnnotatedBuy, Outcome, RoundInfo, RoundSummary
from hedgewatch.pairing import YES_SIDES

# ── ANSI Colors & Styles ────────────────────────────────────────────
RST = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"

# Foreground
RED = "\033[91m"
GRN = "\033[92m"
YEL = "\033[93m"
BLU = "\033[94m"
MAG = "\033[95m"
CYN = "\033[96m"
WHT = "\033[97m"

# Double line
DH = "═"
DV = "║"
DTL = "╔"
DTR = "╗"
DBL = "╚"
DBR = "╝"

# Merge groups cycle through these so neighbouring groups stand apart
GROUP_COLORS = (CYN, MAG, YEL, BLU, GRN)

_ANSI_RE = re.compile(r"\033\[[0-9;]*m")


# ── Formatting Helpers ──────────────────────────────────────────────


def c(text: str, color: str, bold: bool = False) -> str:
    b = BOLD if bold else ""
    return f"{b}{color}{text}{RST}"


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", str(text))


def pad(text: str, width: int, align: str = "left") -> str:
    """Pad text to width, stripping ANSI for length calc."""
    diff = width - len(strip_ansi(text))
    if diff <= 0:
        return str(text)
    if align == "right":
        return " " * diff + str(text)
    elif align == "center":
        left = diff // 2
        right = diff - left
        return " " * left + str(text) + " " * right
    return str(text) + " " * diff


def num(value: float | None, fmt: str = ".2f") -> str:
    """Format an optional figure; missing values render as a dim dash."""
    if value is None:
        return c("—", DIM)
    return f"{value:{fmt}}"


def pnl_str(val: float | None) -> str:
    """Colored PnL string."""
    if val is None:
        return c("—", DIM)
    if val > 0:
        return c(f"+${val:.2f}", GRN, bold=True)
    elif val < 0:
        return c(f"-${abs(val):.2f}", RED, bold=True)
    return c("$0.00", DIM)


def side_str(side: str | None) -> str:
    """Colored side tag: YES/UP green, everything else red."""
    if side is None:
        return c("?", DIM)
    if side in YES_SIDES:
        return c(f"▲ {side}", GRN, bold=True)
    return c(f"▼ {side}", RED, bold=True)


def clock(ts: str | None) -> str:
    """HH:MM:SS part of an ISO-8601 timestamp."""
    if not ts:
        return "--:--:--"
    try:
        return datetime.fromisoformat(ts.replace("Z", "+00:00")).strftime("%H:%M:%S")
    except ValueError:
        return ts[:19]


OUTCOME_COLORS = {
    Outcome.PROFIT_LOCKED.value: GRN,
    Outcome.MERGED_OUT.value: GRN,
    Outcome.PARTIAL.value: YEL,
    Outcome.UNHEDGED.value: RED,
    Outcome.EMPTY.value: DIM,
}


def outcome_str(outcome: str | None) -> str:
    """Colored round outcome; unrecognised tags render yellow."""
    if not outcome:
        return c("?", DIM)
    return c(outcome, OUTCOME_COLORS.get(outcome, YEL), bold=True)


def group_tag(group_ids: list[int]) -> str:
    if not group_ids:
        return c("—", DIM)
    return " ".join(
        c(f"M{gid}", GROUP_COLORS[(gid - 1) % len(GROUP_COLORS)], bold=True)
        for gid in group_ids
    )


def _buy_status(buy: AnnotatedBuy) -> str:
    if buy.merged:
        return c("merged", GRN)
    if buy.consumed_size > 0:
        return c("partial", YEL)
    return c("open", DIM)


# ── Round View ───────────────────────────────────────────────────────


def render_round(summary: RoundSummary, width: int = 96) -> str:
    """Render one reconstructed round as a multi-section ANSI block."""
    lines: list[str] = []

    def L(s: str = "") -> None:
        lines.append(s)

    def sec(icon: str, title: str) -> None:
        bar = "─" * max(0, width - 6 - len(title))
        L(f"  {c('├' + f' {icon} {title} ' + bar + '┤', CYN)}")

    # 1. Header
    title = summary.market or "(no round)"
    mode = summary.mode or "—"
    L()
    L(f"  {c(DTL + DH * (width - 2) + DTR, CYN, bold=True)}")
    L(
        f"  {c(DV, CYN, bold=True)} {c(title, WHT, bold=True)}  "
        f"{c(f'[{mode}]', DIM)}  {c('start ' + clock(summary.round_start), DIM)}"
    )
    L(
        f"  {c(DV, CYN, bold=True)} "
        f"Buys {c(str(summary.total_buys), WHT, bold=True)}  "
        f"Merges {c(str(summary.total_merges), WHT, bold=True)}  "
        f"Profit {pnl_str(summary.total_profit)}  "
        f"{c('│', DIM)}  "
        f"Unmerged YES {c(f'{summary.unmerged_yes:.2f}', GRN)}  "
        f"NO {c(f'{summary.unmerged_no:.2f}', RED)}"
    )
    L(f"  {c(DBL + DH * (width - 2) + DBR, CYN, bold=True)}")

    # 2. Buys
    L()
    sec("🛒", "BUYS")
    if not summary.buys:
        L(f"    {c('no purchases', DIM)}")
    else:
        L(
            "    "
            + c(
                pad("time", 10)
                + pad("side", 9)
                + pad("price", 8, "right")
                + pad("size", 10, "right")
                + pad("used", 10, "right")
                + "  "
                + pad("status", 9)
                + pad("groups", 14)
                + "reason",
                DIM,
            )
        )
        for buy in summary.buys:
            L(
                "    "
                + pad(clock(buy.ts), 10)
                + pad(side_str(buy.side), 9)
                + pad(num(buy.price, ".3f"), 8, "right")
                + pad(num(buy.size), 10, "right")
                + pad(f"{buy.consumed_size:.2f}", 10, "right")
                + "  "
                + pad(_buy_status(buy), 9)
                + pad(group_tag(buy.merge_group_ids), 14)
                + c(buy.reason, DIM)
            )

    # 3. Merges
    L()
    sec("🔗", "MERGES")
    if not summary.merges:
        L(f"    {c('no merges', DIM)}")
    for merge in summary.merges:
        tx = merge.tx_hash[:12] + "…" if merge.tx_hash else c("simulated", DIM)
        L(
            f"    {group_tag([merge.merge_group_id])}  {clock(merge.ts)}  "
            f"pairs {c(num(merge.pairs), WHT, bold=True)}  "
            f"pair cost {num(merge.pair_cost, '.4f')}  "
            f"profit {pnl_str(merge.profit)}  "
            f"{c('│', DIM)} {len(merge.consumed_buy_ids)} buys  {tx}"
        )

    # 4. Errors
    if summary.errors:
        L()
        sec("⚠️", "ERRORS")
        for err in summary.errors:
            message = "(no message)" if err.message is None else str(err.message)
            L(f"    {clock(err.ts)}  {c(message, RED)}")

    # 5. Round end
    if summary.round_end is not None:
        end = summary.round_end
        L()
        sec("🏁", "ROUND END")
        L(
            f"    {clock(end.ts)}  outcome {outcome_str(end.outcome)}  "
            f"PnL {pnl_str(end.pnl)}  "
            f"hedged {num(end.hedged_qty)}  "
            f"UP {num(end.up_qty)} @ {num(end.up_avg, '.3f')}  "
            f"DN {num(end.dn_qty)} @ {num(end.dn_avg, '.3f')}  "
            f"cost {num(end.total_cost)}"
        )

    return "\n".join(lines)


# ── Round Listing ────────────────────────────────────────────────────


def render_round_list(groups: dict[str, list[RoundInfo]]) -> str:
    """Render the grouped round listing."""
    if not groups:
        return c("  no rounds recorded", DIM)

    lines: list[str] = []
    for prefix, rounds in groups.items():
        lines.append("")
        lines.append(f"  {c(prefix, CYN, bold=True)} {c(f'({len(rounds)})', DIM)}")
        for info in rounds:
            modes = ",".join(info.modes) or "—"
            lines.append(
                f"    {pad(info.slug, 52)} "
                f"{pad(str(info.event_count), 6, 'right')} events  "
                f"{c(info.latest_ts or '—', DIM)}  {c(modes, DIM)}"
            )
    return "\n".join(lines)
