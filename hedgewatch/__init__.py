"""
HedgeWatch — Round monitor for a hedged YES/NO merge strategy.

Reads the strategy's trading-event log and reconstructs, per round, which
purchases each merge consumed.
"""

from hedgewatch.models import (
    AnnotatedBuy,
    AnnotatedMerge,
    RoundEndSnapshot,
    RoundError,
    RoundInfo,
    RoundSummary,
    TradeEvent,
    parse_event,
)
from hedgewatch.pairing import MERGE_EPSILON, reconstruct
from hedgewatch.rounds import group_rounds, round_prefix
from hedgewatch.store import (
    BaseEventStore,
    InMemoryEventStore,
    create_event_store,
    get_event_store,
)
from hedgewatch.version import VERSION

__all__ = [
    # Reconstruction
    "reconstruct",
    "MERGE_EPSILON",
    "parse_event",
    "TradeEvent",
    "AnnotatedBuy",
    "AnnotatedMerge",
    "RoundEndSnapshot",
    "RoundError",
    "RoundSummary",
    # Round listing
    "RoundInfo",
    "group_rounds",
    "round_prefix",
    # Event store
    "BaseEventStore",
    "InMemoryEventStore",
    "create_event_store",
    "get_event_store",
    "VERSION",
]
