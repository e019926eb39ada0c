"""Depth-of-market metric calculations (pure functions).

The module provides testable helpers for:
 - Single-pass aggregation of a flat level list (depth per side, strong levels)
 - Bid/ask imbalance ratio and normalized order-book pressure
 - Data-quality confidence
 - Absorption scoring against the previous observation

None of these functions raise on degenerate input: ratios with a zero
denominator resolve to a fixed sentinel instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from dom_signals.core.custom_types import AnalyzerState, BookLevel, BookSide

NEUTRAL_IMBALANCE = 1.0
MAX_IMBALANCE = 100.0
NEUTRAL_ABSORPTION = 50.0
BULLISH_BASE = 70.0
BEARISH_BASE = 30.0
ABSORPTION_SPAN = 30.0


@dataclass
class BookAggregate:
    bid_volume: float = 0.0
    ask_volume: float = 0.0
    strong_bid_levels: int = 0
    strong_ask_levels: int = 0
    level_count: int = 0

    @property
    def total_volume(self) -> float:
        return self.bid_volume + self.ask_volume


def aggregate_levels(
    levels: Iterable[BookLevel],
    average_level_volume: float,
    strong_multiplier: float = 2.0,
) -> BookAggregate:
    """Sum volume per side and count strong levels in one traversal.

    A level is strong when its volume exceeds `strong_multiplier` times the
    average level volume.
    """
    agg = BookAggregate()
    strong_cutoff = average_level_volume * strong_multiplier
    for level in levels:
        agg.level_count += 1
        strong = level.volume > strong_cutoff
        if level.side is BookSide.BID:
            agg.bid_volume += level.volume
            if strong:
                agg.strong_bid_levels += 1
        else:
            agg.ask_volume += level.volume
            if strong:
                agg.strong_ask_levels += 1
    return agg


def average_level_volume(levels: Sequence[BookLevel]) -> Optional[float]:
    """Mean volume per level, or None for an empty level list."""
    if not levels:
        return None
    return sum(level.volume for level in levels) / len(levels)


def compute_imbalance(bid_volume: float, ask_volume: float) -> float:
    """Bid/ask volume ratio.

    Unbounded above. 100.0 when only bids are present, 1.0 when the book is
    empty on both sides.
    """
    if ask_volume > 0:
        return bid_volume / ask_volume
    if bid_volume > 0:
        return MAX_IMBALANCE
    return NEUTRAL_IMBALANCE


def compute_pressure(bid_volume: float, ask_volume: float) -> float:
    """(bid - ask) / (bid + ask), bounded to [-1, 1]; 0.0 for an empty book."""
    total = bid_volume + ask_volume
    if total <= 0:
        return 0.0
    return (bid_volume - ask_volume) / total


def compute_confidence(
    level_count: int,
    total_volume: float,
    min_volume: float,
    per_level: float = 5.0,
    cap: float = 100.0,
    thin_penalty: float = 0.5,
) -> float:
    """Deeper books score higher; books thinner than `min_volume` are penalized."""
    confidence = min(cap, level_count * per_level)
    if total_volume < min_volume:
        confidence *= thin_penalty
    return confidence


def compute_absorption(
    state: AnalyzerState,
    price: float,
    bid_depth: float,
    ask_depth: float,
) -> float:
    """Score whether the latest price move was absorbed by resting liquidity.

    70..100 when price rose while ask depth was consumed (bullish), 0..30
    when price fell while bid depth was consumed (bearish), 50 otherwise.
    The first observation (state.previous_price == 0) only seeds the state.

    `state` is updated with the current price and depths on every call.
    """
    if state.previous_price == 0:
        state.remember(price, bid_depth, ask_depth)
        return NEUTRAL_ABSORPTION

    price_change = price - state.previous_price
    bid_change = bid_depth - state.previous_bid_depth
    ask_change = ask_depth - state.previous_ask_depth

    score = NEUTRAL_ABSORPTION
    if price_change > 0 and ask_change < 0 and ask_depth > 0:
        score = BULLISH_BASE + min(ABSORPTION_SPAN, abs(ask_change) / ask_depth * 100.0)
    elif price_change < 0 and bid_change < 0 and bid_depth > 0:
        score = BEARISH_BASE - min(ABSORPTION_SPAN, abs(bid_change) / bid_depth * 100.0)

    state.remember(price, bid_depth, ask_depth)
    return score
