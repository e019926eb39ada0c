"""
Custom Type Definitions
-----------------------

Centralized data containers shared by the depth-of-market analyzer, the
book sources feeding it and the persistence layer.

- BookSide / BookLevel / BookSnapshot: one instant of visible book levels.
- SymbolInfo: resolved metadata for an instrument.
- AnalyzerState: what the analyzer carries between snapshots.
- AnalysisResult: the output record, overwritten on every successful run.
"""
from __future__ import annotations
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

# A simple type alias for an instrument identifier (e.g., "BTCUSD").
Symbol = str


class BookSide(str, Enum):
    BID = "bid"
    ASK = "ask"

    @classmethod
    def from_feed_type(cls, feed_type: str) -> "BookSide":
        """Collapse raw feed order types onto the two book sides.

        Feeds may report e.g. "buy", "BOOK_TYPE_BUY_MARKET", "sell_limit";
        anything starting with buy/bid is a bid, sell/ask is an ask.
        """
        t = str(feed_type).strip().lower().removeprefix("book_type_")
        if t.startswith(("buy", "bid")):
            return cls.BID
        if t.startswith(("sell", "ask")):
            return cls.ASK
        raise ValueError(f"Unknown book level type: {feed_type!r}")


@dataclass(slots=True)
class BookLevel:
    side: BookSide
    volume: float
    price: Optional[float] = None  # informational only


@dataclass
class BookSnapshot:
    """Visible levels for one instrument at one instant."""
    symbol: Symbol
    levels: Tuple[BookLevel, ...] = ()
    ts: Optional[float] = None

    @classmethod
    def from_sides(
        cls,
        symbol: Symbol,
        bids: Sequence[Tuple[float, float]],
        asks: Sequence[Tuple[float, float]],
        ts: Optional[float] = None,
    ) -> "BookSnapshot":
        """Build a snapshot from (price, volume) lists, asks first then bids."""
        levels = [BookLevel(BookSide.ASK, float(q), float(p)) for p, q in asks]
        levels += [BookLevel(BookSide.BID, float(q), float(p)) for p, q in bids]
        return cls(symbol=symbol, levels=tuple(levels), ts=ts)

    def __len__(self) -> int:
        return len(self.levels)

    def __iter__(self):
        return iter(self.levels)


@dataclass(frozen=True)
class SymbolInfo:
    symbol: Symbol
    tick_size: float
    decimal_places: int


@dataclass
class AnalyzerState:
    # previous_price == 0 means no prior observation
    previous_price: float = 0.0
    previous_bid_depth: float = 0.0
    previous_ask_depth: float = 0.0
    cached_average_level_volume: float = 0.0
    cache_timestamp: float = 0.0

    def remember(self, price: float, bid_depth: float, ask_depth: float) -> None:
        self.previous_price = price
        self.previous_bid_depth = bid_depth
        self.previous_ask_depth = ask_depth


@dataclass
class AnalysisResult:
    """
    Depth-of-market analysis output.

    Only `is_dom_available` and `dom_confidence` are touched by a failed
    analysis; every other field keeps the value of the last successful run.
    """
    bid_ask_imbalance: float = 1.0
    order_book_pressure: float = 0.0  # -1 (all asks) .. 1 (all bids)
    total_bid_depth: float = 0.0
    total_ask_depth: float = 0.0
    strong_bid_levels: int = 0
    strong_ask_levels: int = 0
    absorption_score: float = 50.0  # 0 bearish .. 50 neutral .. 100 bullish
    is_dom_available: bool = False
    dom_confidence: float = 0.0

    def reset(self) -> None:
        defaults = AnalysisResult()
        for name, value in asdict(defaults).items():
            setattr(self, name, value)

    def to_record(self) -> Dict[str, Any]:
        return asdict(self)
