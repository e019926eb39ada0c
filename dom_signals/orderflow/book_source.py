"""Book source protocol + an in-memory implementation.

A book source is whatever market-data feed hands the analyzer its level
snapshots and reference price. Calls are synchronous and expected to be
cheap (in-process snapshot, not a network round trip).
"""
from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, Optional, Protocol, Sequence, Set, Tuple

from dom_signals.core.config import Settings
from dom_signals.core.custom_types import BookLevel, BookSnapshot, SymbolInfo
from dom_signals.core.market_meta import get_symbol_info


class BookSource(Protocol):
    def get_snapshot(self, symbol: str) -> Optional[BookSnapshot]: ...
    def subscribe(self, symbol: str) -> bool: ...
    def unsubscribe(self, symbol: str) -> None: ...
    def get_current_price(self, symbol: str) -> Optional[float]: ...
    def get_symbol_info(self, symbol: str) -> Optional[SymbolInfo]: ...


class InMemoryBookSource:
    """Book source backed by values pushed in by the caller.

    Only registered symbols resolve metadata. A symbol with no snapshot set
    reports its book as unavailable (None); `set_levels([])` publishes an
    empty but valid book.
    """

    def __init__(self, symbols: Iterable[str] = (), settings: Optional[Settings] = None,
                 accept_subscriptions: bool = True):
        self.settings = settings
        self.accept_subscriptions = accept_subscriptions
        self._symbols: Set[str] = set(symbols)
        self._snapshots: Dict[str, BookSnapshot] = {}
        self._prices: Dict[str, float] = {}
        self.subscriptions: Set[str] = set()
        self.snapshot_calls: Counter = Counter()
        self.unsubscribe_calls: Counter = Counter()

    def add_symbol(self, symbol: str) -> None:
        self._symbols.add(symbol)

    def set_levels(self, symbol: str, levels: Sequence[BookLevel], ts: Optional[float] = None) -> None:
        self._snapshots[symbol] = BookSnapshot(symbol=symbol, levels=tuple(levels), ts=ts)

    def set_book(self, symbol: str, bids: Sequence[Tuple[float, float]], asks: Sequence[Tuple[float, float]],
                 ts: Optional[float] = None) -> None:
        self._snapshots[symbol] = BookSnapshot.from_sides(symbol, bids, asks, ts=ts)

    def clear_book(self, symbol: str) -> None:
        self._snapshots.pop(symbol, None)

    def set_price(self, symbol: str, price: Optional[float]) -> None:
        if price is None:
            self._prices.pop(symbol, None)
        else:
            self._prices[symbol] = float(price)

    # --- BookSource ---

    def get_snapshot(self, symbol: str) -> Optional[BookSnapshot]:
        self.snapshot_calls[symbol] += 1
        return self._snapshots.get(symbol)

    def subscribe(self, symbol: str) -> bool:
        if not self.accept_subscriptions or symbol not in self._symbols:
            return False
        self.subscriptions.add(symbol)
        return True

    def unsubscribe(self, symbol: str) -> None:
        self.unsubscribe_calls[symbol] += 1
        self.subscriptions.discard(symbol)

    def get_current_price(self, symbol: str) -> Optional[float]:
        return self._prices.get(symbol)

    def get_symbol_info(self, symbol: str) -> Optional[SymbolInfo]:
        if symbol not in self._symbols:
            return None
        return get_symbol_info(symbol, self.settings)


__all__ = ["BookSource", "InMemoryBookSource"]
