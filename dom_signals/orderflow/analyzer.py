"""Depth-of-market analyzer for a single instrument.

`OrderFlowAnalyzer` turns a flat snapshot of visible book levels into
imbalance, pressure, confidence and absorption signals. It is driven from a
single evaluation loop, one `analyze()` call per tick/timer:

    analyzer = OrderFlowAnalyzer(source)
    with analyzer.subscribed("BTCUSD") as ok:
        while ok and running:
            if analyzer.analyze():
                use(analyzer.result)

The instance is not thread-safe; state and result are mutated in place.
"""

from __future__ import annotations

import dataclasses
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from loguru import logger

from dom_signals.core.config import Settings
from dom_signals.core.custom_types import AnalysisResult, AnalyzerState, SymbolInfo
from dom_signals.core.market_meta import min_volume_threshold
from dom_signals.orderflow import metrics
from dom_signals.orderflow.book_source import BookSource

AVERAGE_VOLUME_FLOOR = 1.0


class OrderFlowAnalyzer:
    """Stateful order-book analyzer bound to one instrument at a time.

    Lifecycle: `init()` resolves the symbol and subscribes to book updates,
    `deinit()` releases the subscription (idempotent). `analyze()` only
    works in between; otherwise it returns False without side effects.
    """

    def __init__(
        self,
        source: BookSource,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.source = source
        self.settings = settings or Settings()
        self._cfg = self.settings.analyzer
        self._clock = clock

        self._symbol: Optional[str] = None
        self._symbol_info: Optional[SymbolInfo] = None
        self._initialized = False
        self._subscribed = False
        self._logging_enabled = True
        self._log = logger

        self._current_price = 0.0
        self._state = AnalyzerState()
        self._result = AnalysisResult()

    # --- lifecycle ---

    def init(self, symbol: str, logging_enabled: bool = True) -> bool:
        """Bind to `symbol` and subscribe to its book. Returns False on failure."""
        self.deinit()
        if symbol != self._symbol:
            self._state = AnalyzerState()
            self._result = AnalysisResult()
            self._current_price = 0.0
        self._symbol = symbol
        self._logging_enabled = logging_enabled
        self._log = logger.bind(symbol=symbol)

        self._symbol_info = self.source.get_symbol_info(symbol)
        if self._symbol_info is None:
            self._error(f"Failed to resolve symbol metadata for {symbol}")
            return False

        if not self.is_available():
            self._error(f"Depth of market is not available for {symbol}")
            return False

        if not self.source.subscribe(symbol):
            self._error(f"Failed to subscribe to book updates for {symbol}")
            return False

        self._subscribed = True
        self._initialized = True
        return True

    def deinit(self) -> None:
        if self._subscribed and self._symbol is not None:
            self.source.unsubscribe(self._symbol)
            self._debug(f"Released book subscription for {self._symbol}")
        self._subscribed = False
        self._initialized = False

    @contextmanager
    def subscribed(self, symbol: str, logging_enabled: bool = True) -> Iterator[bool]:
        """Init for the duration of a block; the subscription is always released."""
        ok = self.init(symbol, logging_enabled)
        try:
            yield ok
        finally:
            self.deinit()

    def __enter__(self) -> "OrderFlowAnalyzer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.deinit()

    def __del__(self):
        if getattr(self, "_subscribed", False):
            self.deinit()

    # --- queries ---

    @property
    def symbol(self) -> Optional[str]:
        return self._symbol

    @property
    def symbol_info(self) -> Optional[SymbolInfo]:
        return self._symbol_info

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def current_price(self) -> float:
        return self._current_price

    @property
    def result(self) -> AnalysisResult:
        """Copy of the latest result record."""
        return dataclasses.replace(self._result)

    @property
    def state(self) -> AnalyzerState:
        return dataclasses.replace(self._state)

    def is_available(self, symbol: Optional[str] = None) -> bool:
        """True if the source exposes a (possibly empty) book for the symbol."""
        symbol = symbol or self._symbol
        if not symbol:
            return False
        return self.source.get_snapshot(symbol) is not None

    def min_volume_threshold(self) -> float:
        return min_volume_threshold(self._symbol or "", self.settings)

    def average_level_volume(self) -> float:
        """Mean volume per level, refreshed from a fresh snapshot when the cache expires."""
        now = self._clock()
        st = self._state
        if st.cache_timestamp == 0 or now - st.cache_timestamp > self._cfg.average_cache_ttl_sec:
            snapshot = self.source.get_snapshot(self._symbol) if self._symbol else None
            average = metrics.average_level_volume(snapshot.levels) if snapshot is not None else None
            if average is not None and average > 0:
                st.cached_average_level_volume = average
                st.cache_timestamp = now
                self._debug(f"Average level volume refreshed: {average:.4f}")
        if st.cached_average_level_volume > 0:
            return st.cached_average_level_volume
        return AVERAGE_VOLUME_FLOOR

    # --- analysis ---

    def analyze(self) -> bool:
        """Recompute the result from a fresh snapshot.

        On an unavailable or too-shallow book only `is_dom_available` and
        `dom_confidence` are updated; the other fields keep their last
        successful values.
        """
        if not self._initialized:
            return False

        self._refresh_price()

        snapshot = self.source.get_snapshot(self._symbol)
        if snapshot is None or len(snapshot) == 0:
            self._result.is_dom_available = False
            self._result.dom_confidence = 0.0
            return False

        if len(snapshot) < self._cfg.min_levels:
            self._result.dom_confidence = self._cfg.thin_book_confidence
            self._warning(f"Insufficient DOM depth: {len(snapshot)} levels")
            return False

        res = self._result
        res.reset()
        res.is_dom_available = True

        agg = metrics.aggregate_levels(
            snapshot.levels,
            self.average_level_volume(),
            self._cfg.strong_level_multiplier,
        )
        res.total_bid_depth = agg.bid_volume
        res.total_ask_depth = agg.ask_volume
        res.strong_bid_levels = agg.strong_bid_levels
        res.strong_ask_levels = agg.strong_ask_levels
        res.bid_ask_imbalance = metrics.compute_imbalance(agg.bid_volume, agg.ask_volume)
        res.order_book_pressure = metrics.compute_pressure(agg.bid_volume, agg.ask_volume)
        res.dom_confidence = metrics.compute_confidence(
            agg.level_count,
            agg.total_volume,
            self.min_volume_threshold(),
            per_level=self._cfg.confidence_per_level,
            cap=self._cfg.max_confidence,
            thin_penalty=self._cfg.thin_volume_penalty,
        )
        res.absorption_score = metrics.compute_absorption(
            self._state, self._current_price, agg.bid_volume, agg.ask_volume
        )
        return True

    def _refresh_price(self) -> None:
        price = self.source.get_current_price(self._symbol)
        if price is not None:
            self._current_price = float(price)

    # --- logging ---

    def _error(self, msg: str) -> None:
        if self._logging_enabled:
            self._log.error(msg)

    def _warning(self, msg: str) -> None:
        if self._logging_enabled:
            self._log.warning(msg)

    def _debug(self, msg: str) -> None:
        if self._logging_enabled:
            self._log.debug(msg)


__all__ = ["OrderFlowAnalyzer"]
