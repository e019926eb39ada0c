"""Evaluation loop wiring a book source -> analyzer -> writer.

Provides:
 - SimulatedBookSource: deterministic random-walk book for demos and tests
 - AnalyzerService: calls `analyze()` once per cycle and persists a record
"""

from __future__ import annotations

import random
import time
from typing import Optional, Set

from loguru import logger

from dom_signals.core.config import Settings
from dom_signals.core.custom_types import BookLevel, BookSide, BookSnapshot, SymbolInfo
from dom_signals.core.market_meta import get_symbol_info, get_tick_size, round_to_tick
from dom_signals.orderflow.analyzer import OrderFlowAnalyzer
from dom_signals.orderflow.persistence import AnalysisWriter


class SimulatedBookSource:
    """Generate a deterministic book for a single symbol.

    Every price refresh moves the mid price by a random number of ticks and
    rebuilds the book around it; snapshots between refreshes are identical.
    """

    def __init__(self, symbol: str = "BTCUSD", base_price: float = 100.0, levels_per_side: int = 5,
                 mean_volume: float = 50.0, seed: Optional[int] = None,
                 settings: Optional[Settings] = None):
        self.symbol = symbol
        self.settings = settings
        self.tick = get_tick_size(symbol, settings)
        self.mid = base_price
        self.levels_per_side = levels_per_side
        self.mean_volume = mean_volume
        self._rng = random.Random(seed)
        self._book: Optional[BookSnapshot] = None
        self.subscriptions: Set[str] = set()

    def step(self) -> BookSnapshot:
        self.mid = round_to_tick(self.mid + self._rng.randint(-3, 3) * self.tick, self.tick)
        levels = []
        for i in range(self.levels_per_side):
            ask_px = round_to_tick(self.mid + (i + 1) * self.tick, self.tick)
            levels.append(BookLevel(BookSide.ASK, self._volume(), ask_px))
        for i in range(self.levels_per_side):
            bid_px = round_to_tick(self.mid - i * self.tick, self.tick)
            levels.append(BookLevel(BookSide.BID, self._volume(), bid_px))
        self._book = BookSnapshot(symbol=self.symbol, levels=tuple(levels), ts=time.time())
        return self._book

    def _volume(self) -> float:
        return float(round(self._rng.expovariate(1 / self.mean_volume), 3))

    # --- BookSource ---

    def get_snapshot(self, symbol: str) -> Optional[BookSnapshot]:
        if symbol != self.symbol:
            return None
        if self._book is None:
            self.step()
        return self._book

    def subscribe(self, symbol: str) -> bool:
        if symbol != self.symbol:
            return False
        self.subscriptions.add(symbol)
        return True

    def unsubscribe(self, symbol: str) -> None:
        self.subscriptions.discard(symbol)

    def get_current_price(self, symbol: str) -> Optional[float]:
        if symbol != self.symbol:
            return None
        self.step()
        return self.mid  # best bid

    def get_symbol_info(self, symbol: str) -> Optional[SymbolInfo]:
        if symbol != self.symbol:
            return None
        return get_symbol_info(symbol, self.settings)


class AnalyzerService:
    """Service that drives an initialized analyzer and persists each cycle.

    Usage:
      svc = AnalyzerService(analyzer, writer, interval_s=1.0)
      svc.run_loop(duration_s=10)

    For tests use `run_once()` which executes a single analyze+persist cycle.
    """

    def __init__(self, analyzer: OrderFlowAnalyzer, writer: AnalysisWriter, interval_s: float = 1.0) -> None:
        self.analyzer = analyzer
        self.writer = writer
        self.interval_s = interval_s
        self._running = False

    def run_once(self, ts: Optional[float] = None) -> dict:
        """Run a single analyze -> persist cycle and return the record."""
        ts = ts or time.time()
        ok = self.analyzer.analyze()
        result = self.analyzer.result
        record = {
            "ts": int(ts),
            "symbol": self.analyzer.symbol,
            "ok": ok,
            "price": self.analyzer.current_price,
            **result.to_record(),
            "components": {"min_volume_threshold": self.analyzer.min_volume_threshold()},
        }
        self.writer.write_record(record)
        return record

    def run_loop(self, duration_s: float = 10.0) -> int:
        """Run the analyze/persist loop for duration_s seconds (blocking).

        Returns the number of cycles executed.
        """
        self._running = True
        cycles = 0
        end = time.time() + duration_s
        while self._running and time.time() < end:
            rec = self.run_once()
            cycles += 1
            logger.info(
                f"{rec['symbol']} ok={rec['ok']} imb={rec['bid_ask_imbalance']:.3f} "
                f"pressure={rec['order_book_pressure']:+.3f} conf={rec['dom_confidence']:.0f} "
                f"absorption={rec['absorption_score']:.1f}"
            )
            time.sleep(self.interval_s)
        self._running = False
        return cycles

    def stop(self) -> None:
        self._running = False


__all__ = ["SimulatedBookSource", "AnalyzerService"]
