"""
Pytest fixtures for the dom_signals test suite.

The analyzer is exercised against an in-memory book source and a manual
clock so that cache expiry can be driven explicitly.
"""
import pytest
from loguru import logger

from dom_signals.core.config import Settings
from dom_signals.orderflow.analyzer import OrderFlowAnalyzer
from dom_signals.orderflow.book_source import InMemoryBookSource


class ManualClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def source(settings) -> InMemoryBookSource:
    src = InMemoryBookSource(symbols=["BTCUSD", "EURUSD", "US30"], settings=settings)
    for sym in ("BTCUSD", "EURUSD", "US30"):
        src.set_book(sym, bids=[(99.99, 100.0), (99.98, 100.0)], asks=[(100.0, 100.0), (100.01, 100.0)])
        src.set_price(sym, 99.99)
    return src


@pytest.fixture
def analyzer(source, settings, clock) -> OrderFlowAnalyzer:
    a = OrderFlowAnalyzer(source, settings, clock=clock)
    yield a
    a.deinit()


@pytest.fixture
def log_messages():
    """Collect loguru messages emitted during a test."""
    messages = []
    handler_id = logger.add(messages.append, level="DEBUG")
    yield messages
    logger.remove(handler_id)
