import pytest

from dom_signals.core.custom_types import BookLevel, BookSide
from dom_signals.orderflow.analyzer import OrderFlowAnalyzer
from dom_signals.orderflow.book_source import InMemoryBookSource


def _set_levels(source, symbol, bids, asks):
    levels = [BookLevel(BookSide.BID, v) for v in bids] + [BookLevel(BookSide.ASK, v) for v in asks]
    source.set_levels(symbol, levels)


# --- lifecycle ---

def test_init_subscribes(analyzer, source):
    assert analyzer.init("BTCUSD") is True
    assert analyzer.is_initialized
    assert "BTCUSD" in source.subscriptions
    assert analyzer.symbol_info.tick_size == 0.01


def test_init_fails_for_unresolved_symbol(analyzer, source):
    assert analyzer.init("UNKNOWN") is False
    assert not analyzer.is_initialized
    assert source.subscriptions == set()


def test_init_fails_without_book(analyzer, source):
    source.clear_book("EURUSD")
    assert analyzer.init("EURUSD") is False
    assert source.subscriptions == set()


def test_init_fails_when_subscription_refused(settings, clock):
    src = InMemoryBookSource(symbols=["BTCUSD"], settings=settings, accept_subscriptions=False)
    src.set_levels("BTCUSD", [])
    a = OrderFlowAnalyzer(src, settings, clock=clock)
    assert a.init("BTCUSD") is False
    assert not a.is_initialized


def test_deinit_is_idempotent(analyzer, source):
    analyzer.init("BTCUSD")
    analyzer.deinit()
    analyzer.deinit()
    assert source.unsubscribe_calls["BTCUSD"] == 1
    assert "BTCUSD" not in source.subscriptions
    assert analyzer.analyze() is False


def test_deinit_without_init_does_not_unsubscribe(analyzer, source):
    analyzer.deinit()
    assert sum(source.unsubscribe_calls.values()) == 0


def test_analyze_before_init_is_noop(analyzer, source):
    assert analyzer.analyze() is False
    assert sum(source.snapshot_calls.values()) == 0
    assert analyzer.result.is_dom_available is False


def test_is_available_does_not_require_init(analyzer, source):
    assert analyzer.is_available("BTCUSD") is True
    source.set_levels("BTCUSD", [])
    assert analyzer.is_available("BTCUSD") is True
    source.clear_book("BTCUSD")
    assert analyzer.is_available("BTCUSD") is False
    assert analyzer.is_available() is False


def test_subscribed_guard_releases_on_error(analyzer, source):
    with pytest.raises(RuntimeError):
        with analyzer.subscribed("BTCUSD") as ok:
            assert ok
            assert "BTCUSD" in source.subscriptions
            raise RuntimeError("boom")
    assert "BTCUSD" not in source.subscriptions
    assert source.unsubscribe_calls["BTCUSD"] == 1


def test_context_manager_calls_deinit(source, settings, clock):
    with OrderFlowAnalyzer(source, settings, clock=clock) as a:
        assert a.init("US30")
    assert "US30" not in source.subscriptions


def test_reinit_other_symbol_releases_previous(analyzer, source):
    analyzer.init("BTCUSD")
    analyzer.init("EURUSD")
    assert source.subscriptions == {"EURUSD"}
    assert analyzer.symbol == "EURUSD"


# --- analysis ---

def test_scenario_a_imbalance_and_pressure(analyzer, source):
    _set_levels(source, "BTCUSD", bids=[100] * 5, asks=[50, 50])
    assert analyzer.init("BTCUSD")
    assert analyzer.analyze() is True
    r = analyzer.result
    assert r.is_dom_available is True
    assert r.total_bid_depth == 500
    assert r.total_ask_depth == 100
    assert r.bid_ask_imbalance == pytest.approx(5.0)
    assert r.order_book_pressure == pytest.approx(0.667, abs=1e-3)
    assert r.dom_confidence == 35.0
    assert r.absorption_score == 50.0


def test_scenario_b_empty_book(analyzer, source):
    assert analyzer.init("BTCUSD")
    source.set_levels("BTCUSD", [])
    assert analyzer.analyze() is False
    r = analyzer.result
    assert r.is_dom_available is False
    assert r.dom_confidence == 0.0


def test_scenario_c_three_levels(analyzer, source):
    assert analyzer.init("BTCUSD")
    _set_levels(source, "BTCUSD", bids=[1000, 5], asks=[7])
    assert analyzer.analyze() is False
    assert analyzer.result.dom_confidence == 10.0


def test_scenario_d_bullish_absorption(analyzer, source):
    _set_levels(source, "BTCUSD", bids=[100] * 5, asks=[100] * 5)
    source.set_price("BTCUSD", 100.0)
    assert analyzer.init("BTCUSD")
    assert analyzer.analyze()
    assert analyzer.result.absorption_score == 50.0

    tick = analyzer.symbol_info.tick_size
    source.set_price("BTCUSD", 100.0 + tick)
    _set_levels(source, "BTCUSD", bids=[100] * 5, asks=[80] * 5)
    assert analyzer.analyze()
    score = analyzer.result.absorption_score
    assert 70.0 < score <= 100.0
    assert score == pytest.approx(95.0)


def test_bearish_absorption(analyzer, source):
    _set_levels(source, "BTCUSD", bids=[100] * 5, asks=[100] * 5)
    source.set_price("BTCUSD", 100.0)
    analyzer.init("BTCUSD")
    analyzer.analyze()
    source.set_price("BTCUSD", 99.5)
    _set_levels(source, "BTCUSD", bids=[90] * 5, asks=[100] * 5)
    analyzer.analyze()
    # 50/450 -> 11.11%
    assert analyzer.result.absorption_score == pytest.approx(30.0 - 50 / 450 * 100)


def test_repeat_snapshot_gives_same_metrics_and_neutral_absorption(analyzer, source):
    _set_levels(source, "BTCUSD", bids=[100] * 5, asks=[100] * 5)
    source.set_price("BTCUSD", 100.0)
    analyzer.init("BTCUSD")
    analyzer.analyze()
    source.set_price("BTCUSD", 101.0)
    _set_levels(source, "BTCUSD", bids=[120, 80, 100, 100, 100], asks=[60] * 5)
    analyzer.analyze()
    first = analyzer.result
    assert first.absorption_score > 70.0
    analyzer.analyze()
    second = analyzer.result
    assert second.bid_ask_imbalance == first.bid_ask_imbalance
    assert second.order_book_pressure == first.order_book_pressure
    assert second.total_bid_depth == first.total_bid_depth
    assert second.total_ask_depth == first.total_ask_depth
    assert second.dom_confidence == first.dom_confidence
    assert second.absorption_score == 50.0


def test_failed_analyze_keeps_stale_fields(analyzer, source):
    _set_levels(source, "BTCUSD", bids=[100] * 5, asks=[50, 50])
    analyzer.init("BTCUSD")
    assert analyzer.analyze()
    good = analyzer.result

    _set_levels(source, "BTCUSD", bids=[100], asks=[100, 100])
    assert analyzer.analyze() is False
    thin = analyzer.result
    assert thin.dom_confidence == 10.0
    assert thin.is_dom_available is True
    assert thin.bid_ask_imbalance == good.bid_ask_imbalance
    assert thin.total_bid_depth == good.total_bid_depth
    assert thin.absorption_score == good.absorption_score

    source.clear_book("BTCUSD")
    assert analyzer.analyze() is False
    gone = analyzer.result
    assert gone.is_dom_available is False
    assert gone.dom_confidence == 0.0
    assert gone.order_book_pressure == good.order_book_pressure
    assert gone.strong_bid_levels == good.strong_bid_levels


def test_failed_analyze_does_not_touch_absorption_state(analyzer, source):
    _set_levels(source, "BTCUSD", bids=[100] * 5, asks=[100] * 5)
    source.set_price("BTCUSD", 100.0)
    analyzer.init("BTCUSD")
    analyzer.analyze()
    source.set_price("BTCUSD", 105.0)
    _set_levels(source, "BTCUSD", bids=[1], asks=[1])
    analyzer.analyze()
    assert analyzer.state.previous_price == 100.0


def test_confidence_halved_for_thin_fx_book(analyzer, source):
    _set_levels(source, "EURUSD", bids=[100] * 5, asks=[50, 50])
    analyzer.init("EURUSD")
    analyzer.analyze()
    # 7 levels, 600 total volume < 1000 FX minimum
    assert analyzer.min_volume_threshold() == 1000.0
    assert analyzer.result.dom_confidence == 17.5


def test_confidence_capped_at_100(analyzer, source):
    _set_levels(source, "US30", bids=[10] * 15, asks=[10] * 15)
    analyzer.init("US30")
    analyzer.analyze()
    assert analyzer.result.dom_confidence == 100.0


def test_strong_levels_counted_per_side(analyzer, source):
    _set_levels(source, "BTCUSD", bids=[10, 10, 10, 10, 200], asks=[10, 10, 150])
    analyzer.init("BTCUSD")
    analyzer.analyze()
    # average 410/8 = 51.25, strong above 102.5
    r = analyzer.result
    assert r.strong_bid_levels == 1
    assert r.strong_ask_levels == 1


def test_imbalance_sentinel_when_no_asks(analyzer, source):
    _set_levels(source, "BTCUSD", bids=[10, 10, 10, 10], asks=[])
    analyzer.init("BTCUSD")
    analyzer.analyze()
    assert analyzer.result.bid_ask_imbalance == 100.0
    assert analyzer.result.order_book_pressure == 1.0


def test_price_kept_when_source_has_none(analyzer, source):
    _set_levels(source, "BTCUSD", bids=[100] * 4, asks=[100] * 4)
    source.set_price("BTCUSD", 100.0)
    analyzer.init("BTCUSD")
    analyzer.analyze()
    source.set_price("BTCUSD", None)
    analyzer.analyze()
    assert analyzer.current_price == 100.0


# --- average level volume cache ---

def test_average_cache_refreshes_after_ttl(analyzer, source, clock):
    _set_levels(source, "BTCUSD", bids=[100] * 4, asks=[100] * 4)
    analyzer.init("BTCUSD")

    calls = source.snapshot_calls["BTCUSD"]
    analyzer.analyze()
    assert source.snapshot_calls["BTCUSD"] - calls == 2
    assert analyzer.state.cached_average_level_volume == 100.0

    _set_levels(source, "BTCUSD", bids=[10, 10, 10, 10], asks=[10, 10, 10, 190])
    clock.advance(30)
    calls = source.snapshot_calls["BTCUSD"]
    analyzer.analyze()
    assert source.snapshot_calls["BTCUSD"] - calls == 1
    # still using the cached 100.0: 190 is not above 200
    assert analyzer.result.strong_ask_levels == 0

    clock.advance(31)
    calls = source.snapshot_calls["BTCUSD"]
    analyzer.analyze()
    assert source.snapshot_calls["BTCUSD"] - calls == 2
    assert analyzer.state.cached_average_level_volume == pytest.approx(32.5)
    assert analyzer.result.strong_ask_levels == 1


def test_average_cache_keeps_value_when_refresh_fails(analyzer, source, clock):
    _set_levels(source, "BTCUSD", bids=[100] * 4, asks=[100] * 4)
    analyzer.init("BTCUSD")
    analyzer.analyze()
    source.set_levels("BTCUSD", [])
    clock.advance(120)
    assert analyzer.average_level_volume() == 100.0
    source.clear_book("BTCUSD")
    assert analyzer.average_level_volume() == 100.0


def test_average_floor_before_first_computation(analyzer, source):
    source.set_levels("BTCUSD", [])
    analyzer.init("BTCUSD")
    assert analyzer.average_level_volume() == 1.0


# --- logging ---

def test_thin_book_warning_logged(analyzer, source, log_messages):
    analyzer.init("BTCUSD")
    _set_levels(source, "BTCUSD", bids=[1], asks=[1])
    analyzer.analyze()
    warnings = [m for m in log_messages if "Insufficient DOM depth" in m]
    assert len(warnings) == 1
    assert warnings[0].record["extra"]["symbol"] == "BTCUSD"


def test_logging_disabled_is_silent(analyzer, source, log_messages):
    assert analyzer.init("NOPE", logging_enabled=False) is False
    analyzer.init("BTCUSD", logging_enabled=False)
    _set_levels(source, "BTCUSD", bids=[1], asks=[1])
    analyzer.analyze()
    analyzer.deinit()
    assert log_messages == []


def test_init_failure_logged(analyzer, log_messages):
    analyzer.init("NOPE")
    assert any("Failed to resolve symbol metadata" in m for m in log_messages)
