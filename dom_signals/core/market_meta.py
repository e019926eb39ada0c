"""
Market Metadata: tick sizes, symbol info and instrument classes

Handles per-instrument tick sizes (for price rounding in simulated feeds and
for symbol resolution) and the instrument classification that decides the
minimum total book volume a depth-of-market snapshot needs before its
confidence is trusted in full.
"""

from enum import Enum
from typing import Optional, Sequence, Tuple, Union
from loguru import logger
import numpy as np

from dom_signals.core.config import Settings, ThresholdSettings
from dom_signals.core.custom_types import SymbolInfo


class InstrumentClass(str, Enum):
    CRYPTO = "crypto"
    INDEX = "index"
    FX = "fx"


# Default tick sizes (can be overridden in settings)
DEFAULT_TICK_SIZES = {
    # Crypto
    "BTCUSD": 0.01,
    "BTCUSDT": 0.1,
    "ETHUSD": 0.01,
    "ETHUSDT": 0.01,
    "XRPUSD": 0.00001,
    "XRPUSDT": 0.0001,
    # Indices
    "US30": 1.0,
    "NAS100": 0.25,
    # FX majors
    "EURUSD": 0.00001,
    "GBPUSD": 0.00001,
    "AUDUSD": 0.00001,
    "USDCHF": 0.00001,
    "USDCAD": 0.00001,
    "USDJPY": 0.001,
    "EURJPY": 0.001,
}

# (class, keywords, threshold); first match wins, crypto before index
DEFAULT_THRESHOLD_RULES: Tuple[Tuple[InstrumentClass, Tuple[str, ...], float], ...] = (
    (InstrumentClass.CRYPTO, ("BTC", "ETH", "XRP"), 10.0),
    (InstrumentClass.INDEX, ("US30", "NAS100"), 100.0),
)
DEFAULT_MIN_VOLUME = 1000.0


def _threshold_rules(
    settings: Optional[Union[Settings, ThresholdSettings]] = None,
) -> Tuple[Sequence[Tuple[InstrumentClass, Sequence[str], float]], float]:
    if settings is None:
        return DEFAULT_THRESHOLD_RULES, DEFAULT_MIN_VOLUME
    ts = settings.thresholds if isinstance(settings, Settings) else settings
    rules = [(InstrumentClass(r.instrument_class), r.keywords, r.threshold) for r in ts.rules]
    return rules, ts.default_threshold


def _match_rule(symbol: str, settings=None) -> Tuple[InstrumentClass, float]:
    rules, default = _threshold_rules(settings)
    upper = (symbol or "").upper()
    for cls, keywords, threshold in rules:
        if any(k.upper() in upper for k in keywords):
            return cls, float(threshold)
    return InstrumentClass.FX, float(default)


def classify_instrument(symbol: str, settings=None) -> InstrumentClass:
    """
    Classify an instrument by case-insensitive substring match.

    "btcusd" -> CRYPTO, "US30.cash" -> INDEX, "EURUSD" -> FX.
    """
    return _match_rule(symbol, settings)[0]


def min_volume_threshold(symbol: str, settings=None) -> float:
    """
    Minimum total book volume for `symbol` below which confidence is halved.

    Args:
        symbol: Instrument identifier
        settings: `Settings` or `ThresholdSettings` (optional)

    Returns:
        10 for crypto, 100 for indices, 1000 otherwise with default rules
    """
    return _match_rule(symbol, settings)[1]


def get_tick_size(symbol: str, settings: Optional[Settings] = None) -> float:
    """
    Get tick size for a symbol, checking settings overrides first.
    """
    if settings is not None and symbol in settings.tick_size_overrides:
        return float(settings.tick_size_overrides[symbol])
    return DEFAULT_TICK_SIZES.get(symbol.upper(), 0.0001)


def _decimal_places(tick_size: float) -> int:
    decimal_places = 0
    temp_tick = tick_size
    while temp_tick < 1 and temp_tick > 0:
        temp_tick *= 10
        decimal_places += 1
        if decimal_places > 12:
            break
    return decimal_places


def round_to_tick(price: float, tick_size: float) -> float:
    """
    Round price to nearest tick size.

    Raises:
        ValueError: on non-numeric or non-finite input
    """
    if not isinstance(price, (int, float)) or not isinstance(tick_size, (int, float)):
        raise ValueError(f"Invalid price or tick_size: {price}, {tick_size}")

    if np.isnan(price) or np.isinf(price):
        raise ValueError(f"Invalid price: {price}")

    if tick_size <= 0:
        logger.warning(f"Invalid tick size: {tick_size}, using 0.0001")
        tick_size = 0.0001

    rounded = round(price / tick_size) * tick_size
    # strip float noise left by the division
    return round(rounded, _decimal_places(tick_size))


def get_symbol_info(symbol: str, settings: Optional[Settings] = None) -> Optional[SymbolInfo]:
    """
    Resolve symbol metadata; None when the identifier is blank.
    """
    if not symbol or not symbol.strip():
        return None
    tick_size = get_tick_size(symbol, settings)
    return SymbolInfo(symbol=symbol, tick_size=tick_size, decimal_places=_decimal_places(tick_size))
