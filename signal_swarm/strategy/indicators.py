"""
Technical indicators over candle closes.

Plain Python over lists; series are aligned to the END of the input, so the
last element of every returned series corresponds to the latest candle.
"""
from typing import List, Optional, Tuple

from ..agents.schemas import Candle, IndicatorBundle


def sma(values: List[float], period: int) -> List[float]:
    """Simple moving average series (len = len(values) - period + 1)."""
    if period <= 0 or len(values) < period:
        return []
    window = sum(values[:period])
    result = [window / period]
    for i in range(period, len(values)):
        window += values[i] - values[i - period]
        result.append(window / period)
    return result


def ema(values: List[float], period: int) -> List[float]:
    """Exponential moving average, seeded with the SMA of the first period."""
    if period <= 0 or len(values) < period:
        return []
    k = 2 / (period + 1)
    current = sum(values[:period]) / period
    result = [current]
    for value in values[period:]:
        current = value * k + current * (1 - k)
        result.append(current)
    return result


def rsi(values: List[float], period: int = 14) -> Optional[float]:
    """Latest RSI using Wilder smoothing."""
    if len(values) < period + 1:
        return None

    changes = [values[i] - values[i - 1] for i in range(1, len(values))]
    avg_gain = sum(c for c in changes[:period] if c > 0) / period
    avg_loss = sum(-c for c in changes[:period] if c < 0) / period

    for change in changes[period:]:
        gain = change if change > 0 else 0.0
        loss = -change if change < 0 else 0.0
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period

    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0
    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def macd(
    values: List[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> Optional[Tuple[float, float, float]]:
    """Latest (macd, signal, histogram), or None without enough history."""
    fast_series = ema(values, fast)
    slow_series = ema(values, slow)
    if not slow_series:
        return None

    offset = len(fast_series) - len(slow_series)
    macd_series = [f - s for f, s in zip(fast_series[offset:], slow_series)]
    signal_series = ema(macd_series, signal)
    if not signal_series:
        return None

    macd_value = macd_series[-1]
    signal_value = signal_series[-1]
    return macd_value, signal_value, macd_value - signal_value


def _last(series: List[float]) -> Optional[float]:
    return series[-1] if series else None


def build_indicator_bundle(symbol: str, interval: str, candles: List[Candle]) -> Optional[IndicatorBundle]:
    """Compute the indicator composite for one symbol/interval."""
    if not candles:
        return None

    closes = [c.close for c in candles]
    last_close = closes[-1]
    ema_26 = _last(ema(closes, 26))
    macd_result = macd(closes)

    bundle = IndicatorBundle(
        symbol=symbol,
        interval=interval,
        last_close=last_close,
        sma_20=_last(sma(closes, 20)),
        ema_12=_last(ema(closes, 12)),
        ema_26=ema_26,
        rsi_14=rsi(closes, 14),
    )

    if macd_result:
        bundle.macd, bundle.macd_signal, bundle.macd_histogram = macd_result

    if ema_26 is not None and bundle.macd_histogram is not None:
        if last_close > ema_26 and bundle.macd_histogram > 0:
            bundle.trend = "bullish"
        elif last_close < ema_26 and bundle.macd_histogram < 0:
            bundle.trend = "bearish"

    return bundle
