"""
Technical indicators for market context.
"""
from .indicators import sma, ema, rsi, macd, build_indicator_bundle

__all__ = ["sma", "ema", "rsi", "macd", "build_indicator_bundle"]
