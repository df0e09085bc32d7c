"""
indicators.py – per-symbol rolling indicator state
--------------------------------------------------
• 1-minute candle aggregation from raw ticks (history bounded to lookback).
• EMA-3/9/21 updated on **every** tick, each kept as an immutable
  `EmaTrack(previous, current)` pair so crossovers compare like with like.
• ATR (mean true range, last 14 closed candles), 20-candle breakout band
  and ATR-% volatility refreshed **only** when a candle closes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from functools import reduce
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from shared.constants import ATR_WINDOW, BREAKOUT_PERIOD
from shared.models import Candle, Tick
from shared.utils import truncate_to_minute


class WarmupError(RuntimeError):
    """A symbol has no historical candles to seed its indicators from."""


# ───── EMA ────────────────────────────────────────────────────────────
def ema_step(previous: float, price: float, period: int) -> float:
    if previous == 0:
        return price                   # never seeded → start at price
    k = 2.0 / (period + 1)
    return price * k + previous * (1 - k)


def seed_ema(closes: Sequence[float], period: int) -> float:
    """Fold the EMA recurrence over `closes`, seeded with the first close."""
    if not closes:
        return 0.0
    k = 2.0 / (period + 1)
    return reduce(lambda ema, price: price * k + ema * (1 - k), closes, closes[0])


@dataclass(frozen=True)
class EmaTrack:
    period: int
    previous: float = 0.0
    current: float = 0.0

    def advance(self, price: float) -> "EmaTrack":
        return EmaTrack(self.period, self.current, ema_step(self.current, price, self.period))

    @classmethod
    def seeded(cls, period: int, closes: Sequence[float]) -> "EmaTrack":
        value = seed_ema(closes, period)
        return cls(period, value, value)


# ───── candle-window helpers (pandas) ─────────────────────────────────
def candles_frame(candles: Sequence[Candle]) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "open_time": [c.open_time for c in candles],
            "open":   [c.open for c in candles],
            "high":   [c.high for c in candles],
            "low":    [c.low for c in candles],
            "close":  [c.close for c in candles],
            "volume": [c.volume for c in candles],
        }
    )


def average_true_range(candles: Sequence[Candle]) -> float:
    """Mean true range; the window's first close doubles as its prior close."""
    if not candles:
        return 0.0
    df = candles_frame(candles)
    prev_close = df["close"].shift(1).fillna(df["close"].iat[0])
    tr = np.maximum.reduce([
        (df["high"] - df["low"]).to_numpy(),
        (df["high"] - prev_close).abs().to_numpy(),
        (df["low"] - prev_close).abs().to_numpy(),
    ])
    return float(tr.mean())


def breakout_band(candles: Sequence[Candle], fallback: float) -> tuple[float, float]:
    if not candles:
        return fallback, fallback
    df = candles_frame(candles)
    return float(df["high"].max()), float(df["low"].min())


# ───── per-symbol state ───────────────────────────────────────────────
@dataclass
class SymbolState:
    symbol: str
    lookback: int
    candles: List[Candle] = field(default_factory=list)
    current_candle: Optional[Candle] = None
    last_price: float = 0.0
    last_update_time: Optional[datetime] = None
    ema3: EmaTrack = EmaTrack(3)
    ema9: EmaTrack = EmaTrack(9)
    ema21: EmaTrack = EmaTrack(21)
    atr: float = 0.0
    volatility: float = 0.0
    highest_high: float = 0.0
    lowest_low: float = 0.0

    @classmethod
    def warm_up(cls, symbol: str, candles: Sequence[Candle], lookback: int,
                now: datetime) -> "SymbolState":
        if not candles:
            raise WarmupError(f"No warm-up candles for {symbol}")
        ordered = sorted(candles, key=lambda c: c.open_time)
        closes = [c.close for c in ordered]
        last_close = closes[-1]
        state = cls(
            symbol=symbol,
            lookback=lookback,
            candles=ordered[-lookback:],
            current_candle=Candle(truncate_to_minute(now), last_close, last_close,
                                  last_close, last_close, 0.0),
            last_price=last_close,
            last_update_time=now,
            ema3=EmaTrack.seeded(3, closes),
            ema9=EmaTrack.seeded(9, closes),
            ema21=EmaTrack.seeded(21, closes),
        )
        state._refresh_candle_indicators()
        return state

    # ─── tick entry point ───────────────────────────────────────────
    def on_tick(self, tick: Tick) -> bool:
        """Fold one tick in; returns True when it closed a candle."""
        price = tick.price
        minute = truncate_to_minute(tick.time)
        closed = False

        if self.current_candle is None:
            self.current_candle = Candle(minute, price, price, price, price, 0.0)

        if minute > self.current_candle.open_time:
            self._close_current_candle()
            self.current_candle = Candle(minute, price, price, price, price, 0.0)
            closed = True
        else:
            c = self.current_candle
            c.high = max(c.high, price)
            c.low = min(c.low, price)
            c.close = price

        self.last_price = price
        self.last_update_time = tick.time
        self.ema3, self.ema9, self.ema21 = (
            self.ema3.advance(price), self.ema9.advance(price), self.ema21.advance(price)
        )
        return closed

    def _close_current_candle(self) -> None:
        candle = self.current_candle
        candle.close = self.last_price
        self.candles.append(candle)
        if len(self.candles) > self.lookback:
            del self.candles[: len(self.candles) - self.lookback]
        self._refresh_candle_indicators()

    def _refresh_candle_indicators(self) -> None:
        self.atr = average_true_range(self.candles[-ATR_WINDOW:])
        self.highest_high, self.lowest_low = breakout_band(
            self.candles[-BREAKOUT_PERIOD:], self.last_price)
        self.volatility = 0.0 if self.last_price == 0 else self.atr / self.last_price * 100.0
