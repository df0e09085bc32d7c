"""
risk.py – portfolio drawdown breaker
------------------------------------
Two states: normal and *risk-off*.  Risk-off is entered when drawdown from
peak equity reaches MAX_DAILY_LOSS_PERCENT and left either

• by hysteresis – drawdown back under half the limit, no cooldown pending
• by cooldown   – `risk_off_until` elapsed; peak equity is re-based to the
                  equity at that moment.

Entries are also throttled by MIN_SECONDS_BETWEEN_TRADES.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

from shared.constants import RISK_OFF_HYSTERESIS
from shared.logging import get_logger

log = get_logger("trade_manager.risk")


def drawdown_percent(peak: float, equity: float) -> float:
    if peak <= 0:
        return 0.0
    return (peak - equity) / peak * 100.0


class RiskGovernor:
    def __init__(self, max_loss_percent: float, cooldown_minutes: int = 0,
                 min_seconds_between_trades: int = 0, peak_equity: float = 0.0) -> None:
        self.max_loss_percent = max_loss_percent
        self.cooldown = timedelta(minutes=cooldown_minutes) if cooldown_minutes > 0 else None
        self.min_gap = (timedelta(seconds=min_seconds_between_trades)
                        if min_seconds_between_trades > 0 else None)
        self.peak_equity = peak_equity
        self.risk_off = False
        self.risk_off_until: Optional[datetime] = None
        self.drawdown = 0.0

    def update(self, equity: float, now: datetime) -> float:
        """Feed post-exit equity; returns the current drawdown %."""
        if equity > self.peak_equity:
            self.peak_equity = equity
        if self.peak_equity <= 0:
            self.drawdown = 0.0
            return self.drawdown

        dd = drawdown_percent(self.peak_equity, equity)
        self.drawdown = dd
        if dd >= self.max_loss_percent:
            if not self.risk_off:
                log.warning("Risk-off mode activated. Drawdown %.4f%% exceeds limit %.4f%%.",
                            dd, self.max_loss_percent)
            self.risk_off = True
            if self.cooldown is not None:
                until = now + self.cooldown
                if self.risk_off_until is None or until > self.risk_off_until:
                    self.risk_off_until = until
        elif (self.risk_off and self.risk_off_until is None
              and dd < self.max_loss_percent * RISK_OFF_HYSTERESIS):
            self.risk_off = False
            log.info("Risk-off mode cleared. Drawdown back to %.4f%%.", dd)
        return dd

    def is_risk_off(self, now: datetime, equity: Callable[[], float]) -> bool:
        """
        Current risk-off flag, clearing it first if the cooldown ran out.
        `equity` is only evaluated on that expiry, to re-base the peak.
        """
        if not self.risk_off:
            return False
        if self.risk_off_until is not None and now >= self.risk_off_until:
            self.risk_off = False
            self.risk_off_until = None
            self.peak_equity = equity()
            log.info("Risk-off cooldown elapsed. Resuming trading.")
            return False
        return True

    def blocks_entries(self, now: datetime, equity: Callable[[], float],
                       last_trade_time: Optional[datetime]) -> bool:
        if self.is_risk_off(now, equity):
            return True
        if self.min_gap is not None and last_trade_time is not None:
            return now < last_trade_time + self.min_gap
        return False

    def raise_peak(self, equity: float) -> None:
        """Live account sync: never lower the peak, only lift it."""
        self.peak_equity = max(self.peak_equity, equity)
