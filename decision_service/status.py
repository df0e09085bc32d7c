"""
status.py – point-in-time view of the engine for logs, Telegram and the API
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict

from shared.models import Position, TradeEvent
from shared.utils import format_elapsed


@dataclass(frozen=True)
class EngineStatus:
    prices: Dict[str, float]
    open_longs: int
    open_shorts: int
    balance: float
    realized_pnl: float
    unrealized_pnl: float
    equity: float
    drawdown: float
    elapsed: timedelta
    risk_off: bool
    closed_trades: int

    def prices_line(self) -> str:
        return " | ".join(f"{sym}={px:.4f}" for sym, px in self.prices.items())

    def log_line(self) -> str:
        return (
            f"STATUS | {self.prices_line()} | OpenPos={self.open_longs}L/{self.open_shorts}S"
            f" | Bal={self.balance:.4f} | Realized={self.realized_pnl:+.4f}"
            f" | Unrealized={self.unrealized_pnl:+.4f} | Equity={self.equity:.4f}"
            f" | DD={self.drawdown:.4f}% | Elapsed={format_elapsed(self.elapsed)}"
        )

    def telegram_text(self) -> str:
        return "\n".join([
            "[STATUS]",
            self.prices_line(),
            f"Open positions: {self.open_longs} long / {self.open_shorts} short",
            f"Balance: {self.balance:.4f} | Unrealized: {self.unrealized_pnl:+.4f}"
            f" | Equity: {self.equity:.4f}",
            f"Drawdown: {self.drawdown:.4f}% | Closed trades: {self.closed_trades}",
        ])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prices": dict(self.prices),
            "open_longs": self.open_longs,
            "open_shorts": self.open_shorts,
            "balance": self.balance,
            "realized_pnl": self.realized_pnl,
            "unrealized_pnl": self.unrealized_pnl,
            "equity": self.equity,
            "drawdown_pct": self.drawdown,
            "elapsed": format_elapsed(self.elapsed),
            "risk_off": self.risk_off,
            "closed_trades": self.closed_trades,
        }


def trade_open_text(pos: Position) -> str:
    return "\n".join([
        "[OPEN]",
        f"Pair: `{pos.symbol}`",
        f"Side: *{pos.side.value.capitalize()}*",
        f"Qty: {pos.quantity:.6f}",
        f"Price: {pos.entry_price:.4f}",
    ])


def trade_close_text(event: TradeEvent, balance: float, equity: float) -> str:
    return "\n".join([
        "[CLOSE]",
        f"Pair: `{event.symbol}`",
        f"Side: *{event.side.value.capitalize()}*",
        f"Qty: {event.quantity:.6f}",
        f"Price: {event.exit_price:.4f}",
        f"PnL: {event.pnl:+.2f} ({event.pnl_percent:+.2f}%)",
        f"Balance: {balance:.4f} | Equity: {equity:.4f}",
    ])
