"""
ledger.py – in-memory position book + balance bookkeeping

Closing a position stamps it exactly once and appends an immutable
TradeEvent to a bounded history; closed positions age out together with
that history.  Not thread-safe on its own; the engine only touches it
under its lock.
"""

from __future__ import annotations

from collections import deque
from datetime import datetime
from typing import Deque, List, Mapping, Optional

from shared.constants import TRADE_HISTORY_LIMIT
from shared.models import AccountSnapshot, Position, Side, TradeEvent


class PositionLedger:
    def __init__(self, initial_balance: float, history_limit: int = TRADE_HISTORY_LIMIT) -> None:
        self.initial_balance = initial_balance
        self.balance = initial_balance
        self.realized_pnl = 0.0
        self.last_trade_time: Optional[datetime] = None
        self.positions: List[Position] = []
        self.history: Deque[TradeEvent] = deque(maxlen=history_limit)
        self.live_unrealized: Optional[float] = None   # set by live account sync

    # ─── queries ───────────────────────────────────────────────────
    def open_positions(self, symbol: str | None = None) -> List[Position]:
        return [p for p in self.positions
                if p.is_open and (symbol is None or p.symbol == symbol)]

    def open_count(self, symbol: str | None = None, side: Side | None = None) -> int:
        return sum(1 for p in self.open_positions(symbol) if side is None or p.side is side)

    def unrealized_pnl(self, prices: Mapping[str, float]) -> float:
        """Live figure when the exchange supplied one, else mark-to-market."""
        if self.live_unrealized is not None:
            return self.live_unrealized
        return sum(p.pnl_at(prices[p.symbol]) for p in self.open_positions() if p.symbol in prices)

    def equity(self, prices: Mapping[str, float]) -> float:
        return self.balance + self.unrealized_pnl(prices)

    # ─── mutations ─────────────────────────────────────────────────
    def open(self, symbol: str, side: Side, quantity: float, leverage: float,
             price: float, now: datetime) -> Position:
        pos = Position(symbol=symbol, side=side, quantity=quantity, leverage=leverage,
                       entry_price=price, open_time=now)
        self.positions.append(pos)
        self.last_trade_time = now
        return pos

    def close(self, position: Position, price: float, now: datetime) -> Optional[TradeEvent]:
        """Book the close; a second call on the same position does nothing."""
        if not position.is_open:
            return None
        pnl = position.pnl_at(price)
        event = TradeEvent(
            time=now,
            symbol=position.symbol,
            side=position.side,
            entry_price=position.entry_price,
            exit_price=price,
            quantity=position.quantity,
            pnl=pnl,
            pnl_percent=position.pnl_percent_at(price),
        )
        position.is_open = False
        position.close_price = price
        position.close_time = now
        position.realized_pnl = pnl
        self.balance += pnl
        self.realized_pnl += pnl
        self.history.append(event)          # deque drops the oldest past maxlen
        self._prune_closed()
        return event

    def apply_account_snapshot(self, snap: AccountSnapshot) -> None:
        self.balance = snap.wallet_balance
        self.live_unrealized = snap.unrealized_pnl
        self.realized_pnl = snap.wallet_balance - self.initial_balance

    def _prune_closed(self) -> None:
        # closed Position objects only matter through their TradeEvent
        limit = self.history.maxlen or 0
        closed = [p for p in self.positions if not p.is_open]
        if len(closed) > limit:
            drop = {p.id for p in closed[: len(closed) - limit]}
            self.positions = [p for p in self.positions if p.id not in drop]
