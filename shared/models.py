"""
models.py – plain data records passed between services
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class Side(str, Enum):
    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> float:
        return 1.0 if self is Side.LONG else -1.0


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass
class Candle:
    open_time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True)
class Tick:
    symbol: str
    time: datetime
    price: float


@dataclass
class Position:
    symbol: str
    side: Side
    quantity: float
    leverage: float
    entry_price: float
    open_time: datetime
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    close_price: Optional[float] = None
    close_time: Optional[datetime] = None
    realized_pnl: float = 0.0
    is_open: bool = True

    def pnl_at(self, price: float) -> float:
        return (price - self.entry_price) * self.quantity * self.side.sign

    def pnl_percent_at(self, price: float) -> float:
        if self.entry_price == 0:
            return 0.0
        return (price - self.entry_price) / self.entry_price * 100.0 * self.side.sign

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["side"] = self.side.value
        d["open_time"] = self.open_time.isoformat()
        d["close_time"] = self.close_time.isoformat() if self.close_time else None
        return d


@dataclass(frozen=True)
class TradeEvent:
    time: datetime
    symbol: str
    side: Side
    entry_price: float
    exit_price: float
    quantity: float
    pnl: float
    pnl_percent: float

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["side"] = self.side.value
        d["time"] = self.time.isoformat()
        return d


@dataclass(frozen=True)
class OrderRequest:
    symbol: str
    side: OrderSide
    quantity: float
    type: str = "MARKET"


@dataclass(frozen=True)
class OrderResult:
    success: bool
    order_id: str = ""
    executed_price: float = 0.0
    message: str = ""


@dataclass(frozen=True)
class AccountSnapshot:
    wallet_balance: float
    unrealized_pnl: float
