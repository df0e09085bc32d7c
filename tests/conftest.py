"""
Shared fixtures and in-memory fakes for the engine test-suite.

No network, no wall clock: market data, the exchange, Telegram and time
are all replaced by the small doubles below.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, List, Optional

import pytest

from shared.config import EngineConfig
from shared.models import AccountSnapshot, Candle, OrderRequest, OrderResult, Tick

T0 = datetime(2024, 1, 1, 12, 0, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Doubles
# ---------------------------------------------------------------------------


class ManualClock:
    def __init__(self, start: datetime = T0):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class FakeMarketData:
    def __init__(self, history: Dict[str, List[Candle]], ticks: Optional[Dict[str, List[Tick]]] = None):
        self.history = history
        self.ticks = ticks or {}
        self.history_calls: List[tuple] = []

    def fetch_history(self, symbol: str, interval: str, limit: int) -> List[Candle]:
        self.history_calls.append((symbol, interval, limit))
        return list(self.history.get(symbol, []))

    def stream_ticks(self, symbol: str, stop: threading.Event) -> Iterator[Tick]:
        for tick in self.ticks.get(symbol, []):
            if stop.is_set():
                return
            yield tick


class FakeOrderClient:
    def __init__(self, success: bool = True):
        self.success = success
        self.requests: List[OrderRequest] = []

    def place_order(self, request: OrderRequest) -> OrderResult:
        self.requests.append(request)
        if self.success:
            return OrderResult(success=True, order_id="42", executed_price=100.0)
        return OrderResult(success=False, message="rejected")


class FakeNotifier:
    def __init__(self):
        self.messages: List[str] = []

    def send_message(self, message: str) -> bool:
        self.messages.append(message)
        return True


class FakeAccount:
    def __init__(self, snapshot: Optional[AccountSnapshot]):
        self.snapshot = snapshot
        self.calls = 0

    def get_account_snapshot(self) -> Optional[AccountSnapshot]:
        self.calls += 1
        return self.snapshot


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload

    def raise_for_status(self):
        if not self.ok:
            import requests
            raise requests.HTTPError(f"{self.status_code}")


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_candles(closes: List[float], spread: float = 0.0,
                 end: datetime = T0) -> List[Candle]:
    """One closed 1m candle per close, the last one ending at `end`'s minute."""
    last_open = end.replace(second=0, microsecond=0) - timedelta(minutes=1)
    first_open = last_open - timedelta(minutes=len(closes) - 1)
    return [
        Candle(first_open + timedelta(minutes=i), c, c + spread, c - spread, c, 1.0)
        for i, c in enumerate(closes)
    ]


def make_config(**overrides) -> EngineConfig:
    base = dict(
        initial_balance=1000.0,
        symbols=["BTCUSDT"],
        candles_lookback=120,
        base_order_size_usd=100.0,
        leverage=5,
        max_open_positions_per_symbol=5,
        max_daily_loss_percent=5.0,
        take_profit_percent=1.0,
        stop_loss_percent=0.5,
        min_volatility_threshold=0.05,
        log_per_second=False,
        enable_telegram=False,
    )
    base.update(overrides)
    return EngineConfig(**base)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def config():
    return make_config()
