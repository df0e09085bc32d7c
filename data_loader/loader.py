#!/usr/bin/env python3
"""
loader.py – Binance futures market data (warm-up candles + live ticks)
======================================================================
• Warm-up uses the REST *klines* endpoint (proper OHLCV, oldest→newest).
• Live prices come from the `<symbol>@miniTicker` websocket stream.
• If the socket cannot be opened we fall back to polling the lightweight
  REST *ticker/price* endpoint for a while, then try the socket again.

Every generator here honours the shared `stop` event so the engine can
shut down between two ticks.
"""

from __future__ import annotations

import json
import threading
from typing import Any, Iterator, List, Protocol

import requests
from websockets.exceptions import WebSocketException
from websockets.sync.client import connect

from shared.config import EngineConfig
from shared.constants import (
    RECONNECT_DELAY_SEC, REST_FALLBACK_SEC, REST_POLL_SEC,
    WS_CONNECT_TIMEOUT, WS_RECEIVE_TIMEOUT,
)
from shared.logging import get_logger
from shared.models import Candle, Tick
from shared.utils import Clock, SystemClock, from_millis

log = get_logger("data_loader")


class MarketDataProvider(Protocol):
    def fetch_history(self, symbol: str, interval: str, limit: int) -> List[Candle]: ...

    def stream_ticks(self, symbol: str, stop: threading.Event) -> Iterator[Tick]: ...


# ------------------------- PARSERS ------------------------------------
def parse_kline(row: List[Any]) -> Candle:
    return Candle(
        open_time=from_millis(row[0]),
        open=float(row[1]),
        high=float(row[2]),
        low=float(row[3]),
        close=float(row[4]),
        volume=float(row[5]),
    )


def parse_mini_ticker(symbol: str, raw: str | bytes) -> Tick:
    msg = json.loads(raw)
    return Tick(symbol=symbol, time=from_millis(msg["E"]), price=float(msg["c"]))


# ------------------------- PROVIDER -----------------------------------
class BinanceMarketData:
    def __init__(self, config: EngineConfig, clock: Clock | None = None,
                 session: requests.Session | None = None) -> None:
        self.config = config
        self.clock = clock or SystemClock()
        self.session = session or requests.Session()
        self.base = config.rest_base_url.rstrip("/")

    def fetch_history(self, symbol: str, interval: str, limit: int) -> List[Candle]:
        endpoint = self.config.klines_endpoint or "/api/v3/klines"
        resp = self.session.get(
            f"{self.base}{endpoint}",
            params={"symbol": symbol.upper(), "interval": interval, "limit": limit},
            timeout=10,
        )
        resp.raise_for_status()
        candles = [parse_kline(row) for row in resp.json()]
        return sorted(candles, key=lambda c: c.open_time)

    def get_current_price(self, symbol: str) -> float:
        endpoint = self.config.price_ticker_endpoint or "/api/v3/ticker/price"
        resp = self.session.get(f"{self.base}{endpoint}",
                                params={"symbol": symbol.upper()}, timeout=5)
        resp.raise_for_status()
        return float(resp.json()["price"])

    # ---------------- live stream ----------------
    def stream_ticks(self, symbol: str, stop: threading.Event) -> Iterator[Tick]:
        url = f"{self.config.ws_base_url.rstrip('/')}/{symbol.lower()}@miniTicker"
        while not stop.is_set():
            try:
                ws = connect(url, open_timeout=WS_CONNECT_TIMEOUT)
            except (OSError, TimeoutError, WebSocketException) as exc:
                log.warning("%s websocket connect failed – polling REST (%s)", symbol, exc)
                yield from self._poll_prices(symbol, REST_FALLBACK_SEC, stop)
                stop.wait(RECONNECT_DELAY_SEC)
                continue

            with ws:
                while not stop.is_set():
                    try:
                        raw = ws.recv(timeout=WS_RECEIVE_TIMEOUT)
                    except TimeoutError:
                        log.warning("%s websocket receive timeout – reconnecting", symbol)
                        break
                    except WebSocketException as exc:
                        log.warning("%s websocket error – reconnecting (%s)", symbol, exc)
                        break
                    try:
                        tick = parse_mini_ticker(symbol, raw)
                    except (ValueError, KeyError, TypeError) as exc:
                        log.warning("%s bad ticker message skipped – %s", symbol, exc)
                        continue
                    yield tick
            stop.wait(RECONNECT_DELAY_SEC)

    def _poll_prices(self, symbol: str, duration: float,
                     stop: threading.Event) -> Iterator[Tick]:
        end = self.clock.now().timestamp() + max(1.0, duration)
        while not stop.is_set() and self.clock.now().timestamp() < end:
            try:
                price = self.get_current_price(symbol)
            except (requests.RequestException, ValueError, KeyError) as exc:
                log.warning("%s REST price poll failed – %s", symbol, exc)
                stop.wait(RECONNECT_DELAY_SEC)
                continue
            yield Tick(symbol=symbol, time=self.clock.now(), price=price)
            stop.wait(REST_POLL_SEC)
