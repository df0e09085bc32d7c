"""
Tests for the network-facing adapters with their HTTP sessions faked:
data_loader/loader.py, notifier/telegram_bot.py, trade_manager/manager.py
"""

import json
import threading
from datetime import timedelta

import pytest
import requests
from fastapi.testclient import TestClient
from websockets.exceptions import WebSocketException

from conftest import T0, FakeMarketData, FakeResponse, make_candles, make_config
from data_loader import loader
from data_loader.loader import BinanceMarketData, parse_kline, parse_mini_ticker
from decision_service.decision_service import TradingEngine
from notifier.telegram_bot import TelegramBot
from shared.dispatch import BackgroundDispatcher
from shared.models import Tick
from trade_manager.manager import create_app


class FakeHttp:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []
        self.headers = {}

    def _call(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response

    def get(self, url, **kwargs):
        return self._call(url, **kwargs)

    def post(self, url, **kwargs):
        return self._call(url, **kwargs)


# ---------------------------------------------------------------------------
# market data
# ---------------------------------------------------------------------------


class TestParsers:
    def test_kline_row(self):
        c = parse_kline([1704110400000, "1.0", "2.0", "0.5", "1.5", "10", 1704110459999])
        assert (c.open, c.high, c.low, c.close, c.volume) == (1.0, 2.0, 0.5, 1.5, 10.0)
        assert c.open_time == T0.replace(second=0)

    def test_mini_ticker(self):
        t = parse_mini_ticker("BTCUSDT", '{"e":"24hrMiniTicker","E":1704110430000,"s":"BTCUSDT","c":"42000.5"}')
        assert (t.symbol, t.time, t.price) == ("BTCUSDT", T0, 42000.5)

    def test_mini_ticker_missing_field(self):
        with pytest.raises(KeyError):
            parse_mini_ticker("BTCUSDT", '{"E": 1}')


class TestBinanceMarketData:
    def test_history_is_requested_and_sorted(self, clock):
        rows = [
            [1704110460000, "2", "2", "2", "2", "1"],
            [1704110400000, "1", "1", "1", "1", "1"],
        ]
        http = FakeHttp(FakeResponse(200, rows))
        md = BinanceMarketData(make_config(), clock, session=http)

        candles = md.fetch_history("btcusdt", "1m", 2)

        assert [c.close for c in candles] == [1.0, 2.0]
        url, kwargs = http.calls[0]
        assert url == "https://fapi.binance.com/fapi/v1/klines"
        assert kwargs["params"] == {"symbol": "BTCUSDT", "interval": "1m", "limit": 2}

    def test_history_http_error_propagates(self, clock):
        md = BinanceMarketData(make_config(), clock, session=FakeHttp(FakeResponse(500, [])))
        with pytest.raises(requests.HTTPError):
            md.fetch_history("BTCUSDT", "1m", 10)

    def test_rest_polling_fallback_yields_ticks(self, clock):
        http = FakeHttp(FakeResponse(200, {"symbol": "BTCUSDT", "price": "101.5"}))
        md = BinanceMarketData(make_config(), clock, session=http)
        stop = threading.Event()

        polled = md._poll_prices("BTCUSDT", 15, stop)
        first = next(polled)
        stop.set()

        assert (first.symbol, first.time, first.price) == ("BTCUSDT", T0, 101.5)
        assert list(polled) == []


class FakeSocket:
    """Replays a script of messages / exceptions through recv()."""

    def __init__(self, script):
        self.script = list(script)
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True
        return False

    def recv(self, timeout=None):
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


def ticker(price, event_ms=1704110430000):
    return json.dumps({"e": "24hrMiniTicker", "E": event_ms, "s": "BTCUSDT", "c": str(price)})


@pytest.fixture
def fast_reconnect(monkeypatch):
    monkeypatch.setattr(loader, "RECONNECT_DELAY_SEC", 0)
    monkeypatch.setattr(loader, "REST_POLL_SEC", 0)


class TestStreamTicks:
    def test_skips_bad_messages_and_reconnects(self, clock, monkeypatch, fast_reconnect):
        sockets = [
            FakeSocket([ticker(100.5), "not json", TimeoutError()]),
            FakeSocket([ticker(101.5), '{"E": 1}', WebSocketException("dropped")]),
            FakeSocket([ticker(102.5)]),
        ]
        urls = []

        def fake_connect(url, open_timeout=None):
            urls.append(url)
            return sockets[len(urls) - 1]

        monkeypatch.setattr(loader, "connect", fake_connect)
        md = BinanceMarketData(make_config(), clock, session=FakeHttp())
        stop = threading.Event()
        stream = md.stream_ticks("BTCUSDT", stop)

        prices = [next(stream).price for _ in range(3)]
        stop.set()

        assert prices == [100.5, 101.5, 102.5]
        assert list(stream) == []
        assert urls == ["wss://fstream.binance.com/ws/btcusdt@miniTicker"] * 3
        assert sockets[0].closed and sockets[1].closed and sockets[2].closed

    def test_connect_failure_falls_back_to_rest(self, clock, monkeypatch, fast_reconnect):
        calls = []

        def failing_connect(url, open_timeout=None):
            calls.append(url)
            raise OSError("unreachable")

        monkeypatch.setattr(loader, "connect", failing_connect)
        http = FakeHttp(FakeResponse(200, {"symbol": "BTCUSDT", "price": "99.25"}))
        md = BinanceMarketData(make_config(), clock, session=http)
        stop = threading.Event()
        stream = md.stream_ticks("BTCUSDT", stop)

        first, second = next(stream), next(stream)
        stop.set()

        assert (first.price, second.price) == (99.25, 99.25)
        assert first.time == T0
        assert http.calls[0][0] == "https://fapi.binance.com/fapi/v1/ticker/price"
        assert list(stream) == []
        assert len(calls) == 1

    def test_stopped_stream_never_connects(self, clock, monkeypatch):
        monkeypatch.setattr(loader, "connect", lambda *a, **k: pytest.fail("connected"))
        md = BinanceMarketData(make_config(), clock, session=FakeHttp())
        stop = threading.Event()
        stop.set()
        assert list(md.stream_ticks("BTCUSDT", stop)) == []


# ---------------------------------------------------------------------------
# Telegram
# ---------------------------------------------------------------------------


class TestTelegramBot:
    def test_disabled_without_token(self):
        http = FakeHttp(FakeResponse(200, {}))
        bot = TelegramBot("", "123", session=http)
        assert bot.enabled is False
        assert bot.send_message("hi") is False
        assert http.calls == []

    def test_sends_markdown(self):
        http = FakeHttp(FakeResponse(200, {"ok": True}))
        bot = TelegramBot("tok", "123", session=http)
        assert bot.send_message("*hi*") is True
        url, kwargs = http.calls[0]
        assert url == "https://api.telegram.org/bottok/sendMessage"
        assert kwargs["data"] == {"chat_id": "123", "text": "*hi*", "parse_mode": "Markdown"}

    def test_http_failure_is_reported_not_raised(self):
        bot = TelegramBot("tok", "123", session=FakeHttp(FakeResponse(500, None, text="err")))
        assert bot.send_message("x") is False

    def test_network_error_is_reported_not_raised(self):
        bot = TelegramBot("tok", "123", session=FakeHttp(error=requests.ConnectionError("down")))
        assert bot.send_message("x") is False


# ---------------------------------------------------------------------------
# REST API
# ---------------------------------------------------------------------------


@pytest.fixture
def api(clock):
    dispatcher = BackgroundDispatcher("test-api")
    engine = TradingEngine(make_config(),
                           FakeMarketData({"BTCUSDT": make_candles([100.0] * 20, spread=1.0)}),
                           dispatcher=dispatcher, clock=clock)
    engine.initialize()
    engine.handle_tick(Tick("BTCUSDT", T0 + timedelta(seconds=5), 102.0))
    yield TestClient(create_app(engine))
    dispatcher.stop()


class TestApi:
    def test_status(self, api):
        body = api.get("/status").json()
        assert body["open_longs"] == 1
        assert body["risk_off"] is False
        assert body["prices"] == {"BTCUSDT": 102.0}

    def test_positions(self, api):
        body = api.get("/positions").json()
        assert len(body) == 1
        assert body[0]["side"] == "long"
        assert body[0]["is_open"] is True

    def test_trades(self, api):
        assert api.get("/trades", params={"limit": 5}).json() == []
        assert api.get("/trades", params={"limit": -1}).status_code == 422
