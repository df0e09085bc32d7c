"""
config.py – centralised env-var handling
=======================================

• Loads the first `.env` file it finds (cwd or /app) exactly **once**.
• Exposes `ENV` – a dict-like object that also supports attribute access.
• `env(key, default=None, cast=None)` helper for one-off lookups
  with automatic type-casting (int, float, bool).
• `EngineConfig` – every knob of the trading engine, built from the
  environment with `EngineConfig.from_env()` and checked by `validate()`.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .constants import TRADE_HISTORY_LIMIT

# ───── locate & load .env (first one wins) ────────────────────────────
for candidate in (Path.cwd() / ".env", Path("/app/.env")):
    if candidate.is_file():
        load_dotenv(dotenv_path=candidate, override=False)
        break

# ───── ENV proxy object ───────────────────────────────────────────────
class _Env(dict):
    """Attr-style access to `os.environ` while staying dict-compatible."""

    # attribute → getenv
    def __getattr__(self, item: str) -> str | None:  # noqa: D401
        return os.getenv(item)

    # keep mypy happy for dict subscripting
    def __getitem__(self, key: str) -> str:
        return os.environ[key]

    # ergonomic get with optional cast
    def get(self, key: str, default: Any = None, cast: Optional[type] = None) -> Any:  # noqa: D401
        val = os.getenv(key, default)
        if cast is not None and val is not None:
            try:
                if cast is bool:
                    return str(val).lower() in ("1", "true", "yes", "y")
                return cast(val)
            except (ValueError, TypeError):
                return default
        return val


ENV: _Env = _Env(os.environ)  # public alias

# convenience function so you can `from shared.config import env`
def env(key: str, default: Any = None, cast: Optional[type] = None) -> Any:
    """Shortcut for `ENV.get(key, default, cast)`."""
    return ENV.get(key, default, cast)


# ───── engine settings ────────────────────────────────────────────────
class ConfigError(ValueError):
    """Raised when the engine settings cannot be used to trade."""


@dataclass
class SymbolPrecision:
    quantity_precision: int = 3
    step_size: float = 0.001
    min_notional: float = 20.0


def _default_precisions() -> Dict[str, SymbolPrecision]:
    return {
        "BTCUSDT": SymbolPrecision(quantity_precision=3, step_size=0.001, min_notional=5.0),
        "ETHUSDT": SymbolPrecision(quantity_precision=3, step_size=0.001, min_notional=5.0),
    }


def _parse_precisions(raw: str | None) -> Dict[str, SymbolPrecision]:
    """`{"BTCUSDT": {"quantity_precision": 3, "step_size": 0.001, "min_notional": 5}}`"""
    if not raw:
        return _default_precisions()
    try:
        data = json.loads(raw)
        return {sym.upper(): SymbolPrecision(**fields) for sym, fields in data.items()}
    except (ValueError, TypeError, AttributeError) as exc:
        raise ConfigError(f"SYMBOL_PRECISIONS is not valid JSON – {exc}") from exc


@dataclass
class EngineConfig:
    initial_balance: float = 1000.0
    symbols: List[str] = field(default_factory=lambda: ["BTCUSDT", "ETHUSDT"])
    candles_lookback: int = 120

    # order sizing
    base_order_size_usd: float = 1000.0
    leverage: int = 5

    # position & risk limits
    max_open_positions_per_symbol: int = 5
    max_daily_loss_percent: float = 5.0
    take_profit_percent: float = 1.4
    stop_loss_percent: float = 0.6
    min_volatility_threshold: float = 0.05
    risk_off_cooldown_minutes: int = 0
    min_seconds_between_trades: int = 0
    trade_history_limit: int = TRADE_HISTORY_LIMIT

    # exchange endpoints
    rest_base_url: str = "https://fapi.binance.com"
    ws_base_url: str = "wss://fstream.binance.com/ws"
    klines_endpoint: str = "/fapi/v1/klines"
    price_ticker_endpoint: str = "/fapi/v1/ticker/price"
    order_endpoint: str = "/fapi/v1/order"

    log_per_second: bool = True

    # telegram
    enable_telegram: bool = True
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    telegram_status_interval_minutes: int = 1
    notify_trades: bool = False

    # live mirroring (off by default)
    enable_live_trading: bool = False
    live_trading_balance_fraction: float = 0.3
    binance_api_key: str = ""
    binance_api_secret: str = ""
    symbol_precisions: Dict[str, SymbolPrecision] = field(default_factory=_default_precisions)

    api_port: int = 0

    @classmethod
    def from_env(cls) -> "EngineConfig":
        d = cls()
        symbols = env("SYMBOLS", ",".join(d.symbols))
        return cls(
            initial_balance=env("INITIAL_BALANCE", d.initial_balance, float),
            symbols=[s.strip().upper() for s in symbols.split(",") if s.strip()],
            candles_lookback=env("CANDLES_LOOKBACK", d.candles_lookback, int),
            base_order_size_usd=env("BASE_ORDER_SIZE_USD", d.base_order_size_usd, float),
            leverage=env("LEVERAGE", d.leverage, int),
            max_open_positions_per_symbol=env("MAX_OPEN_PER_SYMBOL", d.max_open_positions_per_symbol, int),
            max_daily_loss_percent=env("MAX_DAILY_LOSS_PERCENT", d.max_daily_loss_percent, float),
            take_profit_percent=env("TAKE_PROFIT_PERCENT", d.take_profit_percent, float),
            stop_loss_percent=env("STOP_LOSS_PERCENT", d.stop_loss_percent, float),
            min_volatility_threshold=env("MIN_VOLATILITY", d.min_volatility_threshold, float),
            risk_off_cooldown_minutes=env("RISK_OFF_COOLDOWN_MIN", d.risk_off_cooldown_minutes, int),
            min_seconds_between_trades=env("MIN_SECONDS_BETWEEN_TRADES", d.min_seconds_between_trades, int),
            trade_history_limit=env("TRADE_HISTORY_LIMIT", d.trade_history_limit, int),
            rest_base_url=env("REST_BASE_URL", d.rest_base_url),
            ws_base_url=env("WS_BASE_URL", d.ws_base_url),
            klines_endpoint=env("KLINES_ENDPOINT", d.klines_endpoint),
            price_ticker_endpoint=env("PRICE_TICKER_ENDPOINT", d.price_ticker_endpoint),
            order_endpoint=env("ORDER_ENDPOINT", d.order_endpoint),
            log_per_second=env("LOG_PER_SECOND", d.log_per_second, bool),
            enable_telegram=env("ENABLE_TELEGRAM", d.enable_telegram, bool),
            telegram_bot_token=env("TELEGRAM_BOT_TOKEN", d.telegram_bot_token),
            telegram_chat_id=env("TELEGRAM_CHAT_ID", d.telegram_chat_id),
            telegram_status_interval_minutes=env("TELEGRAM_STATUS_INTERVAL_MIN",
                                                 d.telegram_status_interval_minutes, int),
            notify_trades=env("NOTIFY_TRADES", d.notify_trades, bool),
            enable_live_trading=env("ENABLE_LIVE_TRADING", d.enable_live_trading, bool),
            live_trading_balance_fraction=env("LIVE_BALANCE_FRACTION",
                                              d.live_trading_balance_fraction, float),
            binance_api_key=env("BINANCE_API_KEY", d.binance_api_key),
            binance_api_secret=env("BINANCE_API_SECRET", d.binance_api_secret),
            symbol_precisions=_parse_precisions(env("SYMBOL_PRECISIONS")),
            api_port=env("API_PORT", d.api_port, int),
        )

    def validate(self) -> "EngineConfig":
        problems: List[str] = []
        if not self.symbols:
            problems.append("no symbols configured")
        if self.candles_lookback <= 0:
            problems.append("candles_lookback must be > 0")
        if self.leverage <= 0:
            problems.append("leverage must be > 0")
        if self.base_order_size_usd <= 0:
            problems.append("base_order_size_usd must be > 0")
        for name in ("max_daily_loss_percent", "take_profit_percent", "stop_loss_percent",
                     "min_volatility_threshold", "risk_off_cooldown_minutes",
                     "min_seconds_between_trades", "max_open_positions_per_symbol",
                     "trade_history_limit"):
            if getattr(self, name) < 0:
                problems.append(f"{name} must be >= 0")
        if not 0.0 <= self.live_trading_balance_fraction <= 1.0:
            problems.append("live_trading_balance_fraction must be within [0, 1]")
        if self.enable_live_trading and not (self.binance_api_key and self.binance_api_secret):
            problems.append("live trading needs BINANCE_API_KEY and BINANCE_API_SECRET")
        if problems:
            raise ConfigError("; ".join(problems))
        return self

    def precision_for(self, symbol: str) -> SymbolPrecision | None:
        return self.symbol_precisions.get(symbol.upper())


__all__ = ["ENV", "env", "ConfigError", "EngineConfig", "SymbolPrecision"]
