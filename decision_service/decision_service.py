#!/usr/bin/env python3
"""
decision_service.py – tick-driven trading engine
================================================

One worker thread per symbol feeds live ticks into `TradingEngine.handle_tick`,
which runs the whole pipeline under a single lock:

    update indicators → close exits → recompute risk → maybe open entry

so ticks from different symbols (and the periodic status readers) never
see a half-applied update of balance / peak equity / risk-off.

Anything that needs the network afterwards (order mirroring, Telegram) is
captured as an immutable message inside the lock and handed to the
background dispatcher once the lock is released.

Environment
-----------
See shared/config.py – SYMBOLS, LEVERAGE, TAKE_PROFIT_PERCENT, … ;
API_PORT > 0 also serves the read-only status API.
"""

from __future__ import annotations

import signal
import sys
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Protocol, Union

import requests

from data_loader.indicators import SymbolState, WarmupError
from data_loader.loader import BinanceMarketData, MarketDataProvider
from decision_service import rules as R
from decision_service.ledger import PositionLedger
from decision_service.status import EngineStatus, trade_close_text, trade_open_text
from notifier.telegram_bot import Notifier, TelegramBot
from shared.config import ConfigError, EngineConfig
from shared.constants import ACCOUNT_SYNC_MIN_SEC, CANDLE_INTERVAL, STATUS_INTERVAL_SEC
from shared.dispatch import BackgroundDispatcher
from shared.logging import get_logger
from shared.models import AccountSnapshot, Position, Side, Tick, TradeEvent
from shared.redis_client import heartbeat, publish_status
from shared.utils import Clock, SystemClock
from trade_executor.binance_client import BinanceClient
from trade_executor.executor import MirrorIntent, OrderMirror
from trade_manager.risk import RiskGovernor, drawdown_percent

log = get_logger("decision_service")


class AccountSyncProvider(Protocol):
    def get_account_snapshot(self) -> Optional[AccountSnapshot]: ...


@dataclass
class TickOutcome:
    """What one tick did to the book (handy for callers and tests)."""
    closed: List[TradeEvent] = field(default_factory=list)
    opened: Optional[Position] = None
    entries_blocked: bool = False


_Effect = Union[MirrorIntent, str]        # str → Telegram text


class TradingEngine:
    def __init__(self, config: EngineConfig, market_data: MarketDataProvider,
                 order_mirror: Optional[OrderMirror] = None,
                 notifier: Optional[Notifier] = None,
                 account: Optional[AccountSyncProvider] = None,
                 dispatcher: Optional[BackgroundDispatcher] = None,
                 clock: Optional[Clock] = None) -> None:
        self.config = config
        self.market_data = market_data
        self.order_mirror = order_mirror
        self.notifier = notifier
        self.account = account
        self.dispatcher = dispatcher or BackgroundDispatcher("side-effects")
        self.clock = clock or SystemClock()

        self._lock = threading.Lock()
        self._sync_lock = threading.Lock()
        self.states: Dict[str, SymbolState] = {}
        self.ledger = PositionLedger(config.initial_balance, config.trade_history_limit)
        self.risk = self._new_governor()
        self._start_time: datetime = self.clock.now()
        self._last_account_sync: Optional[datetime] = None

    def _new_governor(self) -> RiskGovernor:
        return RiskGovernor(
            max_loss_percent=self.config.max_daily_loss_percent,
            cooldown_minutes=self.config.risk_off_cooldown_minutes,
            min_seconds_between_trades=self.config.min_seconds_between_trades,
            peak_equity=self.config.initial_balance,
        )

    # ─── bootstrap ─────────────────────────────────────────────────
    def initialize(self) -> None:
        """Reset the book and seed every symbol from its warm-up candles."""
        cfg = self.config
        self._start_time = self.clock.now()
        self.ledger = PositionLedger(cfg.initial_balance, cfg.trade_history_limit)
        self.risk = self._new_governor()
        self._last_account_sync = None

        if cfg.enable_live_trading:
            self.refresh_live_account()

        states = {}
        for sym in cfg.symbols:
            candles = self.market_data.fetch_history(sym, CANDLE_INTERVAL, cfg.candles_lookback)
            states[sym] = SymbolState.warm_up(sym, candles, cfg.candles_lookback, self.clock.now())
            log.info("%s warmed up – %d candles, atr=%.4f vol=%.4f%%",
                     sym, len(states[sym].candles), states[sym].atr, states[sym].volatility)
        with self._lock:
            self.states = states
        log.info("Trading engine initialized. Balance=%.4f", self.ledger.balance)

    # ─── per-tick pipeline ─────────────────────────────────────────
    def handle_tick(self, tick: Tick) -> TickOutcome:
        outcome = TickOutcome()
        state = self.states.get(tick.symbol)
        if state is None:
            return outcome

        effects: List[_Effect] = []
        with self._lock:
            now = self.clock.now()
            state.on_tick(tick)

            # 1️⃣  exits – every open position on this symbol, before anything else
            for ex in R.evaluate_exits(state, self.ledger.open_positions(state.symbol), self.config):
                event = self.ledger.close(ex.position, ex.price, now)
                if event is None:
                    continue
                outcome.closed.append(event)
                log.info("CLOSE %s %s qty=%.6f @ %.4f (entry %.4f) | PnL=%+.4f (%+.4f%%) [%s]"
                         " | Balance=%.4f | Equity=%.4f",
                         event.side.value, event.symbol, event.quantity, event.exit_price,
                         event.entry_price, event.pnl, event.pnl_percent, ",".join(ex.reasons),
                         self.ledger.balance, self._equity(),
                         extra={"sym": event.symbol, "side": event.side.value})
                effects.append(MirrorIntent.of(ex.position, opening=False))
                effects.append(trade_close_text(event, self.ledger.balance, self._equity()))

            # 2️⃣  risk – from post-exit equity
            self.risk.update(self._equity(), now)

            # 3️⃣  entry
            if self.risk.blocks_entries(now, self._equity, self.ledger.last_trade_time):
                outcome.entries_blocked = True
            else:
                signal_ = R.evaluate_entry(state, self.ledger.open_count(state.symbol),
                                           self.ledger.balance, self.config)
                if signal_ is not None:
                    pos = self.ledger.open(signal_.symbol, signal_.side, signal_.quantity,
                                           self.config.leverage, signal_.price, now)
                    outcome.opened = pos
                    log.info("OPEN %s %s qty=%.6f @ %.4f (%s) | Balance=%.4f | Equity=%.4f",
                             pos.side.value, pos.symbol, pos.quantity, pos.entry_price,
                             signal_.trigger, self.ledger.balance, self._equity(),
                             extra={"sym": pos.symbol, "side": pos.side.value})
                    effects.append(MirrorIntent.of(pos, opening=True))
                    effects.append(trade_open_text(pos))

        self._dispatch(effects)
        return outcome

    def _prices(self) -> Dict[str, float]:
        return {sym: s.last_price for sym, s in self.states.items()}

    def _equity(self) -> float:
        """Balance + unrealized PnL; caller must hold the lock."""
        return self.ledger.equity(self._prices())

    def _dispatch(self, effects: List[_Effect]) -> None:
        for effect in effects:
            if isinstance(effect, MirrorIntent):
                if self.order_mirror is not None:
                    self.order_mirror.mirror(effect)
            elif self.config.notify_trades:
                self.notify(effect)

    def notify(self, text: str) -> None:
        if self.notifier is None or not self.config.enable_telegram:
            return
        self.dispatcher.submit("telegram", self.notifier.send_message, text)

    # ─── snapshots ─────────────────────────────────────────────────
    def status(self) -> EngineStatus:
        with self._lock:
            now = self.clock.now()
            # an elapsed cooldown clears here too, not only on the next tick
            risk_off = self.risk.is_risk_off(now, self._equity)
            prices = self._prices()
            unrealized = self.ledger.unrealized_pnl(prices)
            equity = self.ledger.balance + unrealized
            return EngineStatus(
                prices=prices,
                open_longs=self.ledger.open_count(side=Side.LONG),
                open_shorts=self.ledger.open_count(side=Side.SHORT),
                balance=self.ledger.balance,
                realized_pnl=self.ledger.realized_pnl,
                unrealized_pnl=unrealized,
                equity=equity,
                drawdown=drawdown_percent(self.risk.peak_equity, equity),
                elapsed=now - self._start_time,
                risk_off=risk_off,
                closed_trades=len(self.ledger.history),
            )

    def open_positions(self) -> List[dict]:
        with self._lock:
            return [p.to_dict() for p in self.ledger.open_positions()]

    def recent_trades(self, limit: int = 50) -> List[dict]:
        with self._lock:
            events = list(self.ledger.history)[-limit:] if limit > 0 else []
            return [e.to_dict() for e in events]

    # ─── live account sync ─────────────────────────────────────────
    def refresh_live_account(self) -> bool:
        """Pull wallet / unrealized PnL from the exchange, at most every 5 s."""
        if not self.config.enable_live_trading or self.account is None:
            return False
        with self._sync_lock:
            now = self.clock.now()
            if (self._last_account_sync is not None
                    and now - self._last_account_sync < timedelta(seconds=ACCOUNT_SYNC_MIN_SEC)):
                return False
            self._last_account_sync = now

        snap = self.account.get_account_snapshot()          # network – outside the engine lock
        if snap is None:
            return False
        with self._lock:
            self.ledger.apply_account_snapshot(snap)
            self.risk.raise_peak(self._equity())
        return True

    # ─── threads ───────────────────────────────────────────────────
    def run(self, stop: threading.Event) -> None:
        """Start symbol workers + periodic loops; returns once `stop` is set and all exit."""
        threads = [
            threading.Thread(target=self._symbol_worker, args=(sym, stop),
                             name=f"ticks-{sym}", daemon=True)
            for sym in self.config.symbols
        ]
        threads.append(threading.Thread(target=self._status_loop, args=(stop,),
                                        name="status", daemon=True))
        if (self.notifier is not None and self.config.enable_telegram
                and self.config.telegram_status_interval_minutes > 0):
            threads.append(threading.Thread(target=self._telegram_status_loop, args=(stop,),
                                            name="telegram-status", daemon=True))
        for th in threads:
            th.start()
        log.info("engine running – %d symbol worker(s)", len(self.config.symbols))
        stop.wait()
        for th in threads:
            th.join()
        self.dispatcher.join()
        log.info("engine stopped")

    def _symbol_worker(self, symbol: str, stop: threading.Event) -> None:
        for tick in self.market_data.stream_ticks(symbol, stop):
            if stop.is_set():
                break
            try:
                self.handle_tick(tick)
            except Exception:                               # noqa: BLE001
                log.exception("%s tick failed", symbol)

    def _status_loop(self, stop: threading.Event) -> None:
        while not stop.wait(STATUS_INTERVAL_SEC):
            try:
                self.refresh_live_account()
                snap = self.status()
                if self.config.log_per_second:
                    log.info(snap.log_line())
                publish_status(snap.to_dict())
                heartbeat("decision_service")
            except Exception:                               # noqa: BLE001
                log.exception("status loop error")

    def _telegram_status_loop(self, stop: threading.Event) -> None:
        interval = max(1, self.config.telegram_status_interval_minutes) * 60
        self.notify(self.status().telegram_text())          # one right away
        while not stop.wait(interval):
            self.notify(self.status().telegram_text())


# ─── MAIN ─────────────────────────────────────────────────────────────
def build_engine(cfg: EngineConfig) -> TradingEngine:
    clock = SystemClock()
    dispatcher = BackgroundDispatcher("side-effects").start()
    client = BinanceClient(cfg)
    return TradingEngine(
        cfg,
        market_data=BinanceMarketData(cfg, clock),
        order_mirror=OrderMirror(cfg, client, dispatcher),
        notifier=TelegramBot(cfg.telegram_bot_token, cfg.telegram_chat_id, cfg.enable_telegram),
        account=client if cfg.enable_live_trading else None,
        dispatcher=dispatcher,
        clock=clock,
    )


def main() -> None:
    try:
        cfg = EngineConfig.from_env().validate()
    except ConfigError as exc:
        log.error("Configuration error – %s", exc)
        sys.exit(1)

    log.info("Starting trading engine – %s (live=%s)", ",".join(cfg.symbols), cfg.enable_live_trading)
    engine = build_engine(cfg)
    try:
        engine.initialize()
    except (WarmupError, requests.RequestException, ValueError) as exc:
        log.error("Engine initialization failed – %s", exc)
        sys.exit(1)

    stop = threading.Event()
    if cfg.api_port:
        # REST API + engine in one process using uvicorn’s loop for the API
        import uvicorn
        from trade_manager.manager import create_app

        th = threading.Thread(target=engine.run, args=(stop,), name="engine", daemon=True)
        th.start()
        uvicorn.run(create_app(engine), host="0.0.0.0", port=cfg.api_port, log_level="warning")
        stop.set()
        th.join()
    else:
        def _on_signal(signum, _frame):
            log.info("Received signal %s – shutting down", signum)
            stop.set()

        signal.signal(signal.SIGINT, _on_signal)
        signal.signal(signal.SIGTERM, _on_signal)
        engine.run(stop)

    engine.dispatcher.stop()
    log.info("Trading engine stopped.")


if __name__ == "__main__":
    main()
