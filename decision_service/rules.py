"""
rules.py  – entry / exit rules for the breakout + EMA strategy
==============================================================
Pure-function utilities only; no locks, no I/O, no side-effects.
The coordinator feeds them the current indicator state and the open book.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from data_loader.indicators import SymbolState
from shared.config import EngineConfig
from shared.models import Position, Side

TAKE_PROFIT = "take_profit"
STOP_LOSS   = "stop_loss"
EMA_FLIP    = "ema_flip"


@dataclass(frozen=True)
class ExitSignal:
    position: Position
    price: float
    pnl_percent: float
    reasons: Tuple[str, ...]


@dataclass(frozen=True)
class EntrySignal:
    symbol: str
    side: Side
    quantity: float
    price: float
    trigger: str


# ---------------------------------------------------------------------
def ema_cross_down(state: SymbolState) -> bool:
    """EMA-9 just fell through EMA-21."""
    return state.ema9.current < state.ema21.current and state.ema9.previous >= state.ema21.previous


def ema_cross_up(state: SymbolState) -> bool:
    return state.ema9.current > state.ema21.current and state.ema9.previous <= state.ema21.previous


def exit_reasons(position: Position, state: SymbolState, price: float,
                 cfg: EngineConfig) -> Tuple[str, ...]:
    pnl_pct = position.pnl_percent_at(price)
    reasons: List[str] = []
    if pnl_pct >= cfg.take_profit_percent:
        reasons.append(TAKE_PROFIT)
    if pnl_pct <= -cfg.stop_loss_percent:
        reasons.append(STOP_LOSS)
    flip = ema_cross_down(state) if position.side is Side.LONG else ema_cross_up(state)
    if flip:
        reasons.append(EMA_FLIP)
    return tuple(reasons)


def evaluate_exits(state: SymbolState, positions: Iterable[Position],
                   cfg: EngineConfig) -> List[ExitSignal]:
    """One ExitSignal per open position on `state.symbol` that must close now."""
    price = state.last_price
    exits = []
    for pos in positions:
        if not pos.is_open or pos.symbol != state.symbol:
            continue
        reasons = exit_reasons(pos, state, price, cfg)
        if reasons:
            exits.append(ExitSignal(pos, price, pos.pnl_percent_at(price), reasons))
    return exits


# ---------------------------------------------------------------------
def order_budget(cfg: EngineConfig, balance: float) -> float:
    budget = cfg.base_order_size_usd
    if cfg.enable_live_trading and cfg.live_trading_balance_fraction > 0:
        fraction = min(max(cfg.live_trading_balance_fraction, 0.0), 1.0)
        budget = min(budget, balance * fraction)
    return budget


def position_size(cfg: EngineConfig, balance: float, price: float) -> float:
    if price <= 0:
        return 0.0
    return order_budget(cfg, balance) * cfg.leverage / price


def direction(state: SymbolState) -> Optional[Tuple[Side, str]]:
    """
    Long triggers are checked strictly before short ones, so in the
    (pathological) case where both fire the long side wins.
    """
    price = state.last_price
    e3, e9, e21 = state.ema3, state.ema9, state.ema21

    if price > state.highest_high:
        return Side.LONG, "breakout_high"
    if e9.previous <= e21.previous and e9.current > e21.current and e9.current > e9.previous:
        return Side.LONG, "ema_bull_cross"
    if e3.current > e3.previous:
        return Side.LONG, "ema3_up"

    if price < state.lowest_low:
        return Side.SHORT, "breakout_low"
    if e9.previous >= e21.previous and e9.current < e21.current and e9.current < e9.previous:
        return Side.SHORT, "ema_bear_cross"
    if e3.current < e3.previous:
        return Side.SHORT, "ema3_down"
    return None


def evaluate_entry(state: SymbolState, open_for_symbol: int, balance: float,
                   cfg: EngineConfig) -> Optional[EntrySignal]:
    """Volatility gate, per-symbol cap and sizing, then direction."""
    if state.volatility < cfg.min_volatility_threshold:
        return None
    cap = cfg.max_open_positions_per_symbol
    if cap > 0 and open_for_symbol >= cap:
        return None

    price = state.last_price
    qty = position_size(cfg, balance, price)
    if price <= 0 or qty <= 0:
        return None                    # quiet / filtered market, not an error

    found = direction(state)
    if found is None:
        return None
    side, trigger = found
    return EntrySignal(state.symbol, side, qty, price, trigger)
