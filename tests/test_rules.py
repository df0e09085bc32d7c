"""
Tests for decision_service/rules.py

Covers:
- exit reasons (take-profit, stop-loss, adverse EMA cross)
- entry gates (volatility, per-symbol cap, sizing)
- entry triggers and the long-before-short ordering
"""

import pytest

from conftest import T0, make_config
from data_loader.indicators import EmaTrack, SymbolState
from decision_service import rules as R
from shared.models import Position, Side


def make_state(price=100.0, e3=(100.0, 100.0), e9=(100.0, 100.0), e21=(100.0, 100.0),
               high=104.0, low=96.0, volatility=1.0):
    return SymbolState(
        symbol="BTCUSDT",
        lookback=120,
        last_price=price,
        ema3=EmaTrack(3, *e3),
        ema9=EmaTrack(9, *e9),
        ema21=EmaTrack(21, *e21),
        volatility=volatility,
        highest_high=high,
        lowest_low=low,
    )


def make_position(side=Side.LONG, entry=100.0, qty=10.0, symbol="BTCUSDT"):
    return Position(symbol=symbol, side=side, quantity=qty, leverage=5,
                    entry_price=entry, open_time=T0)


# ---------------------------------------------------------------------------
# Exits
# ---------------------------------------------------------------------------


class TestExits:
    def test_take_profit_on_long(self):
        pos = make_position()
        exits = R.evaluate_exits(make_state(price=101.0), [pos], make_config(take_profit_percent=1.0))
        assert len(exits) == 1
        assert exits[0].reasons == (R.TAKE_PROFIT,)
        assert exits[0].pnl_percent == pytest.approx(1.0)
        assert pos.pnl_at(101.0) == pytest.approx(10.0)

    def test_stop_loss_on_short(self):
        pos = make_position(side=Side.SHORT)
        exits = R.evaluate_exits(make_state(price=101.0), [pos], make_config(stop_loss_percent=0.5))
        assert exits[0].reasons == (R.STOP_LOSS,)
        assert exits[0].pnl_percent == pytest.approx(-1.0)

    def test_bearish_cross_closes_long_only(self):
        state = make_state(e9=(10.0, 9.0), e21=(10.0, 10.0))
        long_pos, short_pos = make_position(), make_position(side=Side.SHORT)
        exits = R.evaluate_exits(state, [long_pos, short_pos], make_config())
        assert [e.position for e in exits] == [long_pos]
        assert exits[0].reasons == (R.EMA_FLIP,)

    def test_bullish_cross_closes_short(self):
        state = make_state(e9=(9.0, 11.0), e21=(10.0, 10.0))
        exits = R.evaluate_exits(state, [make_position(side=Side.SHORT)], make_config())
        assert exits[0].reasons == (R.EMA_FLIP,)

    def test_reasons_accumulate(self):
        state = make_state(price=102.0, e9=(10.0, 9.0), e21=(10.0, 10.0))
        exits = R.evaluate_exits(state, [make_position()], make_config(take_profit_percent=1.0))
        assert exits[0].reasons == (R.TAKE_PROFIT, R.EMA_FLIP)

    def test_no_exit_inside_band(self):
        assert R.evaluate_exits(make_state(price=100.2), [make_position()], make_config()) == []

    def test_closed_and_foreign_positions_are_ignored(self):
        closed = make_position()
        closed.is_open = False
        other = make_position(symbol="ETHUSDT")
        assert R.evaluate_exits(make_state(price=150.0), [closed, other], make_config()) == []


# ---------------------------------------------------------------------------
# Sizing
# ---------------------------------------------------------------------------


class TestSizing:
    def test_paper_size_is_budget_times_leverage_over_price(self):
        cfg = make_config(base_order_size_usd=100.0, leverage=5)
        assert R.position_size(cfg, 1000.0, 100.0) == pytest.approx(5.0)

    def test_live_budget_capped_by_balance_fraction(self):
        cfg = make_config(base_order_size_usd=100.0, leverage=5,
                          enable_live_trading=True, live_trading_balance_fraction=0.3)
        assert R.order_budget(cfg, 200.0) == pytest.approx(60.0)
        assert R.position_size(cfg, 200.0, 100.0) == pytest.approx(3.0)

    def test_zero_price_gives_zero_size(self):
        assert R.position_size(make_config(), 1000.0, 0.0) == 0.0


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


class TestEntryTriggers:
    @pytest.mark.parametrize("kwargs, side, trigger", [
        (dict(price=105.0), Side.LONG, "breakout_high"),
        (dict(e9=(99.0, 101.0), e21=(100.0, 100.0)), Side.LONG, "ema_bull_cross"),
        (dict(e3=(100.0, 101.0)), Side.LONG, "ema3_up"),
        (dict(price=95.0), Side.SHORT, "breakout_low"),
        (dict(e9=(101.0, 99.0), e21=(100.0, 100.0)), Side.SHORT, "ema_bear_cross"),
        (dict(e3=(101.0, 100.0)), Side.SHORT, "ema3_down"),
    ])
    def test_trigger(self, kwargs, side, trigger):
        signal = R.evaluate_entry(make_state(**kwargs), 0, 1000.0, make_config())
        assert (signal.side, signal.trigger) == (side, trigger)

    def test_long_trigger_wins_when_both_fire(self):
        # inverted band: price is above the high and below the low at once
        state = make_state(price=100.0, high=90.0, low=110.0)
        assert R.direction(state) == (Side.LONG, "breakout_high")

    def test_long_breakout_beats_falling_ema3(self):
        state = make_state(price=105.0, e3=(106.0, 105.0))
        assert R.direction(state) == (Side.LONG, "breakout_high")

    def test_flat_market_has_no_direction(self):
        assert R.evaluate_entry(make_state(), 0, 1000.0, make_config()) is None

    def test_signal_carries_size_and_price(self):
        signal = R.evaluate_entry(make_state(price=105.0), 0, 1000.0,
                                  make_config(base_order_size_usd=105.0, leverage=2))
        assert signal.symbol == "BTCUSDT"
        assert signal.price == 105.0
        assert signal.quantity == pytest.approx(2.0)


class TestEntryGates:
    def test_volatility_gate_blocks_breakout(self):
        state = make_state(price=200.0, volatility=0.01)
        assert R.evaluate_entry(state, 0, 1000.0, make_config(min_volatility_threshold=0.05)) is None

    def test_per_symbol_cap(self):
        cfg = make_config(max_open_positions_per_symbol=2)
        assert R.evaluate_entry(make_state(price=105.0), 2, 1000.0, cfg) is None
        assert R.evaluate_entry(make_state(price=105.0), 1, 1000.0, cfg) is not None

    def test_zero_cap_means_unlimited(self):
        cfg = make_config(max_open_positions_per_symbol=0)
        assert R.evaluate_entry(make_state(price=105.0), 50, 1000.0, cfg) is not None

    def test_zero_price_is_skipped(self):
        assert R.evaluate_entry(make_state(price=0.0, low=-1.0), 0, 1000.0, make_config()) is None
