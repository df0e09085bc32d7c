"""
decision_service
================

Breakout + EMA momentum engine for perpetual futures, driven by live ticks.

Data-flow (per tick, under one engine lock)
-------------------------------------------
1. Fold the tick into the symbol's indicator state (candles, EMAs).

2. Close every open position on the symbol that hit take-profit,
   stop-loss or an adverse EMA-9/21 cross.

3. Recompute drawdown from peak equity → risk-off on / off.

4. If entries are allowed, maybe open one position (volatility gate,
   per-symbol cap, breakout / EMA triggers, long before short).

Order mirroring and Telegram messages are dispatched after the lock is
released.
"""
