"""
data_loader
===========

Pulls a lookback window of 1-minute candles for every symbol, then keeps
a live tick stream flowing into the engine, and owns the rolling
per-symbol indicator state built from those ticks.

Modules
-------
loader.py      – Binance REST/websocket market data provider
indicators.py  – candle aggregation, EMA-3/9/21, ATR, breakout band
"""
