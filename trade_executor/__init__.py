"""
trade_executor
==============

Bridges the engine's simulated trade book with a Binance futures account.

* Every open / close booked by the engine can be mirrored as a market
  order (live mode only, above the symbol's minimum notional).
* Orders run on a background worker – the tick path never waits on the
  exchange, and a rejected order never rolls back the simulated book.
* The same client serves the live account snapshot used to override
  balance / unrealized PnL.
"""
