"""
executor.py – mirror simulated trades onto the exchange
-------------------------------------------------------
* Position opened in the ledger   →  market order in the same direction.
* Position closed in the ledger   →  market order in the opposite direction.

The ledger is the source of truth; mirroring is best effort.  Orders are
handed to the background dispatcher and only their outcome is logged.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from shared.config import EngineConfig
from shared.dispatch import BackgroundDispatcher
from shared.logging import get_logger
from shared.models import OrderRequest, OrderResult, OrderSide, Position, Side

log = get_logger("trade_executor")


class OrderExecutionProvider(Protocol):
    def place_order(self, request: OrderRequest) -> OrderResult: ...


@dataclass(frozen=True)
class MirrorIntent:
    """Immutable copy of the decision, built under the engine lock."""
    symbol: str
    side: Side
    quantity: float
    entry_price: float
    opening: bool

    @classmethod
    def of(cls, position: Position, opening: bool) -> "MirrorIntent":
        return cls(position.symbol, position.side, position.quantity,
                   position.entry_price, opening)

    @property
    def action(self) -> str:
        return "open" if self.opening else "close"


def order_side(side: Side, opening: bool) -> OrderSide:
    if side is Side.LONG:
        return OrderSide.BUY if opening else OrderSide.SELL
    return OrderSide.SELL if opening else OrderSide.BUY


class OrderMirror:
    def __init__(self, config: EngineConfig, client: OrderExecutionProvider,
                 dispatcher: BackgroundDispatcher) -> None:
        self.config = config
        self.client = client
        self.dispatcher = dispatcher

    def mirror(self, intent: MirrorIntent) -> bool:
        """Queue the order; False when live trading is off or it was filtered."""
        if not self.config.enable_live_trading:
            return False

        notional = abs(intent.quantity) * intent.entry_price
        precision = self.config.precision_for(intent.symbol)
        if precision is not None and precision.min_notional > 0 and notional < precision.min_notional:
            log.warning("Binance %s order skipped for %s: notional %.4f below minimum %.4f",
                        intent.action, intent.symbol, notional, precision.min_notional)
            return False

        request = OrderRequest(symbol=intent.symbol,
                               side=order_side(intent.side, intent.opening),
                               quantity=abs(intent.quantity))
        return self.dispatcher.submit(f"{intent.action} {intent.symbol}", self._send, intent, request)

    def _send(self, intent: MirrorIntent, request: OrderRequest) -> None:
        try:
            result = self.client.place_order(request)
        except Exception:                                   # noqa: BLE001
            log.exception("Unable to mirror %s trade on Binance for %s", intent.action, intent.symbol)
            return
        if result.success:
            log.info("Binance %s order executed (%s) at ~%.4f",
                     intent.action, result.order_id, result.executed_price)
        else:
            log.warning("Binance %s order failed for %s: %s",
                        intent.action, intent.symbol, result.message)
