"""
binance_client.py – light wrapper around the Binance USDⓈ-M futures REST API
----------------------------------------------------------------------------
Keeps the mirroring logic clean and testable.  Unless live trading is
enabled *and* API credentials are present the client runs dry: nothing is
sent and every order comes back as a failed OrderResult with the reason.
"""
from __future__ import annotations

import hashlib
import hmac
import math
import threading
import time
import uuid
from typing import Any, Dict, Optional, Set
from urllib.parse import urlencode

import requests

from shared.config import EngineConfig, SymbolPrecision
from shared.logging import get_logger
from shared.models import AccountSnapshot, OrderRequest, OrderResult

log = get_logger("trade_executor.binance")

ACCOUNT_ENDPOINT  = "/fapi/v2/account"
LEVERAGE_ENDPOINT = "/fapi/v1/leverage"


def normalize_quantity(quantity: float, precision: Optional[SymbolPrecision]) -> float:
    """Floor to the step size (at least one step), then trim to precision."""
    if quantity <= 0:
        return 0.0
    prec = precision or SymbolPrecision(quantity_precision=3, step_size=0.001)
    step = prec.step_size if prec.step_size > 0 else 0.001
    digits = max(0, prec.quantity_precision)
    # epsilon absorbs float noise such as 0.3/0.001
    adjusted = math.floor(quantity / step + 1e-9) * step
    if adjusted <= 0:
        adjusted = step
    factor = 10 ** digits
    return math.floor(adjusted * factor + 1e-9) / factor


def _to_float(raw: Any, fallback: float = 0.0) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return fallback


def extract_average_price(payload: Dict[str, Any]) -> float:
    fills = payload.get("fills") or []
    if fills:
        quote = sum(_to_float(f.get("price")) * _to_float(f.get("qty")) for f in fills)
        qty = sum(_to_float(f.get("qty")) for f in fills)
        if qty > 0:
            return quote / qty
    for key in ("price", "avgPrice"):
        price = _to_float(payload.get(key))
        if price > 0:
            return price
    return 0.0


def parse_account(payload: Dict[str, Any]) -> AccountSnapshot:
    wallet = _to_float(payload.get("totalWalletBalance"))
    unreal = _to_float(payload.get("totalUnrealizedProfit"))
    if wallet == 0:
        for asset in payload.get("assets") or []:
            if str(asset.get("asset", "")).upper() == "USDT":
                wallet = _to_float(asset.get("walletBalance"), wallet)
                break
    if unreal == 0:
        unreal = sum(_to_float(p.get("unRealizedProfit")) for p in payload.get("positions") or [])
    return AccountSnapshot(wallet_balance=wallet, unrealized_pnl=unreal)


class BinanceClient:
    """
    Thin OO façade so the engine doesn’t depend directly on Binance REST.
    """

    def __init__(self, config: EngineConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.base = config.rest_base_url.rstrip("/")
        self.session = session or requests.Session()
        if config.binance_api_key:
            self.session.headers["X-MBX-APIKEY"] = config.binance_api_key
        self._leverage_set: Set[str] = set()
        self._leverage_lock = threading.Lock()

    @property
    def has_credentials(self) -> bool:
        return bool(self.config.binance_api_key and self.config.binance_api_secret)

    # ───── signing ─────────────────────────────────────────────────
    def _sign(self, params: Dict[str, Any]) -> str:
        query = urlencode(params)
        sig = hmac.new(self.config.binance_api_secret.encode(), query.encode(),
                       hashlib.sha256).hexdigest()
        return f"{query}&signature={sig}"

    def _signed(self, method: str, path: str, params: Dict[str, Any]) -> requests.Response:
        params = {**params, "timestamp": int(time.time() * 1000)}
        return self.session.request(method, f"{self.base}{path}?{self._sign(params)}", timeout=10)

    # ───── trading actions ────────────────────────────────────────
    def place_order(self, request: OrderRequest) -> OrderResult:
        """
        Place a market order.  Never raises – failures come back in the result.
        """
        if not self.config.enable_live_trading:
            return OrderResult(success=False, message="Live trading disabled")
        if not self.has_credentials:
            return OrderResult(success=False, message="Binance API key/secret missing")

        self.ensure_leverage(request.symbol)
        qty = normalize_quantity(request.quantity, self.config.precision_for(request.symbol))
        if qty <= 0:
            return OrderResult(success=False,
                               message="Order quantity too small after precision adjustment")

        log.info("ORDER %s %s %s", request.symbol, request.side.value, qty)
        try:
            resp = self._signed("POST", self.config.order_endpoint or "/api/v3/order", {
                "symbol": request.symbol.upper(),
                "side": request.side.value,
                "type": request.type,
                "quantity": f"{qty:f}".rstrip("0").rstrip("."),
            })
        except requests.RequestException as exc:
            log.error("Binance order failed for %s – %s", request.symbol, exc)
            return OrderResult(success=False, message=str(exc))

        if not resp.ok:
            log.warning("Binance order rejected (%s): %s", resp.status_code, resp.text)
            return OrderResult(success=False, message=resp.text)
        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        return OrderResult(
            success=True,
            order_id=str(payload.get("orderId") or uuid.uuid4()),
            executed_price=extract_average_price(payload),
        )

    def ensure_leverage(self, symbol: str) -> None:
        key = symbol.upper()
        if self.config.leverage <= 0 or key in self._leverage_set:
            return
        with self._leverage_lock:
            if key in self._leverage_set:
                return
            try:
                resp = self._signed("POST", LEVERAGE_ENDPOINT,
                                    {"symbol": key, "leverage": self.config.leverage})
            except requests.RequestException as exc:
                log.warning("Error setting leverage for %s – %s", key, exc)
                return
            if not resp.ok:
                log.warning("Binance leverage set failed for %s (%s): %s",
                            key, resp.status_code, resp.text)
                return
            self._leverage_set.add(key)
            log.info("Binance leverage set to %d for %s", self.config.leverage, key)

    # ───── account queries ────────────────────────────────────────
    def get_account_snapshot(self) -> AccountSnapshot | None:
        """Wallet balance + unrealized PnL, or None on any failure."""
        if not self.has_credentials:
            return None
        try:
            resp = self._signed("GET", ACCOUNT_ENDPOINT, {})
            if not resp.ok:
                log.warning("Binance account snapshot failed (%s): %s", resp.status_code, resp.text)
                return None
            return parse_account(resp.json())
        except (requests.RequestException, ValueError) as exc:
            log.warning("Error fetching Binance account snapshot – %s", exc)
            return None
