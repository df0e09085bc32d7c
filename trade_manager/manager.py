#!/usr/bin/env python3
"""
manager.py – read-only REST view of a running engine
----------------------------------------------------
GET /status      balance / equity / drawdown / risk-off snapshot
GET /positions   currently open positions
GET /trades      most recent closed trades (?limit=N, newest last)

Served by uvicorn from decision_service.main() when API_PORT > 0.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import FastAPI, Query

from shared.logging import get_logger

if TYPE_CHECKING:                      # pragma: no cover
    from decision_service.decision_service import TradingEngine

log = get_logger("trade_manager")


def create_app(engine: "TradingEngine") -> FastAPI:
    app = FastAPI(title="Trade Manager", docs_url=None, redoc_url=None)

    @app.get("/status")
    def status():
        return engine.status().to_dict()

    @app.get("/positions")
    def positions():
        return engine.open_positions()

    @app.get("/trades")
    def trades(limit: int = Query(50, ge=0, le=1000)):
        return engine.recent_trades(limit)

    log.info("REST API ready: /status /positions /trades")
    return app
