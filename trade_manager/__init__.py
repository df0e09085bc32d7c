"""
trade_manager
=============

Portfolio guard-rails and the ops-facing view of the engine:

• risk.py     – drawdown breaker (risk-off, hysteresis, cooldown, trade throttle).
• manager.py  – read-only REST API for dashboards.
"""
