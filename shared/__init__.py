"""
shared – tiny helpers imported by every engine service
------------------------------------------------------
Modules
-------
config.py         → loads `.env` once per process, EngineConfig
logging.py        → consistent JSON/stdout logger
constants.py      → indicator windows, timings, Redis key names
models.py         → Candle / Tick / Position / TradeEvent / order records
redis_client.py   → optional Redis heartbeat + status publishing
dispatch.py       → fire-and-forget background worker
utils.py          → clock + time helpers that don’t belong elsewhere
"""
