"""
constants.py – single source of hard-coded names
"""

# indicator windows
ATR_PERIOD      = 14
ATR_MIN_WINDOW  = 5
ATR_WINDOW      = max(ATR_PERIOD, ATR_MIN_WINDOW)     # = 14
BREAKOUT_PERIOD = 20
CANDLE_INTERVAL = "1m"

# risk-off clears once drawdown falls below this share of the limit
RISK_OFF_HYSTERESIS = 0.5

TRADE_HISTORY_LIMIT   = 500      # closed trades kept in RAM
ACCOUNT_SYNC_MIN_SEC  = 5        # live balance refresh throttle
STATUS_INTERVAL_SEC   = 1

# market-data stream timings (seconds)
WS_CONNECT_TIMEOUT  = 5
WS_RECEIVE_TIMEOUT  = 10
REST_FALLBACK_SEC   = 15
REST_POLL_SEC       = 1
RECONNECT_DELAY_SEC = 2

# Redis keys / templates
KEY_HEARTBEAT = "heartbeat:{}"        # service-specific
KEY_STATUS    = "live:engine:status"
STATUS_TTL    = 30
