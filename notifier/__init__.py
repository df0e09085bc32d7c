"""
notifier
========

Outbound Telegram messages: the periodic status snapshot and (optionally)
one message per opened / closed trade.  Delivery is fire-and-forget.
"""
