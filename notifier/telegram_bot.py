"""
Telegram bot module for pushing engine status and trade messages.
"""
from __future__ import annotations

from typing import Protocol

import requests

from shared.logging import get_logger

log = get_logger("notifier.telegram")


class Notifier(Protocol):
    def send_message(self, message: str) -> bool: ...


class TelegramBot:
    def __init__(self, bot_token: str, chat_id: str, enabled: bool = True,
                 session: requests.Session | None = None):
        """
        Args:
            bot_token: Telegram bot token (plain text)
            chat_id: Telegram chat ID
            enabled: master switch; a missing token or chat id also disables sending
        """
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.enabled = enabled and bool(bot_token) and bool(chat_id)
        self.base_url = f"https://api.telegram.org/bot{bot_token}"
        self.session = session or requests.Session()
        if self.enabled:
            log.info("TelegramBot initialized for chat_id: %s", chat_id)

    def send_message(self, message: str, parse_mode: str = "Markdown") -> bool:
        """
        Send text message to Telegram.

        Returns:
            True if delivered, False if disabled or the call failed
        """
        if not self.enabled:
            return False
        payload = {
            "chat_id": self.chat_id,
            "text": message,
            "parse_mode": parse_mode,
        }
        try:
            log.debug("Sending Telegram message: %s", message)
            response = self.session.post(f"{self.base_url}/sendMessage", data=payload, timeout=10)
        except requests.exceptions.RequestException as e:
            log.warning("Unable to send Telegram notification: %s", e)
            return False
        if response.status_code != 200:
            log.warning("Telegram notification failed (%s): %s", response.status_code, response.text)
            return False
        return True
