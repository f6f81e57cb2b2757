"""Tests for crmsync.adapters.telegram_notifier — NotificationPort over telegram.Bot."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from telegram.error import TelegramError

from crmsync.adapters.telegram_notifier import TelegramNotifier


class TestTelegramNotifier:
    @pytest.mark.asyncio
    async def test_send_message(self):
        bot = MagicMock()
        bot.send_message = AsyncMock()
        await TelegramNotifier(bot).send_message(12345, "✅ New task")
        bot.send_message.assert_awaited_once_with(chat_id=12345, text="✅ New task")

    @pytest.mark.asyncio
    async def test_delivery_error_propagates(self):
        bot = MagicMock()
        bot.send_message = AsyncMock(side_effect=TelegramError("chat not found"))
        with pytest.raises(TelegramError):
            await TelegramNotifier(bot).send_message(12345, "hi")
