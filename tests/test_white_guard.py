"""
Tests for the bot runtime: batch dispatch, offsets and error isolation.
"""
import asyncio
import os
import sys
from unittest.mock import AsyncMock

os.environ.setdefault('TELEGRAM_BOT_TOKEN', "123:dummy_token")
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from decision_engine import Decision, PROMOTED, SKIPPED, SPAM
from telegram_api import TelegramAPIError
from white_guard import WhiteGuard
from whitelist_store import WhitelistStore


def make_bot(tmp_path):
    whitelist = WhitelistStore(str(tmp_path / "white_user.txt"))
    whitelist.load()
    return WhiteGuard(api=AsyncMock(), classifier=AsyncMock(), whitelist=whitelist)


def update(update_id, text="hello"):
    return {
        'update_id': update_id,
        'message': {
            'message_id': update_id * 10,
            'chat': {'id': -100},
            'from': {'id': update_id, 'is_bot': False},
            'text': text,
        },
    }


def test_batch_advances_offset_and_dispatches_messages(tmp_path):
    bot = make_bot(tmp_path)
    bot.engine.handle_message = AsyncMock(side_effect=[
        Decision(SPAM, user_id=1), Decision(PROMOTED, user_id=2), Decision(SKIPPED),
    ])

    updates = [update(5), update(6), {'update_id': 7, 'edited_message': {}}, update(8)]
    asyncio.run(bot._process_batch(updates))

    assert bot.offset == 9
    assert bot.engine.handle_message.await_count == 3
    assert bot.stats['messages_checked'] == 2
    assert bot.stats['spam_detected'] == 1
    assert bot.stats['users_whitelisted'] == 1


def test_batch_messages_are_handled_concurrently(tmp_path):
    bot = make_bot(tmp_path)
    in_flight = []
    peak = []

    async def slow_handler(message):
        in_flight.append(message['message_id'])
        peak.append(len(in_flight))
        await asyncio.sleep(0.01)
        in_flight.remove(message['message_id'])
        return Decision(SKIPPED)

    bot.engine.handle_message = slow_handler
    asyncio.run(bot._process_batch([update(1), update(2), update(3)]))

    assert max(peak) == 3


def test_failing_handler_does_not_stop_batch(tmp_path):
    bot = make_bot(tmp_path)
    bot.engine.handle_message = AsyncMock(side_effect=[OSError("disk full"), Decision(SPAM)])

    asyncio.run(bot._process_batch([update(1), update(2)]))

    assert bot.stats['handler_errors'] == 1
    assert bot.stats['spam_detected'] == 1
    assert bot.offset == 3


def test_poll_retries_after_fetch_error(tmp_path, monkeypatch):
    bot = make_bot(tmp_path)
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    async def get_updates(offset):
        if len(calls) == 0:
            calls.append(offset)
            raise TelegramAPIError("getUpdates request failed")
        calls.append(offset)
        bot.running = False
        return [update(3)]

    calls = []
    monkeypatch.setattr(asyncio, 'sleep', fake_sleep)
    bot.api.get_updates = get_updates
    bot.engine.handle_message = AsyncMock(return_value=Decision(SKIPPED))

    asyncio.run(bot._poll_updates())

    assert sleeps == [bot.config.POLL_RETRY_DELAY_SECONDS]
    assert calls == [0, 0]
    assert bot.offset == 4
