"""
White Guard - Main Bot
Telegram LLM Spam Filter with Whitelist Promotion
"""

import asyncio
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Dict, List

from config import Config
from decision_engine import (
    CLASSIFIER_UNAVAILABLE, PROMOTED, SKIPPED, SPAM,
    DecisionEngine, ModerationPolicy,
)
from llm_classifier import build_classifier
from reputation_tracker import ReputationTracker
from telegram_api import TelegramAPI, TelegramAPIError
from whitelist_store import WhitelistStore

logger = logging.getLogger(__name__)


def setup_logging():
    log_dir = os.path.dirname(Config.LOG_FILE)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(Config.LOG_FILE),
            logging.StreamHandler()
        ]
    )


class WhiteGuard:
    """
    White Guard Bot - Telegram spam filter backed by an LLM

    Features:
    - Scores every message from non-whitelisted users with an LLM
    - Replies with a warning when the spam score crosses the threshold
    - Counts clean messages and whitelists users after enough of them
    - Whitelisted users skip the LLM entirely
    """

    def __init__(self, config: Config = None, api: TelegramAPI = None,
                 classifier=None, whitelist: WhitelistStore = None):
        self.config = config or Config()

        if api is None:
            if not self.config.BOT_TOKEN:
                logger.error("Missing TELEGRAM_BOT_TOKEN!")
                sys.exit(1)
            api = TelegramAPI(
                self.config.BOT_TOKEN,
                api_url=self.config.TELEGRAM_API_URL,
                poll_timeout=self.config.POLL_TIMEOUT_SECONDS,
            )
        self.api = api
        self.classifier = classifier or build_classifier(self.config)

        if whitelist is None:
            whitelist = WhitelistStore(self.config.WHITELIST_FILE)
            whitelist.load()
        self.whitelist = whitelist
        self.reputation = ReputationTracker()
        self.engine = DecisionEngine(
            policy=ModerationPolicy.from_config(self.config),
            whitelist=self.whitelist,
            reputation=self.reputation,
            classifier=self.classifier,
            notifier=self.api,
        )

        # Stats
        self.stats = {
            'messages_checked': 0,
            'spam_detected': 0,
            'users_whitelisted': 0,
            'classifier_failures': 0,
            'handler_errors': 0,
            'start_time': datetime.now(timezone.utc)
        }

        self.running = True
        self.offset = 0

        logger.info("🛡️ White Guard initialized")

    async def start(self):
        """Start the bot"""
        logger.info("🛡️ White Guard starting...")

        try:
            await self.api.delete_webhook()
        except TelegramAPIError as e:
            logger.warning(f"deleteWebhook failed: {e}")

        try:
            bot_info = await self.api.get_me()
            logger.info(f"Bot: @{bot_info.get('username', 'unknown')} (ID: {bot_info.get('id')})")
        except TelegramAPIError as e:
            logger.warning(f"getMe failed: {e}")

        await self._poll_updates()

    async def _poll_updates(self):
        """Poll for updates"""
        logger.info("Starting update polling...")

        while self.running:
            try:
                updates = await self.api.get_updates(self.offset)
            except TelegramAPIError as e:
                logger.warning(f"getUpdates error: {e}. Retrying in {self.config.POLL_RETRY_DELAY_SECONDS}s...")
                await asyncio.sleep(self.config.POLL_RETRY_DELAY_SECONDS)
                continue

            await self._process_batch(updates)

    async def _process_batch(self, updates: List[Dict]):
        """Advance the offset past the batch and handle its messages concurrently."""
        if not updates:
            return
        self.offset = max(update['update_id'] for update in updates) + 1

        messages = [update['message'] for update in updates if update.get('message')]
        await asyncio.gather(*(self._handle_message(message) for message in messages))

    async def _handle_message(self, message: Dict):
        try:
            decision = await self.engine.handle_message(message)
        except Exception as e:
            self.stats['handler_errors'] += 1
            logger.error(f"Error handling message {message.get('message_id')}: {e}", exc_info=True)
            return

        if decision.action != SKIPPED:
            self.stats['messages_checked'] += 1
        if decision.action == SPAM:
            self.stats['spam_detected'] += 1
        elif decision.action == PROMOTED:
            self.stats['users_whitelisted'] += 1
        elif decision.action == CLASSIFIER_UNAVAILABLE:
            self.stats['classifier_failures'] += 1

    def log_stats(self):
        uptime = datetime.now(timezone.utc) - self.stats['start_time']
        logger.info(
            f"📊 Uptime {uptime}: {self.stats['messages_checked']} checked, "
            f"{self.stats['spam_detected']} spam, "
            f"{self.stats['users_whitelisted']} whitelisted, "
            f"{self.stats['classifier_failures']} classifier failures, "
            f"{self.stats['handler_errors']} handler errors"
        )

    async def close(self):
        await self.api.close()
        await self.classifier.close()


async def main():
    setup_logging()
    print("""
╔═══════════════════════════════════════════════════╗
║              🛡️  WHITE GUARD                       ║
║       Telegram LLM Spam Filter & Whitelist        ║
╚═══════════════════════════════════════════════════╝
    """)

    bot = WhiteGuard()
    try:
        await bot.start()
    finally:
        bot.log_stats()
        await bot.close()


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
