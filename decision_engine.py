"""
White Guard - Decision Engine
Per-message moderation: whitelist check, LLM verdict, warn or count towards promotion.
"""

import html
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from config import Config
from llm_classifier import ClassifierUnavailable
from reputation_tracker import ReputationTracker
from whitelist_store import WhitelistStore

logger = logging.getLogger(__name__)

# Decision actions
SKIPPED = 'skipped'
WHITELISTED = 'whitelisted'
CLASSIFIER_UNAVAILABLE = 'classifier_unavailable'
SPAM = 'spam'
HAM = 'ham'
PROMOTED = 'promoted'


@dataclass(frozen=True)
class ModerationPolicy:
    spam_threshold: int = 70
    ham_threshold: int = 15
    tag_username: Optional[str] = None
    echo_ham: bool = False
    notify_chat_id: Optional[int] = None
    max_text_length: int = 250

    @classmethod
    def from_config(cls, config: Config) -> "ModerationPolicy":
        return cls(
            spam_threshold=config.SPAM_THRESHOLD,
            ham_threshold=config.HAM_WHITELIST_THRESHOLD,
            tag_username=config.TAG_USERNAME,
            echo_ham=config.ECHO_HAM,
            notify_chat_id=config.NOTIFY_USER_ID,
            max_text_length=config.MAX_CLASSIFY_CHARS,
        )


@dataclass
class Decision:
    action: str
    user_id: Optional[int] = None
    spam_score: Optional[int] = None
    ham_count: Optional[int] = None


class DecisionEngine:
    """
    Decides what to do with one incoming chat message.

    Whitelisted users are never sent to the classifier. Everyone else is
    scored: spam gets a warning reply, clean messages are counted and the
    user is whitelisted once the count reaches the policy threshold.
    If the classifier is unavailable the message is let through untouched.

    The engine keeps no state of its own; the whitelist and reputation
    tracker are shared between concurrently handled messages.
    """

    def __init__(self, policy: ModerationPolicy, whitelist: WhitelistStore,
                 reputation: ReputationTracker, classifier, notifier):
        self.policy = policy
        self.whitelist = whitelist
        self.reputation = reputation
        self.classifier = classifier
        self.notifier = notifier

    async def handle_message(self, message: Dict) -> Decision:
        text = message.get('text')
        if not isinstance(text, str) or not text.strip():
            return Decision(SKIPPED)
        text = text.strip()[:self.policy.max_text_length]

        user = message.get('from') or {}
        user_id = user.get('id')
        if user_id is None:
            return Decision(SKIPPED)
        if user.get('is_bot'):
            return Decision(SKIPPED, user_id=user_id)

        if self.whitelist.contains(user_id):
            logger.debug(f"User {user_id} is whitelisted, skipping check")
            return Decision(WHITELISTED, user_id=user_id)

        try:
            verdict = await self.classifier.classify(text)
        except ClassifierUnavailable as e:
            # Fail open: the message passes as if it were clean, but is not counted
            logger.warning(f"⚠️ Spam check failed for user {user_id}, letting message through: {e}")
            return Decision(CLASSIFIER_UNAVAILABLE, user_id=user_id)

        logger.info(f"Spam score for {user_id}: {verdict.spam_score}%, notes: {verdict.notes}")

        chat_id = (message.get('chat') or {}).get('id')
        message_id = message.get('message_id')

        if verdict.spam_score >= self.policy.spam_threshold:
            await self._warn_spam(chat_id, message_id, verdict.spam_score, verdict.notes)
            return Decision(SPAM, user_id=user_id, spam_score=verdict.spam_score)

        count = await self.reputation.increment(user_id)

        if self.policy.echo_ham:
            delivered = await self.notifier.send_message(
                chat_id,
                f"✅ Not spam ({verdict.spam_score}%). Clean messages: {count}/{self.policy.ham_threshold}",
                reply_to_message_id=message_id,
            )
            if not delivered:
                logger.warning(f"Ham echo for message {message_id} in {chat_id} was not delivered")

        if count >= self.policy.ham_threshold:
            if await self.whitelist.add(user_id):
                await self._announce_promotion(chat_id, user_id, user.get('username'))
                return Decision(PROMOTED, user_id=user_id, spam_score=verdict.spam_score, ham_count=count)

        return Decision(HAM, user_id=user_id, spam_score=verdict.spam_score, ham_count=count)

    async def _warn_spam(self, chat_id: int, message_id: Optional[int], score: int, notes: str):
        mention = f"@{html.escape(self.policy.tag_username)} " if self.policy.tag_username else ""
        text = f"{mention}⚠️ SPAM ({score}%). Reason: {html.escape(notes)}"

        delivered = await self.notifier.send_message(chat_id, text, reply_to_message_id=message_id)
        if not delivered:
            logger.warning(f"Spam warning for message {message_id} in {chat_id} was not delivered")

    async def _announce_promotion(self, chat_id: int, user_id: int, username: Optional[str]):
        user_tag = f"@{html.escape(username)}" if username else f"id {user_id}"
        target = self.policy.notify_chat_id if self.policy.notify_chat_id is not None else chat_id
        text = (f"✅ User {user_tag} added to the whitelist after "
                f"{self.policy.ham_threshold} clean messages")

        logger.info(f"⭐ Promoted {user_id} to whitelist, announcing in {target}")
        delivered = await self.notifier.send_message(target, text)
        if not delivered:
            logger.warning(f"Promotion notice for {user_id} to {target} was not delivered")
