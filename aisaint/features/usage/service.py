"""
aisaint/features/usage/service.py

Free-tier message quota.

Reads the user's lifetime message_count and compares it against a fixed
ceiling. Read-only: the counter is incremented by the chat service after
a successful generation cycle. Lookup failures fail open.
"""

import logging

from aisaint.core.config import FREE_TIER_MESSAGE_LIMIT
from aisaint.core.errors import QuotaExceededError
from aisaint.features.conversations.store import ConversationStore


logger = logging.getLogger(__name__)


class QuotaEnforcer:
    def __init__(self, store: ConversationStore, limit: int = FREE_TIER_MESSAGE_LIMIT):
        self._store = store
        self.limit = limit

    async def within_limit(self, user_id: str) -> bool:
        """True when a non-entitled user may send another message.

        Missing user record means zero usage. A failed lookup allows the
        message rather than blocking on an infrastructure error.
        """
        try:
            user = await self._store.get_user(user_id)
        except Exception as exc:
            logger.warning(
                "[quota] lookup failed, allowing",
                extra={"user_id": user_id, "error_code": "storage_degraded", "error": repr(exc)},
            )
            return True

        if user is None:
            logger.info("[quota] no usage recorded, allowing as new user", extra={"user_id": user_id})
            return True

        allowed = user.message_count < self.limit
        logger.info(
            "[quota] checked",
            extra={
                "user_id": user_id,
                "message_count": user.message_count,
                "limit": self.limit,
                "allowed": allowed,
            },
        )
        return allowed

    async def enforce(self, user_id: str) -> None:
        """Raise QuotaExceededError when the free-tier ceiling is reached."""
        if not await self.within_limit(user_id):
            logger.warning("[quota] BLOCK", extra={"user_id": user_id, "limit": self.limit, "error_code": "quota_exceeded"})
            raise QuotaExceededError(
                "Message limit exceeded. Please upgrade to premium for unlimited messages."
            )
