"""Conversation history listing (read path, best-effort)."""

import logging
from typing import List, Optional

from aisaint.core.config import HISTORY_PAGE_SIZE
from aisaint.core.errors import StorageError, UnauthenticatedError
from aisaint.features.chat.service import record_storage_degraded
from aisaint.features.conversations.store import ConversationStore
from aisaint.models.conversation import ConversationSummary

logger = logging.getLogger(__name__)


class HistoryService:
    def __init__(self, store: ConversationStore, page_size: int = HISTORY_PAGE_SIZE):
        self._store = store
        self.page_size = page_size

    async def list(self, user_id: Optional[str]) -> List[ConversationSummary]:
        """Newest first. A store failure yields an empty list instead of an error."""
        if not user_id:
            raise UnauthenticatedError("User must be authenticated")

        try:
            summaries = await self._store.list_conversations(user_id, limit=self.page_size)
        except StorageError as exc:
            record_storage_degraded("list_conversations", exc, user_id=user_id)
            return []

        logger.info("[history] fetched", extra={"user_id": user_id, "conversation_count": len(summaries)})
        return summaries
