"""
aisaint/features/chat/service.py

Entitlement-gated message processing.

One call runs strictly in order: authenticate, validate, resolve tier,
enforce the free-tier quota, load the transcript, generate, then persist
the exchange and bump the usage counter. Persistence is best-effort: a
store failure after generation is logged, counted and reported in the
DurabilityOutcome, and the caller still gets the reply.

The quota check and the counter increment are not one transaction, so
concurrent requests from one free-tier user can each pass the check and
overshoot the ceiling slightly.
"""

import logging
from typing import Any, List, Optional

from aisaint.core.config import MAX_CONVERSATION_ID_LENGTH
from aisaint.core.errors import (
    AppError,
    StorageError,
    UnauthenticatedError,
    ValidationError,
)
from aisaint.core.logging import log_event
from aisaint.core.metrics import chat_messages_total, storage_degraded_total
from aisaint.core.tracing import start_span
from aisaint.features.ai.service import ResponseGenerator
from aisaint.features.conversations.store import ConversationStore
from aisaint.features.entitlements.service import EntitlementResolver, Tier
from aisaint.features.usage.service import QuotaEnforcer
from aisaint.models.chat import ChatReply, DurabilityOutcome, ProcessResult
from aisaint.models.conversation import Conversation, Message


logger = logging.getLogger(__name__)


def _validate_request(message: Any, conversation_id: Any) -> None:
    # Whitespace-only text is a message; only missing or empty text is rejected
    if message is None or message == "":
        raise ValidationError("Message is required")
    if not isinstance(message, str):
        raise ValidationError("Message must be a string")
    if conversation_id is None:
        return
    if not isinstance(conversation_id, str):
        raise ValidationError("conversationId must be a string")
    if len(conversation_id) > MAX_CONVERSATION_ID_LENGTH:
        raise ValidationError(f"conversationId must be at most {MAX_CONVERSATION_ID_LENGTH} characters")


def record_storage_degraded(operation: str, exc: BaseException, *, user_id: Optional[str], conversation_id: Optional[str] = None) -> None:
    """Log and count a store failure that is absorbed instead of surfaced."""
    storage_degraded_total.inc(labels={"operation": operation})
    log_event(
        "warning",
        "storage.degraded",
        user_id=user_id,
        conversation_id=conversation_id,
        error_code="storage_degraded",
        operation=operation,
        error=repr(getattr(exc, "cause", None) or exc),
    )


class ChatService:
    def __init__(
        self,
        store: ConversationStore,
        resolver: EntitlementResolver,
        quota: QuotaEnforcer,
        generator: ResponseGenerator,
    ):
        self._store = store
        self._resolver = resolver
        self._quota = quota
        self._generator = generator

    async def process_message(
        self,
        user_id: Optional[str],
        message: Any,
        conversation_id: Any = None,
    ) -> ProcessResult:
        """Run one chat cycle.

        `message` and `conversation_id` arrive as decoded from the request
        body, so their types are checked here, after the identity check.
        """
        try:
            result = await self._process(user_id, message, conversation_id)
        except AppError as exc:
            chat_messages_total.inc(labels={"outcome": exc.code})
            raise
        chat_messages_total.inc(labels={"outcome": "success"})
        return result

    async def _process(
        self,
        user_id: Optional[str],
        message: Any,
        conversation_id: Any,
    ) -> ProcessResult:
        if not user_id:
            raise UnauthenticatedError("User must be authenticated")

        _validate_request(message, conversation_id)

        with start_span("chat.process_message", {"user_id": user_id, "conversation_id": conversation_id}):
            tier = await self._resolver.resolve(user_id)
            if tier is Tier.NOT_ENTITLED:
                await self._quota.enforce(user_id)

            log_event(
                "info",
                "chat.processing",
                user_id=user_id,
                conversation_id=conversation_id or "new",
                message_length=len(message),
                tier=tier.value,
            )

            conversation = await self._load_conversation(user_id, conversation_id)
            user_message = Message(role="user", content=message)

            # Only the latest message is sent; stored history is not threaded into the prompt
            response_text = await self._generator.generate(message)

            assistant_message = Message(role="assistant", content=response_text)
            durability = await self._persist(user_id, conversation.id, user_message, assistant_message)

            log_event(
                "info",
                "chat.processed",
                user_id=user_id,
                conversation_id=conversation.id,
                transcript_persisted=durability.transcript_persisted,
                counter_incremented=durability.counter_incremented,
            )

            return ProcessResult(
                reply=ChatReply(message=response_text, response=response_text, conversation_id=conversation.id),
                durability=durability,
            )

    async def _load_conversation(self, user_id: str, conversation_id: Optional[str]) -> Conversation:
        try:
            return await self._store.get_conversation(user_id, conversation_id)
        except StorageError as exc:
            anchored_id = conversation_id or self._store.new_conversation_id()
            record_storage_degraded("get_conversation", exc, user_id=user_id, conversation_id=anchored_id)
            return Conversation(id=anchored_id, user_id=user_id)

    async def _persist(
        self,
        user_id: str,
        conversation_id: str,
        user_message: Message,
        assistant_message: Message,
    ) -> DurabilityOutcome:
        failures: List[str] = []

        transcript_persisted = True
        try:
            await self._store.append_exchange(user_id, conversation_id, user_message, assistant_message)
        except StorageError as exc:
            transcript_persisted = False
            failures.append("append_exchange")
            record_storage_degraded("append_exchange", exc, user_id=user_id, conversation_id=conversation_id)

        counter_incremented = True
        try:
            await self._store.increment_message_count(user_id)
        except StorageError as exc:
            counter_incremented = False
            failures.append("increment_message_count")
            record_storage_degraded("increment_message_count", exc, user_id=user_id, conversation_id=conversation_id)

        return DurabilityOutcome(
            transcript_persisted=transcript_persisted,
            counter_incremented=counter_incremented,
            failures=failures,
        )
