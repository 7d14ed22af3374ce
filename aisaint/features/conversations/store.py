"""
aisaint/features/conversations/store.py

Durable storage for transcripts and per-user counters.

Handles:
- Transcript reads (missing conversations read as empty transcripts)
- Append-only exchange writes, safe under concurrent writers
- Atomic usage counter increments
- Recency-ordered history listing
- Read access to the user and commerce-mirror records

Every method raises StorageError on database failure. Callers decide
whether a failure is fatal; the chat and history services absorb them.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from aisaint.core.config import HISTORY_PAGE_SIZE
from aisaint.core.database import conversation_messages, conversations, customers, users
from aisaint.core.errors import StorageError
from aisaint.models.conversation import Conversation, ConversationSummary, Message, utcnow
from aisaint.models.entitlement import EntitlementRecord
from aisaint.models.user import UserRecord


logger = logging.getLogger(__name__)

APPEND_MAX_ATTEMPTS = 5
INCREMENT_MAX_ATTEMPTS = 3


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands back naive datetimes; everything stored here is UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _message_from_row(row) -> Message:
    return Message(role=row.role, content=row.content, timestamp=_as_utc(row.timestamp))


class ConversationStore:
    """Async SQLAlchemy-backed conversation and counter store."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        *,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = lambda: uuid4().hex,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._id_factory = id_factory

    def new_conversation_id(self) -> str:
        return self._id_factory()

    async def get_conversation(self, user_id: str, conversation_id: Optional[str] = None) -> Conversation:
        """Load a transcript.

        No id allocates a fresh one. An id with no stored conversation
        returns an empty transcript anchored to that id.
        """
        if not conversation_id:
            return Conversation(id=self.new_conversation_id(), user_id=user_id)

        try:
            async with self._session_factory() as session:
                conv_row = (
                    await session.execute(
                        select(conversations)
                        .where(conversations.c.user_id == user_id)
                        .where(conversations.c.id == conversation_id)
                    )
                ).first()
                if not conv_row:
                    return Conversation(id=conversation_id, user_id=user_id)

                rows = (
                    await session.execute(
                        select(conversation_messages)
                        .where(conversation_messages.c.user_id == user_id)
                        .where(conversation_messages.c.conversation_id == conversation_id)
                        .order_by(conversation_messages.c.position)
                    )
                ).all()
        except SQLAlchemyError as exc:
            raise StorageError("get_conversation", exc) from exc

        return Conversation(
            id=conversation_id,
            user_id=user_id,
            messages=[_message_from_row(row) for row in rows],
            last_updated=_as_utc(conv_row.last_updated),
        )

    async def append_exchange(
        self,
        user_id: str,
        conversation_id: str,
        user_message: Message,
        assistant_message: Message,
    ) -> datetime:
        """Append a user/assistant pair and stamp last_updated.

        Both rows land in one transaction at the next two free positions.
        A writer racing for the same positions hits the unique constraint
        and the whole append is retried against the new tail.

        Returns:
            The last_updated timestamp written.
        """
        for attempt in range(1, APPEND_MAX_ATTEMPTS + 1):
            try:
                return await self._append_once(user_id, conversation_id, user_message, assistant_message)
            except IntegrityError as exc:
                if attempt == APPEND_MAX_ATTEMPTS:
                    raise StorageError("append_exchange", exc) from exc
                logger.info(
                    "[conversations] append conflict, retrying",
                    extra={"user_id": user_id, "conversation_id": conversation_id, "attempt": attempt},
                )
            except SQLAlchemyError as exc:
                raise StorageError("append_exchange", exc) from exc
        raise StorageError("append_exchange")

    async def _append_once(
        self,
        user_id: str,
        conversation_id: str,
        user_message: Message,
        assistant_message: Message,
    ) -> datetime:
        now = self._clock()
        async with self._session_factory() as session:
            async with session.begin():
                touched = await session.execute(
                    update(conversations)
                    .where(conversations.c.user_id == user_id)
                    .where(conversations.c.id == conversation_id)
                    .values(last_updated=now)
                )
                if touched.rowcount == 0:
                    await session.execute(
                        insert(conversations).values(
                            user_id=user_id,
                            id=conversation_id,
                            last_updated=now,
                            created_at=now,
                        )
                    )

                tail = (
                    await session.execute(
                        select(func.max(conversation_messages.c.position))
                        .where(conversation_messages.c.user_id == user_id)
                        .where(conversation_messages.c.conversation_id == conversation_id)
                    )
                ).scalar()
                next_position = 0 if tail is None else tail + 1

                await session.execute(
                    insert(conversation_messages),
                    [
                        {
                            "user_id": user_id,
                            "conversation_id": conversation_id,
                            "position": next_position + offset,
                            "role": message.role,
                            "content": message.content,
                            "timestamp": message.timestamp,
                        }
                        for offset, message in enumerate((user_message, assistant_message))
                    ],
                )
        return now

    async def increment_message_count(self, user_id: str) -> None:
        """Atomically add one to message_count and stamp last_active.

        Creates the user row on first use.
        """
        for attempt in range(1, INCREMENT_MAX_ATTEMPTS + 1):
            now = self._clock()
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        result = await session.execute(
                            update(users)
                            .where(users.c.user_id == user_id)
                            .values(message_count=users.c.message_count + 1, last_active=now)
                        )
                        if result.rowcount == 0:
                            await session.execute(
                                insert(users).values(
                                    user_id=user_id,
                                    message_count=1,
                                    last_active=now,
                                    created_at=now,
                                )
                            )
                return
            except IntegrityError as exc:
                # Another request created the row first; the update will hit it now
                if attempt == INCREMENT_MAX_ATTEMPTS:
                    raise StorageError("increment_message_count", exc) from exc
            except SQLAlchemyError as exc:
                raise StorageError("increment_message_count", exc) from exc

    async def list_conversations(self, user_id: str, limit: int = HISTORY_PAGE_SIZE) -> List[ConversationSummary]:
        """Most recently updated conversations first, capped at `limit`."""
        try:
            async with self._session_factory() as session:
                conv_rows = (
                    await session.execute(
                        select(conversations)
                        .where(conversations.c.user_id == user_id)
                        .order_by(conversations.c.last_updated.desc(), conversations.c.id.desc())
                        .limit(limit)
                    )
                ).all()
                if not conv_rows:
                    return []

                ids = [row.id for row in conv_rows]
                message_rows = (
                    await session.execute(
                        select(conversation_messages)
                        .where(conversation_messages.c.user_id == user_id)
                        .where(conversation_messages.c.conversation_id.in_(ids))
                        .order_by(conversation_messages.c.conversation_id, conversation_messages.c.position)
                    )
                ).all()
        except SQLAlchemyError as exc:
            raise StorageError("list_conversations", exc) from exc

        grouped: Dict[str, List[Message]] = {conv_id: [] for conv_id in ids}
        for row in message_rows:
            grouped[row.conversation_id].append(_message_from_row(row))

        return [
            ConversationSummary(
                id=row.id,
                messages=grouped[row.id],
                last_updated=_as_utc(row.last_updated),
            )
            for row in conv_rows
        ]

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        try:
            async with self._session_factory() as session:
                row = (await session.execute(select(users).where(users.c.user_id == user_id))).first()
        except SQLAlchemyError as exc:
            raise StorageError("get_user", exc) from exc
        if not row:
            return None
        return UserRecord(
            user_id=row.user_id,
            message_count=row.message_count or 0,
            last_active=_as_utc(row.last_active),
            is_premium=row.is_premium,
            subscription_tier=row.subscription_tier,
        )

    async def get_entitlement_record(self, user_id: str) -> Optional[EntitlementRecord]:
        try:
            async with self._session_factory() as session:
                row = (await session.execute(select(customers).where(customers.c.user_id == user_id))).first()
        except SQLAlchemyError as exc:
            raise StorageError("get_entitlement_record", exc) from exc
        if not row:
            return None
        subscriptions = row.subscriptions if isinstance(row.subscriptions, dict) else {}
        return EntitlementRecord(user_id=row.user_id, subscriptions=subscriptions)
