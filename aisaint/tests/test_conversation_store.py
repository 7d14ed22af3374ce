"""
Tests for the conversation store: transcript reads, append-only writes,
usage counters and history ordering.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from aisaint.features.conversations.store import ConversationStore
from aisaint.models.conversation import Message


def _pair(n: int):
    return Message(role="user", content=f"question {n}"), Message(role="assistant", content=f"answer {n}")


class TickingClock:
    """Deterministic, strictly increasing server time."""

    def __init__(self):
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now = self.now + timedelta(seconds=1)
        return self.now


@pytest.mark.asyncio
async def test_get_conversation_without_id_allocates_new_empty_transcript(store):
    first = await store.get_conversation("user-1")
    second = await store.get_conversation("user-1")

    assert first.id
    assert first.messages == []
    assert first.id != second.id


@pytest.mark.asyncio
async def test_get_conversation_unknown_id_is_empty_and_anchored(store):
    conv = await store.get_conversation("user-1", "missing-conv")

    assert conv.id == "missing-conv"
    assert conv.user_id == "user-1"
    assert conv.messages == []


@pytest.mark.asyncio
async def test_append_exchange_preserves_order_across_appends(store):
    for n in range(3):
        user_msg, assistant_msg = _pair(n)
        await store.append_exchange("user-1", "conv-1", user_msg, assistant_msg)

    conv = await store.get_conversation("user-1", "conv-1")

    assert [m.role for m in conv.messages] == ["user", "assistant"] * 3
    assert [m.content for m in conv.messages] == [
        "question 0", "answer 0",
        "question 1", "answer 1",
        "question 2", "answer 2",
    ]
    assert conv.last_updated is not None


@pytest.mark.asyncio
async def test_append_exchange_stamps_last_updated(session_factory):
    clock = TickingClock()
    store = ConversationStore(session_factory, clock=clock)

    stamped = await store.append_exchange("user-1", "conv-1", *_pair(0))
    conv = await store.get_conversation("user-1", "conv-1")

    assert conv.last_updated == stamped


@pytest.mark.asyncio
async def test_conversations_are_scoped_per_user(store):
    await store.append_exchange("alice", "shared-id", *_pair(0))

    other = await store.get_conversation("bob", "shared-id")
    assert other.messages == []

    await store.append_exchange("bob", "shared-id", *_pair(1))
    alice = await store.get_conversation("alice", "shared-id")
    assert [m.content for m in alice.messages] == ["question 0", "answer 0"]


@pytest.mark.asyncio
async def test_concurrent_appends_to_same_conversation_are_not_lost(store):
    await asyncio.gather(
        *(store.append_exchange("user-1", "conv-1", *_pair(n)) for n in range(5))
    )

    conv = await store.get_conversation("user-1", "conv-1")

    assert len(conv.messages) == 10
    # Each exchange stays contiguous: user turn immediately followed by its answer
    for i in range(0, 10, 2):
        question, answer = conv.messages[i], conv.messages[i + 1]
        assert question.role == "user"
        assert answer.role == "assistant"
        assert question.content.replace("question", "") == answer.content.replace("answer", "")


@pytest.mark.asyncio
async def test_increment_message_count_creates_then_increments(store):
    assert await store.get_user("user-1") is None

    await store.increment_message_count("user-1")
    await store.increment_message_count("user-1")

    user = await store.get_user("user-1")
    assert user.message_count == 2
    assert user.last_active is not None


@pytest.mark.asyncio
async def test_increment_message_count_keeps_existing_flags(store, engine, seed):
    await seed.user(engine, "user-1", message_count=7, is_premium=True)

    await store.increment_message_count("user-1")

    user = await store.get_user("user-1")
    assert user.message_count == 8
    assert user.is_premium is True


@pytest.mark.asyncio
async def test_list_conversations_newest_first(session_factory):
    store = ConversationStore(session_factory, clock=TickingClock())
    await store.append_exchange("user-1", "older", *_pair(0))
    await store.append_exchange("user-1", "newer", *_pair(1))
    await store.append_exchange("user-1", "older", *_pair(2))

    summaries = await store.list_conversations("user-1")

    assert [s.id for s in summaries] == ["older", "newer"]
    assert len(summaries[0].messages) == 4
    assert summaries[0].last_updated > summaries[1].last_updated


@pytest.mark.asyncio
async def test_list_conversations_respects_limit(session_factory):
    store = ConversationStore(session_factory, clock=TickingClock())
    for n in range(4):
        await store.append_exchange("user-1", f"conv-{n}", *_pair(n))

    summaries = await store.list_conversations("user-1", limit=2)

    assert [s.id for s in summaries] == ["conv-3", "conv-2"]


@pytest.mark.asyncio
async def test_list_conversations_empty_for_unknown_user(store):
    assert await store.list_conversations("nobody") == []


@pytest.mark.asyncio
async def test_get_entitlement_record(store, engine, seed):
    assert await store.get_entitlement_record("user-1") is None

    await seed.customer(engine, "user-1", active=True)

    record = await store.get_entitlement_record("user-1")
    assert record.user_id == "user-1"
    assert record.subscriptions
