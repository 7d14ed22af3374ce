import pytest

from aisaint.core.errors import UnauthenticatedError
from aisaint.core.metrics import storage_degraded_total
from aisaint.features.history.service import HistoryService
from aisaint.tests.mocks import FlakyStore
from aisaint.models.conversation import Message


async def _append(store, user_id, conversation_id, text):
    await store.append_exchange(
        user_id,
        conversation_id,
        Message(role="user", content=text),
        Message(role="assistant", content=f"re: {text}"),
    )


@pytest.mark.asyncio
async def test_unauthenticated_list_is_rejected(store):
    with pytest.raises(UnauthenticatedError):
        await HistoryService(store).list(None)


@pytest.mark.asyncio
async def test_no_conversations_is_empty_list(store):
    assert await HistoryService(store).list("user-1") == []


@pytest.mark.asyncio
async def test_list_is_newest_first_and_only_own(store):
    await _append(store, "user-1", "a", "first")
    await _append(store, "user-1", "b", "second")
    await _append(store, "user-2", "c", "someone else")

    summaries = await HistoryService(store).list("user-1")

    assert [s.id for s in summaries] == ["b", "a"]
    assert summaries[0].messages[0].content == "second"


@pytest.mark.asyncio
async def test_page_size_caps_results(store):
    for n in range(3):
        await _append(store, "user-1", f"conv-{n}", f"msg {n}")

    summaries = await HistoryService(store, page_size=2).list("user-1")

    assert len(summaries) == 2


@pytest.mark.asyncio
async def test_repeated_reads_are_identical(store):
    await _append(store, "user-1", "a", "first")
    service = HistoryService(store)

    first = await service.list("user-1")
    second = await service.list("user-1")

    assert [s.model_dump() for s in first] == [s.model_dump() for s in second]


@pytest.mark.asyncio
async def test_store_failure_yields_empty_list(session_factory):
    flaky = FlakyStore(session_factory, failing={"list_conversations"})

    assert await HistoryService(flaky).list("user-1") == []
    assert storage_degraded_total.value({"operation": "list_conversations"}) == 1
