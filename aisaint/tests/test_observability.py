"""Metrics export and tracing spans."""
import pytest

from aisaint.core.metrics import METRICS, normalize_path
from aisaint.core.tracing import get_exported_spans, reset_exported_spans, setup_tracing


@pytest.fixture
def memory_tracing():
    setup_tracing(enabled=True, exporter_name="memory")
    reset_exported_spans()
    yield
    setup_tracing(enabled=False)


def test_normalize_path_collapses_ids():
    assert normalize_path("/v1/chat/history") == "/v1/chat/history"
    assert normalize_path("/v1/items/123") == "/v1/items/:id"
    assert normalize_path("/v1/items/3f2b6c1e-9a4d-4c61-8d2e-0b1a2c3d4e5f/") == "/v1/items/:id"


@pytest.mark.asyncio
async def test_metrics_endpoint_exports_chat_counters(client, allow_user_header):
    await client.post("/v1/chat/messages", json={"message": "Hello"}, headers={"X-User-Id": "user-1"})
    await client.post("/v1/chat/messages", json={"message": ""}, headers={"X-User-Id": "user-1"})

    resp = await client.get("/metrics")
    text = resp.text

    assert resp.status_code == 200
    assert 'chat_messages_total{outcome="success"} 1' in text
    assert 'chat_messages_total{outcome="validation_error"} 1' in text
    assert 'entitlement_resolutions_total{tier="NOT_ENTITLED",source="default"} 1' in text
    assert 'http_requests_total{method="POST",path="/v1/chat/messages",status="200"} 1' in text


def test_registry_reset_clears_values():
    counter = METRICS.counter("chat_messages_total")
    counter.inc(labels={"outcome": "success"})

    METRICS.reset()

    assert counter.value({"outcome": "success"}) == 0


@pytest.mark.asyncio
async def test_chat_cycle_emits_spans(chat_service, memory_tracing):
    await chat_service.process_message("user-1", "Hello")

    names = {span.name for span in get_exported_spans()}
    assert "chat.process_message" in names


@pytest.mark.asyncio
async def test_spans_skip_missing_attributes(chat_service, memory_tracing):
    await chat_service.process_message("user-1", "Hello")

    span = next(s for s in get_exported_spans() if s.name == "chat.process_message")
    assert span.attributes["user_id"] == "user-1"
    assert "conversation_id" not in span.attributes


@pytest.mark.asyncio
async def test_generation_emits_span(memory_tracing):
    from aisaint.features.ai.service import ResponseGenerator
    from aisaint.tests.mocks import FakeAsyncGroq

    await ResponseGenerator("gsk_test", client=FakeAsyncGroq()).generate("Hello")

    span = next(s for s in get_exported_spans() if s.name == "ai.generate")
    assert span.attributes["prompt_length"] == 5


def test_counter_rejects_unknown_labels():
    counter = METRICS.counter("chat_messages_total")

    with pytest.raises(ValueError):
        counter.inc(labels={"result": "success"})


def test_export_includes_help_text():
    assert "# HELP storage_degraded_total" in METRICS.export_prometheus()
