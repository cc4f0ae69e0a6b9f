"""Tests for the retrieval + inference chain."""

import pytest
from conftest import CORPUS_CHUNKS, Collector, FakeBackend

from pocket_rag.exceptions import GenerationCancelled
from pocket_rag.models import TaskType
from pocket_rag.streaming import CancellationToken, IncrementKind


@pytest.fixture
def loaded_backend():
    backend = FakeBackend(reply="It is in room 3.")
    backend.initialize()
    return backend


@pytest.mark.asyncio
async def test_invoke_renders_context_and_streams(memory, rag_chain, loaded_backend):
    await memory.record(CORPUS_CHUNKS)
    sink = Collector()

    answer = await rag_chain.invoke(
        rag_chain.build_request("where is the fire extinguisher"), loaded_backend, sink
    )

    assert answer == "It is in room 3."
    assert sink.emissions[-1] == ("It is in room 3.", True)
    prompt = loaded_backend.prompts[0]
    assert "fire extinguisher is in room 3" in prompt
    assert prompt.endswith("the user has: where is the fire extinguisher")


@pytest.mark.asyncio
async def test_context_joined_in_result_order(memory, rag_chain):
    await memory.record(CORPUS_CHUNKS)

    context = await rag_chain.retrieve_context(rag_chain.build_request("where is the fire extinguisher"))

    assert context == "fire extinguisher is in room 3\nfirst aid kit is behind the desk"


@pytest.mark.asyncio
async def test_empty_memory_renders_empty_context(rag_chain):
    prompt = await rag_chain.render(rag_chain.build_request("hello"))

    assert "remember:  Use" in prompt


@pytest.mark.asyncio
async def test_passthrough_sends_query_verbatim(memory, translation_chain, loaded_backend, embedding):
    await memory.record(CORPUS_CHUNKS)
    calls = embedding.calls

    request = translation_chain.build_request("Translate {this} please")
    await translation_chain.invoke(request, loaded_backend)

    assert request.k == 0
    assert request.task_type == TaskType.TRANSLATION
    assert loaded_backend.prompts == ["Translate {this} please"]
    assert embedding.calls == calls


@pytest.mark.asyncio
async def test_uses_backend_increment_convention(rag_chain):
    backend = FakeBackend(reply="ignored", increment_kind=IncrementKind.CUMULATIVE)
    backend.initialize()
    backend.pieces = lambda: ["The", "The answer", "The answer is 3"]

    answer = await rag_chain.invoke(rag_chain.build_request("q"), backend)

    assert answer == "The answer is 3"


@pytest.mark.asyncio
async def test_cancellation_propagates(rag_chain, loaded_backend):
    token = CancellationToken()
    sink = Collector(on_emit=lambda text, done: token.cancel())

    with pytest.raises(GenerationCancelled) as exc_info:
        await rag_chain.invoke(rag_chain.build_request("q"), loaded_backend, sink, token)

    assert exc_info.value.partial_text == "It"
