"""Tests for response accumulation and stream draining."""

import pytest
from conftest import Collector

from pocket_rag.exceptions import GenerationCancelled
from pocket_rag.streaming import (
    CancellationToken,
    IncrementKind,
    ResponseAccumulator,
    StreamingIncrement,
    drain,
    emit_final,
    iterate_in_thread,
)


def test_delta_increments_append():
    sink = Collector()
    acc = ResponseAccumulator(sink, kind=IncrementKind.DELTA)

    acc.feed("He")
    acc.feed("llo")

    assert acc.finish() == "Hello"
    assert sink.emissions == [("He", False), ("Hello", False), ("Hello", True)]


def test_cumulative_increments_replace():
    sink = Collector()
    acc = ResponseAccumulator(sink, kind=IncrementKind.CUMULATIVE)

    acc.feed("He")
    acc.feed("Hello")

    assert acc.finish() == "Hello"
    assert sink.emissions == [("He", False), ("Hello", False), ("Hello", True)]


def test_both_conventions_converge():
    delta = ResponseAccumulator()
    delta.feed_increment(StreamingIncrement(IncrementKind.DELTA, "He"))
    delta.feed_increment(StreamingIncrement(IncrementKind.DELTA, "llo"))

    cumulative = ResponseAccumulator()
    cumulative.feed_increment(StreamingIncrement(IncrementKind.CUMULATIVE, "He"))
    cumulative.feed_increment(StreamingIncrement(IncrementKind.CUMULATIVE, "Hello"))

    assert delta.finish() == cumulative.finish() == "Hello"


@pytest.mark.parametrize(
    "increments",
    [["He", "llo", " world"], ["He", "Hello", "Hello world"]],
)
def test_auto_detects_convention(increments):
    acc = ResponseAccumulator(kind=IncrementKind.AUTO)

    for text in increments:
        acc.feed(text)

    assert acc.finish() == "Hello world"


def test_whitespace_only_increment_not_forwarded():
    sink = Collector()
    acc = ResponseAccumulator(sink)

    acc.feed("Hi")
    acc.feed("  ")
    acc.feed("\n")
    acc.feed("there")

    assert sink.texts == ["Hi", "Hi  \nthere"]


def test_leading_whitespace_trimmed():
    sink = Collector()
    acc = ResponseAccumulator(sink)

    acc.feed("  \n")
    acc.feed(" Answer ")

    assert sink.texts == ["Answer"]
    assert acc.text == "Answer"


def test_done_emitted_exactly_once():
    sink = Collector()
    acc = ResponseAccumulator(sink)

    acc.feed("a")
    acc.feed("b", done=True)
    acc.feed("c")
    acc.finish()

    assert sink.done_count == 1
    assert sink.emissions[-1] == ("ab", True)
    assert acc.text == "ab"


def test_done_on_whitespace_still_emits():
    sink = Collector()
    acc = ResponseAccumulator(sink)

    acc.feed("done")
    acc.feed("   ", done=True)

    assert sink.emissions[-1] == ("done", True)


def test_text_never_shrinks_for_delta():
    sink = Collector()
    acc = ResponseAccumulator(sink)

    for piece in ["The", " fire", " extinguisher", " is", " in", " room", " 3."]:
        acc.feed(piece)
    acc.finish()

    lengths = [len(text) for text in sink.texts]
    assert lengths == sorted(lengths)
    assert sink.texts[-1] == "The fire extinguisher is in room 3."


def test_sink_errors_do_not_break_accumulation():
    def broken_sink(text, done):
        raise RuntimeError("UI gone")

    acc = ResponseAccumulator(broken_sink)
    acc.feed("still ")
    acc.feed("works")

    assert acc.finish() == "still works"


def test_emit_final_sends_one_done_emission():
    sink = Collector()

    emit_final(sink, "  Room 3  ")
    emit_final(None, "ignored")

    assert sink.emissions == [("Room 3", True)]


@pytest.mark.asyncio
async def test_iterate_in_thread_yields_all_items():
    items = [item async for item in iterate_in_thread(iter(["a", "b", "c"]))]

    assert items == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_drain_returns_final_text():
    sink = Collector()

    text = await drain(iter(["He", "llo"]), ResponseAccumulator(sink))

    assert text == "Hello"
    assert sink.done_count == 1


@pytest.mark.asyncio
async def test_drain_cancellation_returns_partial_text():
    token = CancellationToken()
    sink = Collector(on_emit=lambda text, done: token.cancel())
    closed = []

    def generator():
        try:
            yield "partial"
            yield " more"
            yield " never"
        finally:
            closed.append(True)

    with pytest.raises(GenerationCancelled) as exc_info:
        await drain(generator(), ResponseAccumulator(sink), token)

    assert exc_info.value.partial_text == "partial"
    assert sink.emissions[-1] == ("partial", True)
    assert closed == [True]


@pytest.mark.asyncio
async def test_drain_propagates_backend_errors():
    def failing():
        yield "ok"
        raise RuntimeError("decode error")

    with pytest.raises(RuntimeError):
        await drain(failing(), ResponseAccumulator())
