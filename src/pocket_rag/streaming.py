"""
Streaming response normalisation.

Backends report partial output in one of two conventions: ``DELTA`` (only the
newly generated text) or ``CUMULATIVE`` (everything generated so far). The
ResponseAccumulator turns either into one growing text per request so the
caller sees the same result regardless of which backend path answered.
"""

import asyncio
import logging
import threading
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Callable, Iterable, Optional, TypeVar

from pocket_rag.exceptions import GenerationCancelled

logger = logging.getLogger(__name__)

StreamSink = Callable[[str, bool], None]

T = TypeVar("T")

_EXHAUSTED = object()


class IncrementKind(str, Enum):
    DELTA = "delta"
    CUMULATIVE = "cumulative"
    # Treat an increment that extends the buffer as cumulative, else as delta
    AUTO = "auto"


@dataclass(frozen=True)
class StreamingIncrement:
    kind: IncrementKind
    text: str


class ResponseAccumulator:
    """
    Per-request running text buffer.

    Delta increments are appended, cumulative increments replace the buffer.
    The sink receives the trimmed buffer; whitespace-only increments are not
    forwarded, and the ``done=True`` emission happens exactly once.

    Example:
        >>> acc = ResponseAccumulator(kind=IncrementKind.DELTA)
        >>> acc.feed("He"); acc.feed("llo")
        >>> acc.finish()
        'Hello'
    """

    def __init__(self, sink: Optional[StreamSink] = None, kind: IncrementKind = IncrementKind.DELTA):
        self._sink = sink
        self.kind = kind
        self._buffer = ""
        self._last_forwarded: Optional[str] = None
        self._finished = False

    @property
    def text(self) -> str:
        return self._buffer.strip()

    @property
    def finished(self) -> bool:
        return self._finished

    def feed(self, text: str, done: bool = False) -> None:
        """Feed an increment in this accumulator's convention."""
        self._apply(self.kind, text, done)

    def feed_increment(self, increment: StreamingIncrement, done: bool = False) -> None:
        """Feed an increment that carries its own convention."""
        self._apply(increment.kind, increment.text, done)

    def _apply(self, kind: IncrementKind, text: str, done: bool) -> None:
        if self._finished:
            logger.debug("Ignoring increment after completion")
            return

        if kind == IncrementKind.AUTO:
            extends = bool(self._buffer) and text.startswith(self._buffer)
            kind = IncrementKind.CUMULATIVE if extends else IncrementKind.DELTA

        if kind == IncrementKind.CUMULATIVE:
            self._buffer = text
        else:
            self._buffer += text

        if done:
            self.finish()
            return

        if not text.strip():
            return

        visible = self.text
        if visible and visible != self._last_forwarded:
            self._emit(visible, False)

    def finish(self) -> str:
        """Emit the final text (once) and return it."""
        if not self._finished:
            self._finished = True
            self._emit(self.text, True)
        return self.text

    def _emit(self, text: str, done: bool) -> None:
        self._last_forwarded = text
        if self._sink is None:
            return
        try:
            self._sink(text, done)
        except Exception as e:
            logger.error(f"Stream sink failed: {e}")


def emit_final(sink: Optional[StreamSink], text: str) -> None:
    """Deliver a complete response to ``sink`` as one final emission."""
    ResponseAccumulator(sink, kind=IncrementKind.CUMULATIVE).feed(text, done=True)


class CancellationToken:
    """Cooperative cancellation flag, settable from any thread."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


async def iterate_in_thread(iterable: Iterable[T]) -> AsyncIterator[T]:
    """
    Advance a blocking iterator one item at a time in a worker thread.

    The iterator is closed (in a worker thread) when iteration stops early.
    """
    iterator = iter(iterable)
    try:
        while True:
            item = await asyncio.to_thread(next, iterator, _EXHAUSTED)
            if item is _EXHAUSTED:
                return
            yield item
    finally:
        close = getattr(iterator, "close", None)
        if close is not None:
            await asyncio.to_thread(close)


async def drain(
    increments: Iterable[str],
    accumulator: ResponseAccumulator,
    cancel_token: Optional[CancellationToken] = None,
) -> str:
    """
    Feed a blocking increment stream through the accumulator.

    Returns:
        The final accumulated text

    Raises:
        GenerationCancelled: If the token is cancelled mid-stream. The partial
            text has already been emitted as final.
    """
    async with aclosing(iterate_in_thread(increments)) as stream:
        async for text in stream:
            if cancel_token is not None and cancel_token.cancelled:
                raise GenerationCancelled(accumulator.finish())
            accumulator.feed(text)

    return accumulator.finish()
