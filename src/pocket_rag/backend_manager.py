"""
Inference backend manager.

Owns the persistent text backend and every transient multimodal backend.
All entry points are serialised behind one asyncio.Lock, so at most one
generation touches a model at any time. Entry points return a final string
even when something goes wrong; failures become an explanatory message.

Image questions temporarily swap the persistent model for a vision-enabled
one (the device cannot hold both), and fall back to a text-only answer for
the same query when the swap fails for any reason.
"""

import asyncio
import inspect
import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, List, Optional, TypeVar, Union

from pocket_rag.backends import InferenceBackend, MultimodalBackendFactory
from pocket_rag.chain import RetrievalInferenceChain
from pocket_rag.config import MultimodalConfig, PromptConfig
from pocket_rag.exceptions import BackendUnavailable, GenerationCancelled, OutOfMemory
from pocket_rag.images import RawImage
from pocket_rag.models import BackendState, BackendStatus, GenerationMode
from pocket_rag.prompt import fill_slots
from pocket_rag.streaming import CancellationToken, ResponseAccumulator, StreamSink, drain, emit_final

logger = logging.getLogger(__name__)

T = TypeVar("T")

StateListener = Callable[[BackendState], None]

MODEL_LOAD_FAILED = "AI model failed to load"


def _close_late_result(task: "asyncio.Future[Any]") -> None:
    """Close whatever a timed-out construction step eventually produced."""
    if task.cancelled() or task.exception() is not None:
        return
    close = getattr(task.result(), "close", None)
    if close is None:
        return
    try:
        close()
        logger.info("Closed late multimodal construction result")
    except Exception as e:
        logger.error(f"Failed to close late multimodal construction result: {e}")


class InferenceBackendManager:
    """
    Serialised access to the on-device language model.

    Example:
        >>> manager = InferenceBackendManager(backend, rag_chain, translation_chain)
        >>> await manager.initialize()
        >>> answer = await manager.generate("Where is the fire extinguisher?")
    """

    def __init__(
        self,
        backend: InferenceBackend,
        rag_chain: RetrievalInferenceChain,
        translation_chain: RetrievalInferenceChain,
        multimodal_factory: Optional[MultimodalBackendFactory] = None,
        multimodal: Optional[MultimodalConfig] = None,
        prompts: Optional[PromptConfig] = None,
    ):
        self._backend = backend
        self.rag_chain = rag_chain
        self.translation_chain = translation_chain
        self.multimodal_factory = multimodal_factory
        self.multimodal = multimodal or MultimodalConfig()
        self.prompts = prompts or PromptConfig()

        self._lock = asyncio.Lock()
        self._loaded = False
        self._state = BackendState()
        self._listeners: List[StateListener] = []
        self._current_token: Optional[CancellationToken] = None
        self._last_mode: Optional[GenerationMode] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> BackendState:
        return self._state

    @property
    def last_mode(self) -> Optional[GenerationMode]:
        """Which path produced the most recent answer."""
        return self._last_mode

    @property
    def multimodal_available(self) -> bool:
        return self.multimodal_factory is not None and self.multimodal.enabled

    def add_state_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def _set_state(self, state: BackendState) -> None:
        if state == self._state:
            return
        logger.debug(f"Backend state: {self._state.status.value} -> {state.status.value}")
        self._state = state
        for listener in self._listeners:
            try:
                listener(state)
            except Exception as e:
                logger.error(f"State listener failed: {e}")

    def _failure_message(self) -> str:
        if self._state.reason:
            return f"{MODEL_LOAD_FAILED}: {self._state.reason}"
        return MODEL_LOAD_FAILED

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> BackendState:
        """
        Load the persistent backend. Failures are reported via state, not raised.

        A FAILED backend stays failed until ``reinitialize()``.
        """
        async with self._lock:
            if self._loaded or self._state.is_failed:
                return self._state
            await self._load()
            return self._state

    async def reinitialize(self) -> BackendState:
        """Reload the persistent backend; the only way out of FAILED."""
        async with self._lock:
            if self._loaded:
                await self._close_quietly(self._backend, "persistent backend")
                self._loaded = False
            await self._load()
            return self._state

    async def release(self) -> None:
        """
        Drop the persistent backend to reclaim memory.

        The next generation reloads it.
        """
        async with self._lock:
            if not self._loaded:
                return
            await asyncio.to_thread(self._backend.close)
            self._loaded = False
            if not self._state.is_failed:
                self._set_state(BackendState(status=BackendStatus.UNINITIALIZED))
            logger.info("Persistent backend released")

    async def _load(self) -> bool:
        self._set_state(BackendState(status=BackendStatus.INITIALIZING))
        try:
            await asyncio.to_thread(self._backend.initialize)
        except Exception as e:
            logger.error(f"Backend initialization failed: {e}")
            self._set_state(BackendState.failed(str(e)))
            return False

        self._loaded = True
        self._set_state(BackendState(status=BackendStatus.READY))
        logger.info("Persistent backend ready")
        return True

    async def _ensure_ready(self) -> bool:
        if self._loaded:
            return True
        logger.info("Persistent backend not loaded, initializing")
        return await self._load()

    async def _restore(self) -> None:
        """Reload the persistent backend after a multimodal swap."""
        try:
            await asyncio.to_thread(self._backend.initialize)
        except Exception as e:
            logger.error(f"Failed to restore persistent backend: {e}")
            self._set_state(BackendState.failed(str(e)))
            return
        self._loaded = True
        logger.info("Persistent backend restored")

    @staticmethod
    async def _close_quietly(resource: Any, label: str) -> None:
        if resource is None:
            return
        try:
            await asyncio.to_thread(resource.close)
        except Exception as e:
            logger.error(f"Error closing {label}: {e}")

    # ------------------------------------------------------------------
    # Exclusive access
    # ------------------------------------------------------------------

    async def run_exclusive(self, fn: Callable[[], Union[Awaitable[T], T]]) -> T:
        """Run ``fn`` while holding the manager lock (e.g. ingestion)."""
        async with self._lock:
            result = fn()
            if inspect.isawaitable(result):
                result = await result
            return result

    def cancel_current(self) -> bool:
        """
        Cancel the in-flight generation, if any.

        Returns:
            True if a generation was running
        """
        token = self._current_token
        if token is None:
            return False
        token.cancel()
        logger.info("Cancellation requested for in-flight generation")
        return True

    @asynccontextmanager
    async def _busy(self, cancel_token: Optional[CancellationToken]):
        token = cancel_token or CancellationToken()
        self._current_token = token
        self._set_state(BackendState(status=BackendStatus.BUSY))
        try:
            yield token
        finally:
            self._current_token = None
            if self._state.status == BackendStatus.BUSY:
                self._set_state(BackendState(status=BackendStatus.READY))

    # ------------------------------------------------------------------
    # Text generation
    # ------------------------------------------------------------------

    async def generate(
        self,
        query: str,
        sink: Optional[StreamSink] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """Text-only RAG answer to ``query``."""
        async with self._lock:
            if self._state.is_failed:
                return self._failure_message()
            return await self._generate_text(self.rag_chain, query, sink, cancel_token)

    async def translate(
        self,
        text: str,
        language: str,
        sink: Optional[StreamSink] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """Translate ``text`` into ``language`` with no retrieved context."""
        query = fill_slots(self.prompts.translation_template, language=language, text=text)
        async with self._lock:
            if self._state.is_failed:
                return f"Translation failed: {self._failure_message()}"
            return await self._generate_text(
                self.translation_chain, query, sink, cancel_token, failure_prefix="Translation failed"
            )

    async def _generate_text(
        self,
        chain: RetrievalInferenceChain,
        query: str,
        sink: Optional[StreamSink],
        cancel_token: Optional[CancellationToken],
        failure_prefix: str = "Generation failed",
    ) -> str:
        if not await self._ensure_ready():
            return self._failure_message()

        request = chain.build_request(query)
        async with self._busy(cancel_token) as token:
            try:
                text = await self._invoke(chain, request, sink, token)
            except GenerationCancelled as e:
                logger.info(f"Generation cancelled after {len(e.partial_text)} characters")
                return e.partial_text
            except Exception as e:
                logger.error(f"{failure_prefix}: {e}")
                return f"{failure_prefix}: {e}"

        self._last_mode = GenerationMode.TEXT_ONLY
        return text

    async def _invoke(self, chain, request, sink, token) -> str:
        try:
            return await chain.invoke(request, self._backend, sink, token)
        except BackendUnavailable:
            logger.info("Persistent backend was released, reinitializing")
            self._loaded = False

        if not await self._ensure_ready():
            return self._failure_message()
        self._set_state(BackendState(status=BackendStatus.BUSY))
        return await chain.invoke(request, self._backend, sink, token)

    # ------------------------------------------------------------------
    # Multimodal generation
    # ------------------------------------------------------------------

    async def generate_with_image(
        self,
        query: str,
        image: RawImage,
        sink: Optional[StreamSink] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """
        RAG answer to ``query`` about ``image``.

        Falls back to the text-only answer for ``query`` when the
        multimodal backend cannot be built or fails while generating.
        """
        async with self._lock:
            if self._state.is_failed:
                return self._failure_message()

            if not self.multimodal_available:
                logger.info("Multimodal backend not configured, answering without the image")
                return await self._generate_text(self.rag_chain, query, sink, cancel_token)

            async with self._busy(cancel_token) as token:
                try:
                    answer = await self._generate_multimodal(query, image, sink, token)
                except GenerationCancelled as e:
                    logger.info(f"Multimodal generation cancelled after {len(e.partial_text)} characters")
                    return e.partial_text

            if answer is not None:
                self._last_mode = GenerationMode.MULTIMODAL
                return answer

            if self._state.is_failed:
                return self._failure_message()

            logger.warning("Falling back to text-only generation")
            return await self._generate_text(self.rag_chain, query, sink, token)

    async def _generate_multimodal(
        self,
        query: str,
        image: RawImage,
        sink: Optional[StreamSink],
        token: CancellationToken,
    ) -> Optional[str]:
        """
        One multimodal attempt.

        The answer reaches the sink only once the stream completes, so a
        text-only fallback never has to replace text the caller already saw.

        Returns:
            The answer, or None when the caller should fall back to text

        Raises:
            GenerationCancelled: If cancelled mid-stream
        """
        factory = self.multimodal_factory
        backend = None
        session = None

        try:
            request = self.rag_chain.build_request(query)
            context = await self.rag_chain.retrieve_context(request)

            if self._loaded:
                await asyncio.to_thread(self._backend.close)
                self._loaded = False
                logger.info("Persistent backend closed for multimodal generation")

            options = await self._construct("options", factory.build_options)
            backend = await self._construct("backend", factory.create_backend, options)
            session_options = await self._construct("session options", factory.build_session_options)
            session = await self._construct("session", factory.create_session, backend, session_options)

            image_query = fill_slots(self.prompts.image_query_template, query=query)
            prompt = self.rag_chain.template.render(context, image_query)
            logger.debug(f"Image-aware prompt: {len(prompt)} characters")

            await asyncio.to_thread(session.add_image, image)
            await asyncio.to_thread(session.add_query_chunk, prompt)

            accumulator = ResponseAccumulator(kind=session.increment_kind)
            answer = await drain(session.stream(), accumulator, token)
            logger.info(f"Multimodal answer: {len(answer)} characters")
            emit_final(sink, answer)
            return answer
        except GenerationCancelled as e:
            emit_final(sink, e.partial_text)
            raise
        except (MemoryError, OutOfMemory) as e:
            logger.warning(f"Out of memory during multimodal generation: {e}")
            return None
        except asyncio.TimeoutError:
            logger.warning(
                f"Multimodal construction exceeded {self.multimodal.construction_timeout}s"
            )
            return None
        except Exception as e:
            logger.warning(f"Multimodal generation failed: {e}")
            return None
        finally:
            await self._close_quietly(session, "multimodal session")
            await self._close_quietly(backend, "multimodal backend")
            if not self._loaded:
                await self._restore()

    async def _construct(self, step: str, fn: Callable[..., T], *args: Any) -> T:
        """Run one construction step off-thread under the construction timeout."""
        logger.debug(f"Multimodal construction: {step}")
        task = asyncio.ensure_future(asyncio.to_thread(fn, *args))
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.multimodal.construction_timeout)
        except asyncio.TimeoutError:
            logger.error(f"Multimodal construction step '{step}' timed out")
            task.add_done_callback(_close_late_result)
            raise
