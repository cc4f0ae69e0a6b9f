"""
llama.cpp inference backends (llama-cpp-python).

LlamaCppBackend is the persistent text model. LlamaCppVisionFactory builds
the transient vision-enabled model used for image questions; the device is
expected to hold only one of the two at a time.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

from pocket_rag.config import GenerationConfig, MultimodalConfig
from pocket_rag.exceptions import BackendUnavailable, InitializationFailure, OutOfMemory
from pocket_rag.images import RawImage
from pocket_rag.streaming import IncrementKind

logger = logging.getLogger(__name__)


def _import_llama():
    try:
        from llama_cpp import Llama
    except ImportError as e:
        raise ImportError(
            "llama-cpp-python is required for llama.cpp backends. "
            "Install with: pip install pocket-rag[llama]"
        ) from e
    return Llama


def _import_chat_handler(name: str):
    """Vision chat handler class from ``llama_cpp.llama_chat_format``."""
    _import_llama()
    from llama_cpp import llama_chat_format

    handler_cls = getattr(llama_chat_format, name, None)
    if handler_cls is None:
        raise InitializationFailure("multimodal backend", f"unknown chat handler {name}")
    return handler_cls


def _iter_deltas(chunks) -> Iterator[str]:
    """Text pieces from a streamed chat completion."""
    for chunk in chunks:
        choices = chunk.get("choices") or [{}]
        piece = (choices[0].get("delta") or {}).get("content")
        if piece:
            yield piece


def _close_handler(handler) -> None:
    """Release a chat handler whose model never finished loading."""
    close = getattr(handler, "close", None)
    if close is None:
        return
    try:
        close()
    except Exception as e:
        logger.error(f"Failed to release vision chat handler: {e}")


class LlamaCppBackend:
    """
    Persistent text-only model.

    Example:
        >>> backend = LlamaCppBackend("/data/local/tmp/gemma.gguf", GenerationConfig())
        >>> backend.initialize()
        >>> "".join(backend.stream("Hello"))
    """

    increment_kind = IncrementKind.DELTA

    def __init__(self, model_path: str, generation: Optional[GenerationConfig] = None):
        self.model_path = model_path
        self.generation = generation or GenerationConfig()
        self._llm = None

    @property
    def is_loaded(self) -> bool:
        return self._llm is not None

    def initialize(self) -> None:
        if self._llm is not None:
            return

        if not Path(self.model_path).exists():
            raise InitializationFailure("inference backend", f"model not found: {self.model_path}")
        Llama = _import_llama()

        logger.info(f"Loading language model: {self.model_path}")
        try:
            self._llm = Llama(
                model_path=self.model_path,
                n_ctx=self.generation.context_size,
                n_threads=self.generation.threads,
                verbose=False,
            )
        except MemoryError as e:
            raise OutOfMemory(f"Not enough memory to load {self.model_path}") from e
        except Exception as e:
            raise InitializationFailure("inference backend", str(e)) from e
        logger.info("Language model loaded")

    def stream(self, prompt: str) -> Iterator[str]:
        if self._llm is None:
            raise BackendUnavailable()

        chunks = self._llm.create_chat_completion(
            messages=[{"role": "user", "content": prompt}],
            stream=True,
            max_tokens=self.generation.max_tokens,
            temperature=self.generation.temperature,
            top_p=self.generation.top_p,
            top_k=self.generation.top_k,
        )
        yield from _iter_deltas(chunks)

    def close(self) -> None:
        if self._llm is None:
            return
        self._llm.close()
        self._llm = None
        logger.info("Language model released")


@dataclass(frozen=True)
class VisionOptions:
    model_path: str
    clip_model_path: str
    chat_handler: str
    context_size: int
    max_images: int
    threads: Optional[int] = None


@dataclass(frozen=True)
class VisionSessionOptions:
    max_tokens: int
    temperature: float
    top_p: float
    top_k: int
    enable_vision: bool = True


class LlamaCppVisionBackend:
    """Vision-enabled model instance. Owned by the backend manager."""

    def __init__(self, llm, options: VisionOptions):
        self._llm = llm
        self.options = options

    @property
    def llm(self):
        if self._llm is None:
            raise BackendUnavailable("Multimodal backend already closed.")
        return self._llm

    def close(self) -> None:
        if self._llm is None:
            return
        handler = getattr(self._llm, "chat_handler", None)
        self._llm.close()
        self._llm = None
        if handler is not None:
            _close_handler(handler)
        logger.info("Multimodal model released")


class LlamaCppVisionSession:
    """One image question: the image first, then the text query."""

    increment_kind = IncrementKind.DELTA

    def __init__(self, backend: LlamaCppVisionBackend, options: VisionSessionOptions, max_images: int = 1):
        self._backend = backend
        self.options = options
        self._max_images = max_images
        self._image_uris: List[str] = []
        self._query_chunks: List[str] = []

    def add_image(self, image: RawImage) -> None:
        if len(self._image_uris) >= self._max_images:
            raise ValueError(f"Session accepts at most {self._max_images} image(s)")
        self._image_uris.append(image.to_data_uri())

    def add_query_chunk(self, text: str) -> None:
        self._query_chunks.append(text)

    def stream(self) -> Iterator[str]:
        content = [{"type": "image_url", "image_url": {"url": uri}} for uri in self._image_uris]
        content.append({"type": "text", "text": "".join(self._query_chunks)})

        chunks = self._backend.llm.create_chat_completion(
            messages=[{"role": "user", "content": content}],
            stream=True,
            max_tokens=self.options.max_tokens,
            temperature=self.options.temperature,
            top_p=self.options.top_p,
            top_k=self.options.top_k,
        )
        yield from _iter_deltas(chunks)

    def close(self) -> None:
        self._image_uris.clear()
        self._query_chunks.clear()
        self._backend = None


class LlamaCppVisionFactory:
    """Builds the transient vision model from the text model plus a CLIP projector."""

    def __init__(
        self,
        model_path: str,
        clip_model_path: str,
        generation: Optional[GenerationConfig] = None,
        multimodal: Optional[MultimodalConfig] = None,
    ):
        self.model_path = model_path
        self.clip_model_path = clip_model_path
        self.generation = generation or GenerationConfig()
        self.multimodal = multimodal or MultimodalConfig()

    def build_options(self) -> VisionOptions:
        for path in (self.model_path, self.clip_model_path):
            if not Path(path).exists():
                raise InitializationFailure("multimodal backend", f"model not found: {path}")

        return VisionOptions(
            model_path=self.model_path,
            clip_model_path=self.clip_model_path,
            chat_handler=self.multimodal.chat_handler,
            context_size=self.generation.context_size,
            max_images=self.multimodal.max_images,
            threads=self.generation.threads,
        )

    def create_backend(self, options: VisionOptions) -> LlamaCppVisionBackend:
        Llama = _import_llama()
        handler_cls = _import_chat_handler(options.chat_handler)

        logger.info(f"Loading multimodal model: {options.model_path} + {options.clip_model_path}")
        try:
            handler = handler_cls(clip_model_path=options.clip_model_path, verbose=False)
        except MemoryError as e:
            raise OutOfMemory("Not enough memory to load the vision projector") from e

        try:
            llm = Llama(
                model_path=options.model_path,
                chat_handler=handler,
                n_ctx=options.context_size,
                n_threads=options.threads,
                verbose=False,
            )
        except MemoryError as e:
            _close_handler(handler)
            raise OutOfMemory("Not enough memory to load the multimodal model") from e
        except Exception:
            _close_handler(handler)
            raise

        return LlamaCppVisionBackend(llm, options)

    def build_session_options(self) -> VisionSessionOptions:
        return VisionSessionOptions(
            max_tokens=self.multimodal.max_tokens,
            temperature=self.multimodal.temperature,
            top_p=self.multimodal.top_p,
            top_k=self.multimodal.top_k,
            enable_vision=True,
        )

    def create_session(
        self, backend: LlamaCppVisionBackend, session_options: VisionSessionOptions
    ) -> LlamaCppVisionSession:
        if not session_options.enable_vision:
            raise ValueError("Multimodal sessions require the vision modality")
        return LlamaCppVisionSession(backend, session_options, max_images=backend.options.max_images)
