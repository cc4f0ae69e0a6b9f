"""
Inference backend protocols.

All methods are blocking; the backend manager calls them from worker
threads. ``stream`` methods return lazily evaluated iterators of text
increments in the convention given by ``increment_kind``.
"""

from typing import Any, Iterator, Protocol

from typing_extensions import runtime_checkable

from pocket_rag.images import RawImage
from pocket_rag.streaming import IncrementKind


@runtime_checkable
class InferenceBackend(Protocol):
    """The persistent text-only language model."""

    @property
    def increment_kind(self) -> IncrementKind:
        """Streaming convention of ``stream``."""
        ...

    def initialize(self) -> None:
        """
        Load the model. Called again to reload after ``close``.

        Raises:
            InitializationFailure: If the model cannot be loaded
        """
        ...

    def stream(self, prompt: str) -> Iterator[str]:
        """Generate a response to ``prompt`` as text increments."""
        ...

    def close(self) -> None:
        """Release the model's memory. Safe to call when not loaded."""
        ...


@runtime_checkable
class MultimodalSession(Protocol):
    """A single text+image generation on a transient multimodal backend."""

    @property
    def increment_kind(self) -> IncrementKind: ...

    def add_image(self, image: RawImage) -> None: ...

    def add_query_chunk(self, text: str) -> None: ...

    def stream(self) -> Iterator[str]:
        """Generate from the image and text added so far."""
        ...

    def close(self) -> None: ...


@runtime_checkable
class MultimodalBackend(Protocol):
    """A transient vision-enabled model, constructed per image request."""

    def close(self) -> None: ...


@runtime_checkable
class MultimodalBackendFactory(Protocol):
    """
    Builds transient multimodal backends in four separately failing steps.

    Any step may raise, including ``MemoryError`` while loading weights.
    """

    def build_options(self) -> Any:
        """Validate and assemble backend construction options."""
        ...

    def create_backend(self, options: Any) -> MultimodalBackend:
        """Load the vision-enabled model."""
        ...

    def build_session_options(self) -> Any:
        """Assemble per-session options (sampling, vision modality)."""
        ...

    def create_session(self, backend: MultimodalBackend, session_options: Any) -> MultimodalSession:
        """Open a generation session on ``backend``."""
        ...
