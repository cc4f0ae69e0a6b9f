"""Shared fakes: deterministic embeddings and scripted inference backends."""

import re
import time
from typing import Callable, Dict, List, Optional

import pytest

from pocket_rag.chain import RetrievalInferenceChain
from pocket_rag.config import DEFAULT_RAG_TEMPLATE
from pocket_rag.exceptions import BackendUnavailable
from pocket_rag.images import RawImage
from pocket_rag.prompt import PromptTemplate
from pocket_rag.semantic_memory import SemanticMemory
from pocket_rag.storage import InMemoryVectorStore
from pocket_rag.streaming import IncrementKind

DIMENSION = 256


class BagOfWordsEmbedding:
    """One axis per distinct word, assigned on first sight."""

    def __init__(self, dimension: int = DIMENSION):
        self._dimension = dimension
        self._vocab: Dict[str, int] = {}
        self.calls = 0

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return "bag-of-words"

    def _vector(self, text: str) -> List[float]:
        vector = [0.0] * self._dimension
        for word in re.findall(r"\w+", text.lower()):
            index = self._vocab.setdefault(word, len(self._vocab) % self._dimension)
            vector[index] += 1.0
        return vector

    async def embed(self, text: str) -> List[float]:
        self.calls += 1
        return self._vector(text)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.calls += 1
        return [self._vector(text) for text in texts]


class FakeBackend:
    """Persistent backend replaying ``reply`` as delta increments."""

    def __init__(
        self,
        reply: str = "The fire extinguisher is in room 3.",
        increment_kind: IncrementKind = IncrementKind.DELTA,
        fail_init_calls: Optional[set] = None,
        delay: float = 0.0,
    ):
        self.reply = reply
        self.increment_kind = increment_kind
        self.fail_init_calls = fail_init_calls or set()
        self.delay = delay
        self.loaded = False
        self.init_calls = 0
        self.close_calls = 0
        self.prompts: List[str] = []
        self.events: List[str] = []

    def initialize(self) -> None:
        self.init_calls += 1
        if self.init_calls in self.fail_init_calls:
            raise RuntimeError("model file is corrupt")
        self.loaded = True

    def pieces(self) -> List[str]:
        words = self.reply.split(" ")
        return [words[0]] + [" " + word for word in words[1:]]

    def stream(self, prompt: str):
        if not self.loaded:
            raise BackendUnavailable()
        self.prompts.append(prompt)
        self.events.append(f"start:{prompt[-20:]}")
        for piece in self.pieces():
            if self.delay:
                time.sleep(self.delay)
            yield piece
        self.events.append(f"end:{prompt[-20:]}")

    def close(self) -> None:
        self.close_calls += 1
        self.loaded = False


class FakeVisionBackend:
    def __init__(self):
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Multimodal session streaming cumulative increments."""

    increment_kind = IncrementKind.CUMULATIVE

    def __init__(self, reply: str, fail_on_stream: bool = False, on_piece: Optional[Callable[[int], None]] = None):
        self.reply = reply
        self.fail_on_stream = fail_on_stream
        self.on_piece = on_piece
        self.inputs: List[tuple] = []
        self.closed = False

    def add_image(self, image: RawImage) -> None:
        self.inputs.append(("image", image))

    def add_query_chunk(self, text: str) -> None:
        self.inputs.append(("text", text))

    def stream(self):
        words = self.reply.split(" ")
        for i in range(1, len(words) + 1):
            if self.fail_on_stream and i == 2:
                raise RuntimeError("vision encoder crashed")
            if self.on_piece is not None:
                self.on_piece(i)
            yield " ".join(words[:i])

    def close(self) -> None:
        self.closed = True


class FakeVisionFactory:
    """
    Multimodal factory with an optional failing step.

    ``fail_at`` names the step to fail; ``error`` is what it raises.
    """

    def __init__(
        self,
        persistent: FakeBackend,
        reply: str = "The image shows a red fire extinguisher.",
        fail_at: Optional[str] = None,
        error: Optional[BaseException] = None,
        slow_step: Optional[str] = None,
        slow_seconds: float = 0.0,
        fail_on_stream: bool = False,
        on_piece: Optional[Callable[[int], None]] = None,
    ):
        self.persistent = persistent
        self.reply = reply
        self.fail_at = fail_at
        self.error = error or RuntimeError(f"{fail_at} failed")
        self.slow_step = slow_step
        self.slow_seconds = slow_seconds
        self.fail_on_stream = fail_on_stream
        self.on_piece = on_piece
        self.steps: List[str] = []
        self.persistent_loaded_during_create: Optional[bool] = None
        self.backends: List[FakeVisionBackend] = []
        self.sessions: List[FakeSession] = []

    def _step(self, name: str) -> None:
        self.steps.append(name)
        if self.slow_step == name:
            time.sleep(self.slow_seconds)
        if self.fail_at == name:
            raise self.error

    def build_options(self) -> dict:
        self._step("build_options")
        return {"max_images": 1}

    def create_backend(self, options: dict) -> FakeVisionBackend:
        self.persistent_loaded_during_create = self.persistent.loaded
        self._step("create_backend")
        backend = FakeVisionBackend()
        self.backends.append(backend)
        return backend

    def build_session_options(self) -> dict:
        self._step("build_session_options")
        return {"enable_vision": True}

    def create_session(self, backend: FakeVisionBackend, session_options: dict) -> FakeSession:
        self._step("create_session")
        session = FakeSession(self.reply, fail_on_stream=self.fail_on_stream, on_piece=self.on_piece)
        self.sessions.append(session)
        return session


class Collector:
    """StreamSink recording every emission."""

    def __init__(self, on_emit: Optional[Callable[[str, bool], None]] = None):
        self.emissions: List[tuple] = []
        self._on_emit = on_emit

    def __call__(self, text: str, done: bool) -> None:
        self.emissions.append((text, done))
        if self._on_emit is not None:
            self._on_emit(text, done)

    @property
    def texts(self) -> List[str]:
        return [text for text, _ in self.emissions]

    @property
    def done_count(self) -> int:
        return sum(1 for _, done in self.emissions if done)


CORPUS_CHUNKS = [
    "fire extinguisher is in room 3",
    "first aid kit is behind the desk",
]


@pytest.fixture
def embedding():
    return BagOfWordsEmbedding()


@pytest.fixture
def memory(embedding):
    return SemanticMemory(embedding, InMemoryVectorStore(dimension=DIMENSION))


@pytest.fixture
def rag_chain(memory):
    return RetrievalInferenceChain(memory, PromptTemplate(DEFAULT_RAG_TEMPLATE))


@pytest.fixture
def translation_chain(memory):
    return RetrievalInferenceChain.passthrough(memory)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def image():
    return RawImage(width=2, height=2, mode="RGB", data=bytes(range(12)))
