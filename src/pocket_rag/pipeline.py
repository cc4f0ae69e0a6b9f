"""
Top-level RAG pipeline.

RagPipeline is the explicitly constructed application context: it owns the
semantic memory and the backend manager and exposes the public entry points
(ingest, generate, generate_with_image, translate). ``build_pipeline`` wires
the production components from a PipelineConfig.
"""

import asyncio
import logging
from typing import List, Optional

from sqlalchemy import create_engine

from pocket_rag.backend_manager import InferenceBackendManager, StateListener
from pocket_rag.backends import LlamaCppBackend, LlamaCppVisionFactory
from pocket_rag.chain import RetrievalInferenceChain
from pocket_rag.config import PipelineConfig
from pocket_rag.embeddings import (
    EmbeddingModel,
    LocalEmbedding,
    OpenAIEmbedding,
    SentenceTransformerRunner,
    TextEmbedding,
    WordPieceTokenizer,
)
from pocket_rag.exceptions import ConfigError
from pocket_rag.images import RawImage
from pocket_rag.ingestion import DEFAULT_CHUNK_SEPARATOR, read_corpus_file, split_corpus
from pocket_rag.models import BackendState, TaskType
from pocket_rag.prompt import PromptTemplate
from pocket_rag.semantic_memory import SemanticMemory
from pocket_rag.storage import InMemoryVectorStore, SQLAlchemyVectorStore, VectorStore
from pocket_rag.streaming import CancellationToken, StreamSink

logger = logging.getLogger(__name__)


class RagPipeline:
    """
    On-device retrieval-augmented generation.

    Example:
        >>> pipeline = build_pipeline(PipelineConfig.from_env())
        >>> await pipeline.initialize()
        >>> await pipeline.ingest(corpus)
        >>> await pipeline.generate("Where is the fire extinguisher?", sink=print)
    """

    def __init__(
        self,
        manager: InferenceBackendManager,
        memory: SemanticMemory,
        chunk_separator: str = DEFAULT_CHUNK_SEPARATOR,
    ):
        self.manager = manager
        self.memory = memory
        self.chunk_separator = chunk_separator

    @property
    def state(self) -> BackendState:
        return self.manager.state

    def add_state_listener(self, listener: StateListener) -> None:
        self.manager.add_state_listener(listener)

    async def initialize(self) -> BackendState:
        return await self.manager.initialize()

    async def ingest(self, corpus_text: str, chunk_separator_marker: Optional[str] = None) -> List[str]:
        """
        Split a corpus and record its chunks in semantic memory.

        Recording is serialised with generation so queries never observe a
        half-ingested corpus.

        Returns:
            IDs of the recorded chunks

        Raises:
            EmbeddingFailure: If the chunks could not be embedded
            VectorStoreError: If the embeddings don't fit the store
        """
        chunks = split_corpus(corpus_text, chunk_separator_marker or self.chunk_separator)
        if not chunks:
            logger.info("Corpus contained no chunks")
            return []

        ids = await self.manager.run_exclusive(lambda: self.memory.record(chunks))
        logger.info(f"Ingested {len(ids)} chunks")
        return ids

    async def ingest_file(self, path: str, chunk_separator_marker: Optional[str] = None) -> List[str]:
        chunks = await asyncio.to_thread(read_corpus_file, path, chunk_separator_marker or self.chunk_separator)
        if not chunks:
            return []
        return await self.manager.run_exclusive(lambda: self.memory.record(chunks))

    async def generate(
        self,
        query: str,
        sink: Optional[StreamSink] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        return await self.manager.generate(query, sink, cancel_token)

    async def generate_with_image(
        self,
        query: str,
        image: RawImage,
        sink: Optional[StreamSink] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        return await self.manager.generate_with_image(query, image, sink, cancel_token)

    async def translate(
        self,
        text: str,
        language: str,
        sink: Optional[StreamSink] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        return await self.manager.translate(text, language, sink, cancel_token)

    def cancel_current(self) -> bool:
        return self.manager.cancel_current()

    async def release(self) -> None:
        """Free the language model; the next call reloads it."""
        await self.manager.release()


def build_embedding(config: PipelineConfig) -> TextEmbedding:
    """Embedding adapter selected by ``config.embedding.provider``."""
    settings = config.embedding
    if settings.provider == "openai":
        return OpenAIEmbedding(model=settings.openai_model, dimensions=settings.dimension)

    if settings.provider != "local":
        raise ConfigError(f"Unknown embedding provider: {settings.provider}")

    tokenizer = WordPieceTokenizer(
        vocab_path=config.paths.vocab,
        max_length=settings.max_sequence_length,
        vocab_limit=settings.vocab_limit,
        unk_id=settings.unk_id,
        cls_id=settings.cls_id,
        sep_id=settings.sep_id,
        pad_id=settings.pad_id,
        lowercase=settings.lowercase,
    )
    runner = SentenceTransformerRunner(
        config.paths.embedding_model,
        max_length=settings.max_sequence_length,
        device=settings.device,
    )
    model = EmbeddingModel(runner, dimension=settings.dimension, output_index=settings.output_index)
    return LocalEmbedding(tokenizer, model)


def build_vector_store(config: PipelineConfig) -> VectorStore:
    if config.vector_store_url is None:
        return InMemoryVectorStore(dimension=config.embedding.dimension)

    store = SQLAlchemyVectorStore(create_engine(config.vector_store_url), dimension=config.embedding.dimension)
    store.create_tables()
    return store


def build_pipeline(config: Optional[PipelineConfig] = None) -> RagPipeline:
    """
    Construct the production pipeline.

    Models are not loaded until ``initialize()`` (or the first generation).
    The embedding model loads here, since ingestion may precede generation.
    """
    config = config or PipelineConfig()

    memory = SemanticMemory(build_embedding(config), build_vector_store(config))

    rag_chain = RetrievalInferenceChain(
        memory,
        PromptTemplate(config.prompts.rag_template),
        config.retrieval,
        task_type=TaskType.QUESTION_ANSWERING,
    )
    translation_chain = RetrievalInferenceChain.passthrough(memory)

    backend = LlamaCppBackend(config.paths.llm_model, config.generation)

    factory = None
    if config.multimodal.enabled and config.paths.clip_model:
        factory = LlamaCppVisionFactory(
            config.paths.llm_model,
            config.paths.clip_model,
            generation=config.generation,
            multimodal=config.multimodal,
        )
    else:
        logger.info("No vision projector configured; image questions are answered from text")

    manager = InferenceBackendManager(
        backend,
        rag_chain,
        translation_chain,
        multimodal_factory=factory,
        multimodal=config.multimodal,
        prompts=config.prompts,
    )
    return RagPipeline(manager, memory, chunk_separator=config.chunk_separator)
