"""
Retrieval + inference chain.

Retrieves context from semantic memory, renders the prompt template and
streams the backend's answer through a ResponseAccumulator.
"""

import logging
from typing import Optional

from pocket_rag.backends import InferenceBackend
from pocket_rag.config import RetrievalConfig
from pocket_rag.models import RetrievalRequest, TaskType
from pocket_rag.prompt import PromptTemplate
from pocket_rag.semantic_memory import SemanticMemory
from pocket_rag.streaming import CancellationToken, ResponseAccumulator, StreamSink, drain

logger = logging.getLogger(__name__)


class RetrievalInferenceChain:
    """
    Query -> retrieved context -> rendered prompt -> streamed answer.

    The chain holds no backend: the caller that owns the backend passes it
    to each ``invoke`` so no reference outlives the call.
    """

    def __init__(
        self,
        memory: SemanticMemory,
        template: PromptTemplate,
        retrieval: Optional[RetrievalConfig] = None,
        task_type: TaskType = TaskType.QUESTION_ANSWERING,
    ):
        self.memory = memory
        self.template = template
        self.retrieval = retrieval or RetrievalConfig()
        self.task_type = task_type

    @classmethod
    def passthrough(cls, memory: SemanticMemory, task_type: TaskType = TaskType.TRANSLATION) -> "RetrievalInferenceChain":
        """Chain that sends the query as-is: ``{query}`` template, k=0."""
        return cls(
            memory,
            PromptTemplate.passthrough(),
            RetrievalConfig(k=0, score_threshold=0.0),
            task_type=task_type,
        )

    def build_request(self, query: str) -> RetrievalRequest:
        return RetrievalRequest(
            query=query,
            k=self.retrieval.k,
            score_threshold=self.retrieval.score_threshold,
            task_type=self.task_type,
        )

    async def retrieve_context(self, request: RetrievalRequest) -> str:
        """Retrieved chunk texts in result order, one per line."""
        result = await self.memory.retrieve(request)
        context = "\n".join(result.texts)
        logger.debug(f"Context: {len(result)} chunks, {len(context)} characters")
        return context

    async def render(self, request: RetrievalRequest) -> str:
        context = await self.retrieve_context(request)
        return self.template.render(context, request.query)

    async def invoke(
        self,
        request: RetrievalRequest,
        backend: InferenceBackend,
        sink: Optional[StreamSink] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """
        Run the chain against ``backend``.

        Returns:
            The final accumulated answer

        Raises:
            GenerationCancelled: If cancelled mid-stream
            Exception: Backend errors propagate to the caller
        """
        prompt = await self.render(request)
        logger.debug(f"Prompt: {len(prompt)} characters")

        accumulator = ResponseAccumulator(sink, kind=backend.increment_kind)
        text = await drain(backend.stream(prompt), accumulator, cancel_token)

        logger.info(f"Generated {len(text)} characters ({self.task_type.value})")
        return text
