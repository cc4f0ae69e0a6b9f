"""
Fixed-dimension embedding model over a tokenized input.

The model output used for embeddings is chosen once, when the model is
loaded, from the shapes the runner declares. A model with no usable output
fails initialization instead of failing at the first inference.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Tuple

import numpy as np

from pocket_rag.exceptions import InitializationFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutputSpec:
    """Declared output of a model runner. ``-1`` marks a dynamic axis."""

    name: str
    shape: Tuple[int, ...]


class ModelRunner(Protocol):
    """A loaded embedding network that maps one id sequence to its raw outputs."""

    @property
    def name(self) -> str: ...

    @property
    def outputs(self) -> List[OutputSpec]: ...

    def run(self, input_ids: List[int], attention_mask: List[int]) -> List[np.ndarray]: ...

    def close(self) -> None: ...


def is_zero_vector(vector: Sequence[float]) -> bool:
    """True for the placeholder produced when inference fails."""
    return not any(vector)


def _is_pooled(shape: Tuple[int, ...], dimension: int) -> bool:
    return len(shape) == 2 and shape[0] == 1 and shape[1] == dimension


def _is_sequence(shape: Tuple[int, ...], dimension: int) -> bool:
    return len(shape) == 3 and shape[0] == 1 and shape[1] != 0 and shape[2] >= dimension


class EmbeddingModel:
    """
    Maps a framed token id sequence to a ``dimension``-long float vector.

    Output selection:
    - ``output_index`` given: that output must be ``[1, D]`` or ``[1, L, H>=D]``
    - otherwise the first ``[1, D]`` output, else the first ``[1, L, H>=D]``
      output (first position, truncated to D)

    Inference errors never propagate: they are logged and a zero vector is
    returned so one bad item cannot halt a corpus batch.
    """

    def __init__(self, runner: ModelRunner, dimension: int = 512, output_index: Optional[int] = None):
        self._runner = runner
        self._dimension = dimension
        self._output_index, self._pooled = self._resolve_output(runner.outputs, output_index)

        spec = runner.outputs[self._output_index]
        logger.info(
            f"Embedding model {runner.name} ready: output {self._output_index} "
            f"'{spec.name}' {list(spec.shape)} ({'pooled' if self._pooled else 'first position'}, "
            f"{dimension} dimensions)"
        )

    def _resolve_output(self, outputs: List[OutputSpec], output_index: Optional[int]) -> Tuple[int, bool]:
        dimension = self._dimension

        if output_index is not None:
            if not 0 <= output_index < len(outputs):
                raise InitializationFailure(
                    "embedding model",
                    f"output index {output_index} out of range ({len(outputs)} outputs)",
                )
            shape = outputs[output_index].shape
            if _is_pooled(shape, dimension):
                return output_index, True
            if _is_sequence(shape, dimension):
                return output_index, False
            raise InitializationFailure(
                "embedding model",
                f"output {output_index} has shape {list(shape)}, expected [1, {dimension}] "
                f"or [1, L, >={dimension}]",
            )

        for i, spec in enumerate(outputs):
            if _is_pooled(spec.shape, dimension):
                return i, True
        for i, spec in enumerate(outputs):
            if _is_sequence(spec.shape, dimension):
                return i, False

        declared = ", ".join(f"{spec.name}{list(spec.shape)}" for spec in outputs) or "none"
        raise InitializationFailure(
            "embedding model", f"no output usable as a {dimension}-d embedding (declared: {declared})"
        )

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def name(self) -> str:
        return self._runner.name

    @property
    def output_index(self) -> int:
        return self._output_index

    def zero_vector(self) -> List[float]:
        return [0.0] * self._dimension

    def embed(self, ids: List[int], attention_mask: Optional[List[int]] = None) -> List[float]:
        if attention_mask is None:
            attention_mask = [1] * len(ids)

        try:
            outputs = self._runner.run(ids, attention_mask)
            output = np.asarray(outputs[self._output_index], dtype=np.float32)
        except Exception as e:
            logger.error(f"Embedding inference failed: {e}")
            return self.zero_vector()

        if self._pooled:
            if output.ndim != 2 or output.shape[-1] != self._dimension:
                logger.error(f"Unexpected pooled output shape {list(output.shape)}")
                return self.zero_vector()
            vector = output[0]
        else:
            if output.ndim != 3 or output.shape[1] == 0 or output.shape[2] < self._dimension:
                logger.error(f"Unexpected sequence output shape {list(output.shape)}")
                return self.zero_vector()
            vector = output[0, 0, : self._dimension]

        return [float(v) for v in vector]

    def embed_batch(
        self, id_rows: List[List[int]], attention_masks: Optional[List[List[int]]] = None
    ) -> List[List[float]]:
        if attention_masks is None:
            attention_masks = [None] * len(id_rows)
        return [self.embed(ids, mask) for ids, mask in zip(id_rows, attention_masks)]

    def close(self) -> None:
        self._runner.close()


class SentenceTransformerRunner:
    """
    Runs a sentence-transformers model on pre-tokenized ids.

    Exposes two outputs: ``sentence_embedding`` ``[1, D]`` (after the model's
    pooling and dense layers) and ``token_embeddings`` ``[1, L, H]``.

    Example:
        >>> runner = SentenceTransformerRunner(
        ...     "sentence-transformers/distiluse-base-multilingual-cased-v2",
        ...     max_length=128,
        ... )
        >>> [spec.shape for spec in runner.outputs]
        [(1, 512), (1, 128, 768)]
    """

    def __init__(self, model_name_or_path: str, max_length: int = 128, device: Optional[str] = None):
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise ImportError(
                "sentence-transformers is required for SentenceTransformerRunner. "
                "Install with: pip install pocket-rag[embeddings-transformers]"
            ) from e

        self._name = model_name_or_path
        logger.info(f"Loading sentence encoder: {model_name_or_path}")
        try:
            self._model = SentenceTransformer(model_name_or_path, device=device)
        except Exception as e:
            raise InitializationFailure("embedding model", str(e)) from e
        self._model.eval()

        hidden = self._model[0].get_word_embedding_dimension()
        pooled = self._model.get_sentence_embedding_dimension()
        self._outputs = [
            OutputSpec("sentence_embedding", (1, pooled)),
            OutputSpec("token_embeddings", (1, max_length, hidden)),
        ]

    @property
    def name(self) -> str:
        return self._name

    @property
    def outputs(self) -> List[OutputSpec]:
        return self._outputs

    def run(self, input_ids: List[int], attention_mask: List[int]) -> List[np.ndarray]:
        import torch

        device = self._model.device
        features = {
            "input_ids": torch.tensor([input_ids], dtype=torch.long, device=device),
            "attention_mask": torch.tensor([attention_mask], dtype=torch.long, device=device),
        }
        with torch.no_grad():
            out = self._model(features)

        return [
            out["sentence_embedding"].cpu().numpy(),
            out["token_embeddings"].cpu().numpy(),
        ]

    def close(self) -> None:
        self._model = None
