"""
Inference backends.

Protocols for the persistent text model and the transient multimodal model,
plus llama.cpp implementations (llama-cpp-python is imported lazily).
"""

from pocket_rag.backends.llama_cpp import LlamaCppBackend, LlamaCppVisionFactory
from pocket_rag.backends.protocol import (
    InferenceBackend,
    MultimodalBackend,
    MultimodalBackendFactory,
    MultimodalSession,
)

__all__ = [
    "InferenceBackend",
    "MultimodalBackend",
    "MultimodalBackendFactory",
    "MultimodalSession",
    "LlamaCppBackend",
    "LlamaCppVisionFactory",
]
