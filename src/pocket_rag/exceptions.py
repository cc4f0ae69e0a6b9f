"""
Exceptions for pocket-rag.

Only failures that callers can act on are modelled here. An empty retrieval
is a valid result, not an error, so there is no exception for it.
"""


class PocketRagError(Exception):
    """Base class for all pocket-rag errors."""

    def __init__(self, message: str = "An unspecified error occurred in pocket-rag."):
        super().__init__(message)


class ConfigError(PocketRagError):
    """Raised when configuration cannot be loaded or validated."""

    def __init__(self, message: str = "Configuration error."):
        super().__init__(message)


class InitializationFailure(PocketRagError):
    """A backend, tokenizer or embedding model failed to load."""

    def __init__(self, component: str = "unknown", message: str = "Initialization failed."):
        self.component = component
        super().__init__(f"Failed to initialize {component}: {message}")


class OutOfMemory(PocketRagError):
    """The device could not hold the model being constructed."""

    def __init__(self, message: str = "Out of memory while constructing backend."):
        super().__init__(message)


class EmbeddingFailure(PocketRagError):
    """Embedding could not be produced for a batch being recorded."""

    def __init__(self, model_name: str = "unknown", message: str = "Embedding generation error."):
        self.model_name = model_name
        super().__init__(f"Error with embedding model '{model_name}': {message}")


class VectorStoreError(PocketRagError):
    """Raised for invalid vector store operations (e.g. dimension mismatch)."""

    def __init__(self, message: str = "Vector store error."):
        super().__init__(message)


class BackendUnavailable(PocketRagError):
    """The persistent backend has been released and must be reinitialized."""

    def __init__(self, message: str = "Inference backend is not loaded."):
        super().__init__(message)


class GenerationCancelled(PocketRagError):
    """A generation was cancelled before it completed."""

    def __init__(self, partial_text: str = ""):
        self.partial_text = partial_text
        super().__init__("Generation cancelled.")
