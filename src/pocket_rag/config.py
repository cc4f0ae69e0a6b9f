"""
Configuration for the on-device RAG pipeline.

Model blobs are loaded once at startup from fixed paths. Defaults mirror a
Gemma-class multimodal model, a 512-dimension multilingual sentence encoder
and a BERT WordPiece vocabulary.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from pocket_rag.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_RAG_TEMPLATE = (
    "You are an assistant for question-answering tasks. "
    "Here are the things I want to remember: {context} "
    "Use the things I want to remember, answer the following question the user has: {query}"
)

DEFAULT_IMAGE_QUERY_TEMPLATE = (
    "Please analyze the image I've provided and answer this question: {query}"
)

DEFAULT_TRANSLATION_TEMPLATE = (
    "Translate the following text to {language}. Provide only the translation "
    "without any additional explanation or commentary.\n\n"
    'Text to translate: "{text}"\n\n'
    "Translation:"
)


class ModelPaths(BaseModel):
    """On-disk model and vocabulary blobs."""

    llm_model: str = Field("/data/local/tmp/gemma-3n-E4B-it-int4.gguf", description="Text LLM (GGUF)")
    clip_model: Optional[str] = Field(None, description="Vision projector (GGUF); None disables images")
    embedding_model: str = Field(
        "sentence-transformers/distiluse-base-multilingual-cased-v2",
        description="Sentence encoder path or HuggingFace id",
    )
    vocab: str = Field("/data/local/tmp/vocab.txt", description="WordPiece vocabulary file")


class EmbeddingConfig(BaseModel):
    dimension: int = Field(512, gt=0)
    max_sequence_length: int = Field(128, ge=2)
    vocab_limit: int = Field(30522, gt=0, description="Ids at or above this are remapped to UNK")
    unk_id: int = 100
    cls_id: int = 101
    sep_id: int = 102
    pad_id: int = 0
    lowercase: bool = True
    output_index: Optional[int] = Field(
        None, description="Model output to embed from; None selects by declared shape"
    )
    device: Optional[str] = Field(None, description="'cpu', 'cuda' or None for auto")
    provider: str = Field("local", description="'local' or 'openai'")
    openai_model: str = "text-embedding-3-small"


class GenerationConfig(BaseModel):
    max_tokens: int = Field(1024, gt=0)
    context_size: int = Field(4096, gt=0)
    temperature: float = Field(1.0, ge=0.0)
    top_p: float = Field(0.95, gt=0.0, le=1.0)
    top_k: int = Field(64, ge=0)
    threads: Optional[int] = None


class MultimodalConfig(BaseModel):
    enabled: bool = True
    max_tokens: int = Field(512, gt=0)
    max_images: int = Field(1, ge=1)
    temperature: float = Field(1.0, ge=0.0)
    top_p: float = Field(0.95, gt=0.0, le=1.0)
    top_k: int = Field(32, ge=0)
    construction_timeout: float = Field(60.0, gt=0.0, description="Seconds per construction step")
    chat_handler: str = Field(
        "Llava15ChatHandler", description="llama_cpp.llama_chat_format handler class for the vision projector"
    )


class RetrievalConfig(BaseModel):
    k: int = Field(3, ge=0)
    score_threshold: float = 0.0


class PromptConfig(BaseModel):
    rag_template: str = DEFAULT_RAG_TEMPLATE
    image_query_template: str = DEFAULT_IMAGE_QUERY_TEMPLATE
    translation_template: str = DEFAULT_TRANSLATION_TEMPLATE


class PipelineConfig(BaseModel):
    paths: ModelPaths = Field(default_factory=ModelPaths)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    multimodal: MultimodalConfig = Field(default_factory=MultimodalConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    prompts: PromptConfig = Field(default_factory=PromptConfig)
    chunk_separator: str = "<chunk_splitter>"
    vector_store_url: Optional[str] = Field(
        None, description="SQLAlchemy URL for a persisted store; None keeps vectors in memory"
    )

    @classmethod
    def load(cls, path: str) -> "PipelineConfig":
        """Load and validate a JSON configuration file."""
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigError(f"Config not found: {path}")

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e

        try:
            config = cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {path}: {e}") from e

        logger.info(f"Loaded pipeline config from {path}")
        return config

    @classmethod
    def from_env(cls, base: Optional["PipelineConfig"] = None) -> "PipelineConfig":
        """
        Apply POCKET_RAG_* environment variables (and a .env file) on top of
        ``base`` or the defaults.

        Recognised variables:
            POCKET_RAG_CONFIG: JSON config file loaded as the base
            POCKET_RAG_LLM_MODEL, POCKET_RAG_CLIP_MODEL,
            POCKET_RAG_EMBEDDING_MODEL, POCKET_RAG_VOCAB: model paths
            POCKET_RAG_VECTOR_STORE_URL: persisted vector store
        """
        load_dotenv()

        if base is None:
            config_file = os.getenv("POCKET_RAG_CONFIG")
            base = cls.load(config_file) if config_file else cls()

        data = base.model_dump()
        overrides = {
            "POCKET_RAG_LLM_MODEL": ("paths", "llm_model"),
            "POCKET_RAG_CLIP_MODEL": ("paths", "clip_model"),
            "POCKET_RAG_EMBEDDING_MODEL": ("paths", "embedding_model"),
            "POCKET_RAG_VOCAB": ("paths", "vocab"),
        }
        for env_name, (section, key) in overrides.items():
            value = os.getenv(env_name)
            if value:
                data[section][key] = value

        store_url = os.getenv("POCKET_RAG_VECTOR_STORE_URL")
        if store_url:
            data["vector_store_url"] = store_url

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration from environment: {e}") from e
