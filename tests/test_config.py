"""Tests for pipeline configuration loading."""

import json

import pytest

from pocket_rag.config import PipelineConfig
from pocket_rag.exceptions import ConfigError


@pytest.fixture
def clean_env(monkeypatch):
    for name in [
        "POCKET_RAG_CONFIG",
        "POCKET_RAG_LLM_MODEL",
        "POCKET_RAG_CLIP_MODEL",
        "POCKET_RAG_EMBEDDING_MODEL",
        "POCKET_RAG_VOCAB",
        "POCKET_RAG_VECTOR_STORE_URL",
    ]:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = PipelineConfig()

    assert config.embedding.dimension == 512
    assert config.embedding.max_sequence_length == 128
    assert config.embedding.vocab_limit == 30522
    assert (config.embedding.unk_id, config.embedding.cls_id, config.embedding.sep_id) == (100, 101, 102)
    assert config.retrieval.k == 3
    assert config.retrieval.score_threshold == 0.0
    assert config.multimodal.max_tokens == 512
    assert config.multimodal.top_k == 32
    assert config.chunk_separator == "<chunk_splitter>"
    assert config.vector_store_url is None


def test_load_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "paths": {"llm_model": "/models/gemma.gguf", "clip_model": "/models/mmproj.gguf"},
                "retrieval": {"k": 5, "score_threshold": 0.2},
                "multimodal": {"construction_timeout": 10},
            }
        ),
        encoding="utf-8",
    )

    config = PipelineConfig.load(str(path))

    assert config.paths.llm_model == "/models/gemma.gguf"
    assert config.paths.clip_model == "/models/mmproj.gguf"
    assert config.retrieval.k == 5
    assert config.multimodal.construction_timeout == 10.0
    assert config.generation.max_tokens == 1024


def test_load_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        PipelineConfig.load(str(tmp_path / "nope.json"))


def test_load_invalid_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigError):
        PipelineConfig.load(str(path))


def test_load_invalid_values(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"retrieval": {"k": -1}}), encoding="utf-8")

    with pytest.raises(ConfigError):
        PipelineConfig.load(str(path))


def test_from_env_overrides(clean_env, monkeypatch):
    monkeypatch.setenv("POCKET_RAG_LLM_MODEL", "/env/model.gguf")
    monkeypatch.setenv("POCKET_RAG_VOCAB", "/env/vocab.txt")
    monkeypatch.setenv("POCKET_RAG_VECTOR_STORE_URL", "sqlite:///rag.db")

    config = PipelineConfig.from_env()

    assert config.paths.llm_model == "/env/model.gguf"
    assert config.paths.vocab == "/env/vocab.txt"
    assert config.vector_store_url == "sqlite:///rag.db"


def test_from_env_config_file(clean_env, monkeypatch, tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"retrieval": {"k": 7}}), encoding="utf-8")
    monkeypatch.setenv("POCKET_RAG_CONFIG", str(path))
    monkeypatch.setenv("POCKET_RAG_CLIP_MODEL", "/env/mmproj.gguf")

    config = PipelineConfig.from_env()

    assert config.retrieval.k == 7
    assert config.paths.clip_model == "/env/mmproj.gguf"


def test_from_env_with_base(clean_env, monkeypatch):
    monkeypatch.setenv("POCKET_RAG_EMBEDDING_MODEL", "/env/encoder")
    base = PipelineConfig(chunk_separator="###")

    config = PipelineConfig.from_env(base)

    assert config.chunk_separator == "###"
    assert config.paths.embedding_model == "/env/encoder"
