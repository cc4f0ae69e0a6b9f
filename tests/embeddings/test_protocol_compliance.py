"""Protocol compliance for embedding adapters."""

from pocket_rag.embeddings import TextEmbedding


def test_custom_embedding_satisfies_protocol():
    class CustomEmbedding:
        @property
        def dimension(self) -> int:
            return 3

        @property
        def model_name(self) -> str:
            return "custom"

        async def embed(self, text):
            return [0.0, 0.0, 1.0]

        async def embed_batch(self, texts):
            return [[0.0, 0.0, 1.0] for _ in texts]

    assert isinstance(CustomEmbedding(), TextEmbedding)


def test_incomplete_embedding_rejected():
    class Incomplete:
        async def embed(self, text):
            return []

    assert not isinstance(Incomplete(), TextEmbedding)
