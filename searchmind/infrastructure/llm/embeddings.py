from typing import Any, List, Optional

from langchain.embeddings import init_embeddings
from langchain_core.embeddings import Embeddings


def create_embeddings(model: str, **kwargs: Any) -> Embeddings:
    """Build an embeddings model from a provider:model identifier"""
    return init_embeddings(model, **kwargs)


def _clean(text: str) -> str:
    return text.replace("\n", " ")


class EmbeddingService:
    """Embeds memory content and queries into fixed-size vectors"""

    def __init__(self, embeddings: Embeddings, dimensions: Optional[int] = None):
        self.embeddings = embeddings
        self.dimensions = dimensions

    async def embed(self, text: str) -> List[float]:
        vector = await self.embeddings.aembed_query(_clean(text))
        self._check(vector)
        return vector

    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        vectors = await self.embeddings.aembed_documents([_clean(t) for t in texts])
        for vector in vectors:
            self._check(vector)
        return vectors

    def _check(self, vector: List[float]) -> None:
        if self.dimensions is not None and len(vector) != self.dimensions:
            raise ValueError(f"Expected {self.dimensions}-dimensional embedding, got {len(vector)}")
