import asyncio
import logging
from functools import cached_property

import numpy as np
from sentence_transformers import SentenceTransformer

logger = logging.getLogger(__name__)


class SentenceTransformerEmbedder:
    """Local embedding provider; runs the model in a worker thread."""

    name = "local"
    supports_batch = True

    def __init__(self, model_name: str = "intfloat/multilingual-e5-base"):
        self.model = model_name

    @cached_property
    def _model(self) -> SentenceTransformer:
        logger.info(f"Loading embedding model: {self.model}")
        return SentenceTransformer(self.model)

    def encode(self, texts: str | list[str]) -> np.ndarray:
        return self._model.encode(texts, convert_to_numpy=True, normalize_embeddings=True)

    async def embed(self, text: str) -> list[float]:
        vector = await asyncio.to_thread(self.encode, f"query: {text}")
        return vector.tolist()

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        vectors = await asyncio.to_thread(self.encode, [f"query: {t}" for t in texts])
        return vectors.tolist()
