import logging

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


class OpenAIEmbedder:
    """Embedding provider backed by the OpenAI embeddings API."""

    name = "openai"
    supports_batch = True

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-ada-002",
        batch_size: int = 100,
        client: AsyncOpenAI | None = None,
    ):
        """Initialize provider.

        Args:
            api_key: OpenAI API key.
            model: Embedding model name.
            batch_size: Maximum inputs per API request.
            client: Preconfigured client.
        """
        self.model = model
        self._batch_size = batch_size
        self._client = client or AsyncOpenAI(api_key=api_key)

    async def embed(self, text: str) -> list[float]:
        resp = await self._client.embeddings.create(model=self.model, input=text)
        return list(resp.data[0].embedding)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            batch = texts[start:start + self._batch_size]
            resp = await self._client.embeddings.create(model=self.model, input=batch)
            ordered = sorted(resp.data, key=lambda item: item.index)
            vectors.extend(list(item.embedding) for item in ordered)

        logger.debug(f"OpenAI embedded {len(vectors)} texts with {self.model}")
        return vectors

    async def aclose(self) -> None:
        await self._client.close()
