import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiEmbedder:
    """Embedding provider using the Gemini ``embedContent`` REST endpoint.

    The endpoint embeds one text per call, so ``embed_batch`` issues one
    request per item and a failed item fails the batch.
    """

    name = "gemini"
    supports_batch = False

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-embedding-001",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.model = model
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(base_url=GEMINI_BASE_URL, timeout=timeout)

    async def embed(self, text: str) -> list[float]:
        resp = await self._client.post(
            f"/models/{self.model}:embedContent",
            headers={"x-goog-api-key": self._api_key},
            json={
                "model": f"models/{self.model}",
                "content": {"parts": [{"text": text}]},
            },
        )
        resp.raise_for_status()
        return list(resp.json()["embedding"]["values"])

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed(text) for text in texts]

    async def aclose(self) -> None:
        await self._client.aclose()
