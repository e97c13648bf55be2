"""Embedding gateway - one call site over several embedding backends."""

import logging
from typing import Awaitable, Callable, Optional, TypeVar

from ..errors import EmbeddingUnavailable
from ..protocols.embedder import EmbedderProtocol

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EmbeddingGateway:
    """Embeds text with a preferred provider, falling back to the primary once.

    Fallback is a fixed two-step chain: preferred provider, then the primary
    provider. A failure of the primary provider itself is never retried.
    """

    def __init__(
        self,
        providers: dict[str, EmbedderProtocol],
        primary: str,
        preferred: Optional[str] = None,
    ):
        """Initialize gateway.

        Args:
            providers: Providers keyed by provider name.
            primary: Name of the primary provider.
            preferred: Default preferred provider (primary when unset).
        """
        if primary not in providers:
            raise ValueError(f"Primary embedding provider {primary!r} is not configured")

        self._providers = providers
        self._primary = primary
        self._preferred = preferred or primary

    @property
    def primary(self) -> str:
        return self._primary

    @property
    def providers(self) -> list[str]:
        return list(self._providers)

    async def aclose(self) -> None:
        """Close providers that hold network clients."""
        for provider in self._providers.values():
            close = getattr(provider, "aclose", None)
            if close is not None:
                await close()

    async def embed(self, text: str, provider: Optional[str] = None) -> list[float]:
        """Embed one text.

        Raises:
            EmbeddingUnavailable: Preferred and primary providers both failed.
        """
        return await self._with_fallback(provider, lambda p: p.embed(text))

    async def embed_batch(
        self, texts: list[str], provider: Optional[str] = None
    ) -> list[list[float]]:
        """Embed several texts; one failed item fails the whole batch.

        Raises:
            EmbeddingUnavailable: Preferred and primary providers both failed.
        """
        if not texts:
            return []
        return await self._with_fallback(provider, lambda p: self._batch(p, texts))

    async def _batch(self, provider: EmbedderProtocol, texts: list[str]) -> list[list[float]]:
        if provider.supports_batch:
            return await provider.embed_batch(texts)

        logger.debug(f"{provider.name} has no batch mode, embedding {len(texts)} texts one by one")
        return [await provider.embed(text) for text in texts]

    async def _with_fallback(
        self,
        provider: Optional[str],
        call: Callable[[EmbedderProtocol], Awaitable[T]],
    ) -> T:
        name = provider or self._preferred
        if name not in self._providers:
            logger.warning(f"Embedding provider {name!r} is not configured, using {self._primary}")
            name = self._primary

        try:
            return await call(self._providers[name])
        except Exception as e:
            if name == self._primary:
                logger.error(f"Embedding failed with {name}: {e}")
                raise EmbeddingUnavailable(f"Embedding provider {name} failed: {e}") from e
            logger.warning(f"Embedding failed with {name}: {e}; falling back to {self._primary}")

        try:
            return await call(self._providers[self._primary])
        except Exception as e:
            logger.error(f"Embedding failed with fallback {self._primary}: {e}")
            raise EmbeddingUnavailable(
                f"Embedding providers {name} and {self._primary} failed: {e}"
            ) from e
