"""Embedding provider adapters.

The sentence-transformers provider is imported lazily by the container so the
model stack loads only when the ``local`` provider is configured.
"""
from .gemini_embedder import GeminiEmbedder
from .openai_embedder import OpenAIEmbedder

__all__ = ["GeminiEmbedder", "OpenAIEmbedder"]
