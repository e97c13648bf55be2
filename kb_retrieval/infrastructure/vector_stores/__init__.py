from .chroma_store import ChromaCollection, ChromaVectorIndex

__all__ = ["ChromaCollection", "ChromaVectorIndex"]
