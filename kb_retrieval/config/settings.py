from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):

    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_tenant: str = "default_tenant"
    chroma_database: str = "default_database"
    collection_prefix: str = "tenant_"

    embedding_primary_provider: str = "openai"
    embedding_preferred_provider: Optional[str] = None
    embedding_batch_size: int = 100
    openai_api_key: Optional[str] = None
    openai_embedding_model: str = "text-embedding-ada-002"
    gemini_api_key: Optional[str] = None
    gemini_embedding_model: str = "gemini-embedding-001"
    local_embedding_model: str = "intfloat/multilingual-e5-base"

    search_default_strategy: str = "hybrid"
    search_default_k: int = 5
    search_semantic_min_similarity: float = 0.7
    search_hybrid_min_similarity: float = 0.6
    search_semantic_weight: float = 0.7
    search_keyword_weight: float = 0.3
    search_enable_reranking: bool = True
    search_hybrid_candidate_multiplier: int = 3
    search_semantic_overfetch: int = 2
    search_hybrid_threshold_slack: float = 0.1
    search_timeout: float = 10.0

    # Reranking boosts
    rerank_pdf_boost: float = 1.10
    rerank_first_chunk_boost: float = 1.05
    rerank_recent_boost: float = 1.02
    rerank_optimal_length_boost: float = 1.03
    rerank_recent_days: int = 30
    rerank_min_length: int = 100
    rerank_max_length: int = 2000

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
