"""Application settings and configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    # API Keys (Optional - defaults for testing)
    anthropic_api_key: str | None = Field(default=None, alias="ANTHROPIC_API_KEY")
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")

    # Persistence
    database_url: str = Field(
        default="sqlite:///./clausecheck.db",
        alias="DATABASE_URL"
    )
    max_record_bytes: int = Field(default=1_048_576, alias="MAX_RECORD_BYTES")
    analysis_collection: str = Field(default="complianceAnalyses", alias="ANALYSIS_COLLECTION")
    job_collection: str = Field(default="analysisJobs", alias="JOB_COLLECTION")

    # Vector Database (Qdrant) for the legal corpus
    qdrant_url: str = Field(default="http://localhost:6333", alias="QDRANT_URL")
    qdrant_api_key: str | None = Field(default=None, alias="QDRANT_API_KEY")
    legal_index_id: str | None = Field(default=None, alias="LEGAL_INDEX_ID")

    # Embedding Configuration
    embedding_model: str = Field(default="text-embedding-3-large", alias="EMBEDDING_MODEL")
    embedding_dimension: int = Field(default=1024, alias="EMBEDDING_DIMENSION")

    # LLM Configuration
    llm_provider: Literal["anthropic", "openai"] = Field(default="openai", alias="LLM_PROVIDER")
    llm_model: str = Field(default="gpt-4o", alias="LLM_MODEL")
    llm_temperature: float = Field(default=0.0, alias="LLM_TEMPERATURE")
    llm_max_tokens: int = Field(default=4096, alias="LLM_MAX_TOKENS")
    llm_timeout_seconds: float = Field(default=60.0, alias="LLM_TIMEOUT_SECONDS")

    # Rate limiting of the reasoning service
    llm_rate_limit_tokens_per_minute: int = Field(
        default=30000, alias="LLM_RATE_LIMIT_TOKENS_PER_MINUTE"
    )
    token_safety_margin: float = Field(default=0.8, alias="TOKEN_SAFETY_MARGIN")
    batch_cooldown_seconds: float = Field(default=60.0, alias="BATCH_COOLDOWN_SECONDS")
    token_estimate_buffer: float = Field(default=1.2, alias="TOKEN_ESTIMATE_BUFFER")
    fallback_batch_size: int = Field(default=3, alias="FALLBACK_BATCH_SIZE")

    # Per-call token overheads used by the budget estimator
    token_overhead_system_prompt: int = Field(default=600, alias="TOKEN_OVERHEAD_SYSTEM_PROMPT")
    token_overhead_query_generation: int = Field(
        default=400, alias="TOKEN_OVERHEAD_QUERY_GENERATION"
    )
    token_overhead_compliance_call: int = Field(
        default=2500, alias="TOKEN_OVERHEAD_COMPLIANCE_CALL"
    )
    token_estimate_response: int = Field(default=800, alias="TOKEN_ESTIMATE_RESPONSE")

    # Document Processing
    tokenizer_encoding: str = Field(default="cl100k_base", alias="TOKENIZER_ENCODING")
    max_tokens_per_request: int = Field(default=4000, alias="MAX_TOKENS_PER_REQUEST")
    min_unit_length: int = Field(default=50, alias="MIN_UNIT_LENGTH")
    fallback_chunk_size: int = Field(default=1000, alias="FALLBACK_CHUNK_SIZE")
    unit_segmentation: Literal["semantic", "hierarchical"] = Field(
        default="semantic", alias="UNIT_SEGMENTATION"
    )
    default_language: Literal["de", "fr", "it", "en"] = Field(
        default="de", alias="DEFAULT_LANGUAGE"
    )
    complexity_length_threshold: int = Field(default=20000, alias="COMPLEXITY_LENGTH_THRESHOLD")
    medium_complexity_length_threshold: int = Field(
        default=10000, alias="MEDIUM_COMPLEXITY_LENGTH_THRESHOLD"
    )
    clause_refine_ceiling: int = Field(default=1500, alias="CLAUSE_REFINE_CEILING")

    # Section analysis
    queries_per_unit: int = Field(default=3, alias="QUERIES_PER_UNIT")
    legal_search_top_k: int = Field(default=5, alias="LEGAL_SEARCH_TOP_K")
    legal_search_score_threshold: float = Field(
        default=0.5, alias="LEGAL_SEARCH_SCORE_THRESHOLD"
    )
    legal_area: str = Field(default="Obligationenrecht", alias="LEGAL_AREA")
    jurisdiction: str = Field(default="CH", alias="JURISDICTION")
    legal_framework: str = Field(
        default="Swiss Code of Obligations", alias="LEGAL_FRAMEWORK"
    )

    # Notifications
    notification_max_attempts: int = Field(default=3, alias="NOTIFICATION_MAX_ATTEMPTS")
    notification_queue_size: int = Field(default=1000, alias="NOTIFICATION_QUEUE_SIZE")

    @property
    def qdrant_collection_name(self) -> str:
        """Get Qdrant collection name based on environment."""
        return self.legal_index_id or f"legal_corpus_{self.environment}"

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
