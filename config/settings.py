"""
Configuration settings for the support mediator.

This module handles all configuration management using environment variables.
No hardcoded credentials - everything is configurable via .env file.
"""

import os
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Tuple
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


DEFAULT_SYSTEM_PROMPT = """You are a friendly customer support assistant.
Answer the user's message using the relevant contexts and the conversation summary provided.

Guidelines:
- Always answer in the same language the user wrote in (English, Portuguese or Spanish)
- Use ONLY the information in the relevant contexts for factual claims
- If the contexts do not cover the question, say so and offer to help further
- Keep answers short, clear and polite"""


@dataclass
class EmbeddingConfig:
    """Configuration for embedding models."""

    provider: Literal["local", "openai"] = "openai"
    local_model: str = "all-MiniLM-L6-v2"
    openai_model: str = "text-embedding-ada-002"
    openai_api_key: Optional[str] = None
    hf_token: Optional[str] = None

    # all-MiniLM-L6-v2: 384
    # text-embedding-ada-002: 1536
    @property
    def dimension(self) -> int:
        """Return embedding dimension based on selected model."""
        if self.provider == "local":
            model_dimensions = {
                "all-MiniLM-L6-v2": 384,
                "all-mpnet-base-v2": 768,
                "paraphrase-multilingual-MiniLM-L12-v2": 384,
            }
            return model_dimensions.get(self.local_model, 384)
        else:
            model_dimensions = {
                "text-embedding-3-small": 1536,
                "text-embedding-3-large": 3072,
                "text-embedding-ada-002": 1536,
            }
            return model_dimensions.get(self.openai_model, 1536)


@dataclass
class LLMConfig:
    """Configuration for LLM providers and completion parameters."""

    provider: Literal["ollama", "openai", "gemini", "mistral"] = "openai"

    # Ollama settings
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3"

    # OpenAI settings
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4"

    # Gemini settings
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"

    # Mistral settings
    mistral_api_key: Optional[str] = None
    mistral_model: str = "mistral-small-latest"

    # Per-call model overrides (None = provider default)
    answer_model: Optional[str] = None
    classifier_model: Optional[str] = None

    answer_max_tokens: int = 500
    greeting_temperature: float = 0.7
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


@dataclass
class VectorStoreConfig:
    """Configuration for vector store backends."""

    provider: Literal["mongodb", "pinecone", "faiss"] = "mongodb"

    # MongoDB settings
    mongodb_uri: Optional[str] = None
    mongodb_database: str = "support"
    # (collection, vector index) pairs searched together
    mongodb_collections: List[Tuple[str, str]] = field(
        default_factory=lambda: [("docs", "vectorDocsIndex")]
    )

    # Pinecone settings
    pinecone_api_key: Optional[str] = None
    pinecone_index_name: Optional[str] = None

    # FAISS settings
    faiss_index_path: str = "./data/faiss_index"


@dataclass
class RetrievalConfig:
    """Configuration for retrieval and context weighting."""

    top_k: int = 5
    similarity_threshold: float = 0.0  # Minimum weighted score kept
    max_context_length: int = 4000  # Max chars of rendered context
    lexical_weight: float = 0.3
    language_weight: float = 0.1


@dataclass
class CacheConfig:
    """TTLs (seconds) and capacities for the in-process caches."""

    result_ttl: int = 3600
    result_max_keys: int = 1000
    message_ttl: int = 300
    message_max_keys: int = 10000
    last_conversation_ttl: int = 86400


@dataclass
class RetryConfig:
    """Retry and timeout policy for network stages."""

    max_attempts: int = 3
    base_delay: float = 1.0
    stage_timeout: Optional[float] = 60.0


@dataclass
class EnrichmentConfig:
    """Configuration for the external enrichment API."""

    api_url: Optional[str] = None
    api_name: str = "support"
    timeout: float = 10.0


@dataclass
class MemoryConfig:
    """Configuration for per-user conversation memory."""

    max_turns: int = 10
    max_tokens: int = 2000


@dataclass
class Settings:
    """
    Main settings class that aggregates all configurations.

    Usage:
        settings = get_settings()
        print(settings.vector_store.provider)
        print(settings.cache.result_ttl)
    """

    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    vector_store: VectorStoreConfig = field(default_factory=VectorStoreConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    enrichment: EnrichmentConfig = field(default_factory=EnrichmentConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Create Settings instance from environment variables.

        This is the primary way to instantiate Settings.
        """
        embedding = EmbeddingConfig(
            provider=os.getenv("EMBEDDING_PROVIDER", "openai"),  # type: ignore
            local_model=os.getenv("LOCAL_EMBEDDING_MODEL", "all-MiniLM-L6-v2"),
            openai_model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-ada-002"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            hf_token=os.getenv("HF_TOKEN"),
        )

        llm = LLMConfig(
            provider=os.getenv("LLM_PROVIDER", "openai"),  # type: ignore
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
            ollama_model=os.getenv("OLLAMA_MODEL", "llama3"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_LLM_MODEL", "gpt-4"),
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash"),
            mistral_api_key=os.getenv("MISTRAL_API_KEY"),
            mistral_model=os.getenv("MISTRAL_MODEL", "mistral-small-latest"),
            answer_model=os.getenv("ANSWER_MODEL"),
            classifier_model=os.getenv("CLASSIFIER_MODEL"),
            answer_max_tokens=int(os.getenv("ANSWER_MAX_TOKENS", "500")),
            greeting_temperature=float(os.getenv("GREETING_TEMPERATURE", "0.7")),
            system_prompt=os.getenv("SYSTEM_PROMPT") or DEFAULT_SYSTEM_PROMPT,
        )

        vector_store = VectorStoreConfig(
            provider=os.getenv("VECTOR_STORE_PROVIDER", "mongodb"),  # type: ignore
            mongodb_uri=os.getenv("MONGODB_URI"),
            mongodb_database=os.getenv("MONGODB_DATABASE", "support"),
            mongodb_collections=parse_collections(
                os.getenv("MONGODB_COLLECTIONS", "docs:vectorDocsIndex")
            ),
            pinecone_api_key=os.getenv("PINECONE_API_KEY"),
            pinecone_index_name=os.getenv("PINECONE_INDEX_NAME"),
            faiss_index_path=os.getenv("FAISS_INDEX_PATH", "./data/faiss_index"),
        )

        retrieval = RetrievalConfig(
            top_k=int(os.getenv("TOP_K_RESULTS", "5")),
            similarity_threshold=float(os.getenv("SIMILARITY_THRESHOLD", "0.0")),
            max_context_length=int(os.getenv("MAX_CONTEXT_LENGTH", "4000")),
            lexical_weight=float(os.getenv("LEXICAL_WEIGHT", "0.3")),
            language_weight=float(os.getenv("LANGUAGE_WEIGHT", "0.1")),
        )

        cache = CacheConfig(
            result_ttl=int(os.getenv("RESULT_CACHE_TTL", "3600")),
            result_max_keys=int(os.getenv("RESULT_CACHE_MAX_KEYS", "1000")),
            message_ttl=int(os.getenv("MESSAGE_CACHE_TTL", "300")),
            message_max_keys=int(os.getenv("MESSAGE_CACHE_MAX_KEYS", "10000")),
            last_conversation_ttl=int(os.getenv("LAST_CONVERSATION_TTL", "86400")),
        )

        stage_timeout = os.getenv("STAGE_TIMEOUT", "60")
        retry = RetryConfig(
            max_attempts=int(os.getenv("RETRY_MAX_ATTEMPTS", "3")),
            base_delay=float(os.getenv("RETRY_BASE_DELAY", "1.0")),
            stage_timeout=float(stage_timeout) if stage_timeout else None,
        )

        enrichment = EnrichmentConfig(
            api_url=os.getenv("ENRICHMENT_API_URL"),
            api_name=os.getenv("ENRICHMENT_API_NAME", "support"),
            timeout=float(os.getenv("ENRICHMENT_TIMEOUT", "10")),
        )

        memory = MemoryConfig(
            max_turns=int(os.getenv("MEMORY_MAX_TURNS", "10")),
            max_tokens=int(os.getenv("MEMORY_MAX_TOKENS", "2000")),
        )

        return cls(
            embedding=embedding,
            llm=llm,
            vector_store=vector_store,
            retrieval=retrieval,
            cache=cache,
            retry=retry,
            enrichment=enrichment,
            memory=memory,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


def parse_collections(raw: str) -> List[Tuple[str, str]]:
    """
    Parse ``collection:index`` pairs separated by commas.

    A bare collection name uses ``vectorIndex`` as its index name.
    """
    pairs = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        name, _, index = item.partition(":")
        pairs.append((name.strip(), index.strip() or "vectorIndex"))
    return pairs


# Singleton pattern for settings
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the singleton Settings instance.

    Returns:
        Settings: The application settings loaded from environment.
    """
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reload_settings() -> Settings:
    """
    Reload settings from environment (useful for testing).

    Returns:
        Settings: Fresh settings instance.
    """
    global _settings
    load_dotenv(override=True)
    _settings = Settings.from_env()
    return _settings
