"""
Tests for configuration settings.
"""

import pytest

from config.settings import (
    DEFAULT_SYSTEM_PROMPT,
    EmbeddingConfig,
    Settings,
    get_settings,
    parse_collections,
    reload_settings,
)


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self):
        settings = Settings()

        assert settings.vector_store.provider == "mongodb"
        assert settings.vector_store.mongodb_collections == [("docs", "vectorDocsIndex")]
        assert settings.retrieval.top_k == 5
        assert settings.cache.result_ttl == 3600
        assert settings.cache.result_max_keys == 1000
        assert settings.cache.message_ttl == 300
        assert settings.cache.message_max_keys == 10000
        assert settings.cache.last_conversation_ttl == 86400
        assert settings.retry.max_attempts == 3
        assert settings.retry.base_delay == 1.0
        assert settings.llm.answer_max_tokens == 500
        assert settings.llm.system_prompt == DEFAULT_SYSTEM_PROMPT
        assert settings.enrichment.api_name == "support"

    def test_embedding_dimension(self):
        assert EmbeddingConfig(provider="openai").dimension == 1536
        assert EmbeddingConfig(provider="local").dimension == 384
        assert EmbeddingConfig(provider="local", local_model="all-mpnet-base-v2").dimension == 768


class TestFromEnv:
    """Tests for environment loading."""

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("LLM_PROVIDER", "mistral")
        monkeypatch.setenv("CLASSIFIER_MODEL", "gpt-3.5-turbo")
        monkeypatch.setenv("MONGODB_COLLECTIONS", "docs:vectorDocsIndex, faq:faqIndex")
        monkeypatch.setenv("TOP_K_RESULTS", "8")
        monkeypatch.setenv("RESULT_CACHE_TTL", "60")
        monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("STAGE_TIMEOUT", "")
        monkeypatch.setenv("ENRICHMENT_API_URL", "https://api.example.com")

        settings = Settings.from_env()

        assert settings.llm.provider == "mistral"
        assert settings.llm.classifier_model == "gpt-3.5-turbo"
        assert settings.vector_store.mongodb_collections == [
            ("docs", "vectorDocsIndex"),
            ("faq", "faqIndex"),
        ]
        assert settings.retrieval.top_k == 8
        assert settings.cache.result_ttl == 60
        assert settings.retry.max_attempts == 5
        assert settings.retry.stage_timeout is None
        assert settings.enrichment.api_url == "https://api.example.com"

    def test_reload_settings(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        settings = reload_settings()

        assert settings.log_level == "DEBUG"
        assert get_settings() is settings


class TestParseCollections:
    """Tests for MONGODB_COLLECTIONS parsing."""

    @pytest.mark.parametrize("raw, expected", [
        ("docs:vectorDocsIndex", [("docs", "vectorDocsIndex")]),
        ("docs", [("docs", "vectorIndex")]),
        ("a:i1,,b:i2,", [("a", "i1"), ("b", "i2")]),
        ("", []),
    ])
    def test_parse(self, raw, expected):
        assert parse_collections(raw) == expected
