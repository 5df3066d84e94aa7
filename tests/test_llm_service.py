"""
Tests for LLM Service Module

Tests the LLMService, providers, and LLMResponse dataclass.
Provider clients are mocked; no API calls are made.
"""

import pytest
from unittest.mock import AsyncMock, Mock, patch

from config.settings import LLMConfig
from support_mediator.llm_service import (
    GeminiProvider,
    LLMResponse,
    LLMService,
    MistralProvider,
    OllamaProvider,
    OpenAIProvider,
    build_messages,
)


def chat_completion(content, model="gpt-4", usage=None):
    """Build an OpenAI/Mistral-style completion object."""
    return Mock(
        choices=[Mock(message=Mock(content=content), finish_reason="stop")],
        model=model,
        usage=usage,
    )


class TestLLMResponse:
    """Tests for LLMResponse dataclass."""

    def test_response_creation(self):
        """Test basic response creation."""
        response = LLMResponse(content="Test response", model="test-model")
        assert response.content == "Test response"
        assert response.model == "test-model"
        assert response.usage is None
        assert response.finish_reason is None

    def test_response_str(self):
        """Test string representation."""
        response = LLMResponse(content="Hello world", model="test")
        assert str(response) == "Hello world"


class TestBuildMessages:
    """Tests for message assembly."""

    def test_with_system_prompt(self):
        messages = build_messages([{"role": "user", "content": "Hi"}], "Be brief.")
        assert messages == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hi"},
        ]

    def test_without_system_prompt(self):
        assert build_messages([{"role": "user", "content": "Hi"}]) == [{"role": "user", "content": "Hi"}]


class TestOpenAIProvider:
    """Tests for OpenAI provider."""

    def test_initialization(self):
        provider = OpenAIProvider(model="gpt-4")
        assert provider.model_name == "gpt-4"

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ValueError):
            OpenAIProvider()._get_client()

    @pytest.mark.asyncio
    async def test_complete(self):
        provider = OpenAIProvider(model="gpt-4")
        client = Mock()
        client.chat.completions.create = AsyncMock(return_value=chat_completion(
            "Try another card.",
            usage=Mock(prompt_tokens=10, completion_tokens=5, total_tokens=15),
        ))

        with patch.object(provider, "_get_client", return_value=client):
            response = await provider.complete(
                [{"role": "user", "content": "Payment failed"}],
                system_prompt="Support",
                temperature=0.3,
                max_tokens=500,
            )

        assert response.content == "Try another card."
        assert response.usage["total_tokens"] == 15
        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-4"
        assert kwargs["max_tokens"] == 500
        assert kwargs["messages"][0] == {"role": "system", "content": "Support"}
        assert "response_format" not in kwargs

    @pytest.mark.asyncio
    async def test_json_mode_and_model_override(self):
        provider = OpenAIProvider(model="gpt-4")
        client = Mock()
        client.chat.completions.create = AsyncMock(return_value=chat_completion("{}", model="gpt-3.5-turbo"))

        with patch.object(provider, "_get_client", return_value=client):
            await provider.complete(
                [{"role": "user", "content": "hello"}],
                temperature=0,
                json_mode=True,
                model="gpt-3.5-turbo",
            )

        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-3.5-turbo"
        assert kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_error_propagates(self):
        provider = OpenAIProvider()
        client = Mock()
        client.chat.completions.create = AsyncMock(side_effect=RuntimeError("rate limited"))

        with patch.object(provider, "_get_client", return_value=client):
            with pytest.raises(RuntimeError):
                await provider.complete([{"role": "user", "content": "hi"}])


class TestOllamaProvider:
    """Tests for Ollama provider."""

    def test_initialization_custom_url(self):
        provider = OllamaProvider(model="mistral", base_url="http://custom:11434/")
        assert provider._base_url == "http://custom:11434"
        assert provider.model_name == "mistral"

    @pytest.mark.asyncio
    async def test_complete(self):
        provider = OllamaProvider(model="llama3")
        client = Mock()
        client.chat = AsyncMock(return_value={
            "message": {"content": "Response text"},
            "prompt_eval_count": 10,
            "eval_count": 20,
        })

        with patch.object(provider, "_get_client", return_value=client):
            response = await provider.complete(
                [{"role": "user", "content": "hello"}], json_mode=True, max_tokens=50,
            )

        assert response.content == "Response text"
        assert response.usage == {"prompt_tokens": 10, "completion_tokens": 20}
        kwargs = client.chat.await_args.kwargs
        assert kwargs["format"] == "json"
        assert kwargs["options"]["num_predict"] == 50


class TestGeminiProvider:
    """Tests for Gemini provider."""

    def test_initialization(self):
        provider = GeminiProvider(model="gemini-2.0-flash")
        assert provider.model_name == "gemini-2.0-flash"

    def test_role_mapping(self):
        contents = GeminiProvider._to_contents([
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello"},
        ])
        assert [c["role"] for c in contents] == ["user", "model"]
        assert contents[1]["parts"] == [{"text": "Hello"}]

    @pytest.mark.asyncio
    async def test_complete(self):
        provider = GeminiProvider()
        client = Mock()
        client.aio.models.generate_content = AsyncMock(return_value=Mock(text="Olá!"))

        with patch.object(provider, "_get_client", return_value=client):
            response = await provider.complete(
                [{"role": "user", "content": "olá"}], system_prompt="Support", json_mode=True,
            )

        assert response.content == "Olá!"
        config = client.aio.models.generate_content.await_args.kwargs["config"]
        assert config.system_instruction == "Support"
        assert config.response_mime_type == "application/json"


class TestMistralProvider:
    """Tests for Mistral provider."""

    def test_initialization(self):
        provider = MistralProvider(model="mistral-small-latest")
        assert provider.model_name == "mistral-small-latest"

    @pytest.mark.asyncio
    async def test_complete(self):
        provider = MistralProvider()
        client = Mock()
        client.chat.complete_async = AsyncMock(return_value=chat_completion("Hola", usage=None))

        with patch.object(provider, "_get_client", return_value=client):
            response = await provider.complete([{"role": "user", "content": "hola"}])

        assert response.content == "Hola"
        assert response.usage is None


class TestLLMService:
    """Tests for LLMService."""

    @pytest.mark.parametrize("provider, expected", [
        ("openai", OpenAIProvider),
        ("ollama", OllamaProvider),
        ("gemini", GeminiProvider),
        ("mistral", MistralProvider),
    ])
    def test_provider_selection(self, provider, expected):
        service = LLMService(provider=provider, config=LLMConfig())
        assert isinstance(service._provider, expected)
        assert service.provider_name == provider

    def test_default_from_config(self):
        service = LLMService(config=LLMConfig(provider="openai", openai_model="gpt-4"))
        assert service.model_name == "gpt-4"

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown LLM provider"):
            LLMService(provider="invalid", config=LLMConfig())

    @pytest.mark.asyncio
    async def test_complete_delegates(self):
        service = LLMService(provider="openai", config=LLMConfig())
        service._provider = Mock()
        service._provider.complete = AsyncMock(return_value=LLMResponse(content="ok", model="gpt-4"))

        response = await service.complete([{"role": "user", "content": "hi"}], max_tokens=10)

        assert response.content == "ok"
        assert service._provider.complete.await_args.kwargs["max_tokens"] == 10
