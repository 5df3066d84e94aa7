"""
LLM Service Module

Provides an async abstraction layer over chat-completion providers:
- Cloud: OpenAI (GPT-3.5/4) - default, supports JSON mode
- Local: Ollama (Llama 3, Mistral, etc.) - Free, runs locally
- Cloud: Google Gemini
- Cloud: Mistral AI

Every provider takes the same inputs (system prompt, chat messages,
temperature, max tokens, JSON mode) and returns an LLMResponse, so the
pipeline never depends on a vendor SDK directly.

Usage:
    llm = LLMService(provider="openai")
    response = await llm.complete(
        messages=[{"role": "user", "content": "Hello"}],
        system_prompt="You are a support assistant.",
    )
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import types

from config.settings import get_settings, LLMConfig

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """
    Standardized response from LLM providers.

    Attributes:
        content: The generated text response
        model: Model name used for generation
        usage: Token usage statistics (if available)
        finish_reason: Why generation stopped
    """
    content: str
    model: str
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None

    def __str__(self) -> str:
        return self.content


def build_messages(
    messages: List[Dict[str, str]],
    system_prompt: Optional[str] = None,
) -> List[Dict[str, str]]:
    """Prepend the system prompt (if any) in OpenAI chat format."""
    full = []
    if system_prompt:
        full.append({"role": "system", "content": system_prompt})
    full.extend(messages)
    return full


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    All providers must implement:
    - complete: Generate a chat completion
    """

    @abstractmethod
    async def complete(
        self,
        messages: List[Dict[str, str]],
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """
        Generate a chat completion.

        Args:
            messages: Chat messages [{"role": "user", "content": "..."}]
            system_prompt: Optional system instructions
            temperature: Creativity (0 = deterministic)
            max_tokens: Maximum tokens in response
            json_mode: Ask the model for a single JSON object
            model: Override the provider's default model

        Returns:
            LLMResponse object
        """
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the default model name."""
        pass


class OpenAIProvider(BaseLLMProvider):
    """
    OpenAI provider for GPT models.

    Models:
    - gpt-3.5-turbo: Fast, cost-effective (intent classification)
    - gpt-4: Most capable (answers)
    """

    def __init__(
        self,
        model: str = "gpt-4",
        api_key: Optional[str] = None,
    ):
        """
        Args:
            model: OpenAI model name
            api_key: API key (or from environment)
        """
        self._model = model
        self._api_key = api_key
        self._client = None

        logger.info(f"Initializing OpenAIProvider: model={model}")

    def _get_client(self):
        """Get or create the async OpenAI client."""
        if self._client is None:
            from openai import AsyncOpenAI

            api_key = self._api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ValueError(
                    "OpenAI API key not found. Set OPENAI_API_KEY environment variable."
                )

            self._client = AsyncOpenAI(api_key=api_key)
            logger.info("OpenAI client initialized")
        return self._client

    async def complete(
        self,
        messages: List[Dict[str, str]],
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """Generate a completion using OpenAI."""
        client = self._get_client()

        kwargs: Dict[str, Any] = {
            "model": model or self._model,
            "messages": build_messages(messages, system_prompt),
            "temperature": temperature,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await client.chat.completions.create(**kwargs)
        except Exception as e:
            logger.error(f"OpenAI generation error: {e}")
            raise

        choice = response.choices[0]
        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            usage=usage,
            finish_reason=choice.finish_reason,
        )

    @property
    def model_name(self) -> str:
        return self._model


class OllamaProvider(BaseLLMProvider):
    """
    Ollama provider for local LLM inference.

    Requirements:
    - Ollama installed: https://ollama.ai
    - Model pulled: ollama pull llama3
    """

    def __init__(
        self,
        model: str = "llama3",
        base_url: str = "http://localhost:11434",
    ):
        """
        Args:
            model: Ollama model name
            base_url: Ollama server URL
        """
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._client = None

        logger.info(f"Initializing OllamaProvider: model={model}, url={base_url}")

    def _get_client(self):
        """Get or create the async Ollama client."""
        if self._client is None:
            import ollama
            self._client = ollama.AsyncClient(host=self._base_url)
            logger.info("Ollama client initialized")
        return self._client

    async def complete(
        self,
        messages: List[Dict[str, str]],
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """Generate a completion using Ollama."""
        client = self._get_client()
        model = model or self._model

        options: Dict[str, Any] = {"temperature": temperature}
        if max_tokens:
            options["num_predict"] = max_tokens

        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": build_messages(messages, system_prompt),
            "options": options,
        }
        if json_mode:
            kwargs["format"] = "json"

        try:
            response = await client.chat(**kwargs)
        except Exception as e:
            logger.error(f"Ollama generation error: {e}")
            raise

        return LLMResponse(
            content=response["message"]["content"] or "",
            model=model,
            usage={
                "prompt_tokens": response.get("prompt_eval_count") or 0,
                "completion_tokens": response.get("eval_count") or 0,
            },
            finish_reason="stop",
        )

    @property
    def model_name(self) -> str:
        return self._model


class GeminiProvider(BaseLLMProvider):
    """
    Google Gemini provider using the google-genai package.

    Chat roles are mapped to Gemini's "user"/"model"; the system prompt
    goes into ``system_instruction``.
    """

    def __init__(
        self,
        model: str = "gemini-2.0-flash",
        api_key: Optional[str] = None,
    ):
        """
        Args:
            model: Gemini model name
            api_key: API key (or from environment)
        """
        self._model = model
        self._api_key = api_key
        self._client = None

        logger.info(f"Initializing GeminiProvider: model={model}")

    def _get_client(self):
        """Get or create the Gemini client."""
        if self._client is None:
            api_key = self._api_key or os.getenv("GEMINI_API_KEY")
            if not api_key:
                raise ValueError(
                    "Gemini API key not found. Set GEMINI_API_KEY environment variable."
                )

            self._client = genai.Client(api_key=api_key)
            logger.info(f"Gemini client initialized with model: {self._model}")
        return self._client

    @staticmethod
    def _to_contents(messages: List[Dict[str, str]]) -> List[Dict[str, Any]]:
        return [
            {
                "role": "model" if m["role"] == "assistant" else "user",
                "parts": [{"text": m["content"]}],
            }
            for m in messages
        ]

    async def complete(
        self,
        messages: List[Dict[str, str]],
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """Generate a completion using Gemini."""
        client = self._get_client()
        model = model or self._model

        config = types.GenerateContentConfig(
            temperature=temperature,
            system_instruction=system_prompt if system_prompt else None,
        )
        if max_tokens:
            config.max_output_tokens = max_tokens
        if json_mode:
            config.response_mime_type = "application/json"

        try:
            response = await client.aio.models.generate_content(
                model=model,
                contents=self._to_contents(messages),
                config=config,
            )
        except Exception as e:
            logger.error(f"Gemini generation error: {e}")
            raise

        return LLMResponse(
            content=response.text or "",
            model=model,
            finish_reason="stop",
        )

    @property
    def model_name(self) -> str:
        return self._model


class MistralProvider(BaseLLMProvider):
    """
    Mistral AI cloud provider.

    Models:
    - mistral-small-latest: Fast, efficient (recommended for support)
    - mistral-large-latest: Most capable
    """

    def __init__(
        self,
        model: str = "mistral-small-latest",
        api_key: Optional[str] = None,
    ):
        """
        Args:
            model: Mistral model name
            api_key: API key (or from environment)
        """
        self._model = model
        self._api_key = api_key
        self._client = None

        logger.info(f"Initializing MistralProvider: model={model}")

    def _get_client(self):
        """Get or create the Mistral client."""
        if self._client is None:
            from mistralai import Mistral

            api_key = self._api_key or os.getenv("MISTRAL_API_KEY")
            if not api_key:
                raise ValueError(
                    "Mistral API key not found. Set MISTRAL_API_KEY environment variable."
                )

            self._client = Mistral(api_key=api_key)
            logger.info(f"Mistral client initialized with model: {self._model}")
        return self._client

    async def complete(
        self,
        messages: List[Dict[str, str]],
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """Generate a completion using Mistral."""
        client = self._get_client()

        kwargs: Dict[str, Any] = {
            "model": model or self._model,
            "messages": build_messages(messages, system_prompt),
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await client.chat.complete_async(**kwargs)
        except Exception as e:
            logger.error(f"Mistral generation error: {e}")
            raise

        choice = response.choices[0]
        return LLMResponse(
            content=choice.message.content or "",
            model=model or self._model,
            usage={
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            } if response.usage else None,
            finish_reason=choice.finish_reason,
        )

    @property
    def model_name(self) -> str:
        return self._model


class LLMService:
    """
    Main LLM Service with unified interface.

    This is the class that other components should use.
    It handles provider selection based on configuration.

    Example:
        llm = LLMService()
        response = await llm.complete(
            [{"role": "user", "content": "What is my plan?"}],
            system_prompt="You are a support assistant.",
            max_tokens=500,
        )
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        config: Optional[LLMConfig] = None,
    ):
        """
        Args:
            provider: "openai", "ollama", "gemini", or "mistral" (default from config)
            config: Optional LLMConfig instance
        """
        self.config = config or get_settings().llm

        provider = provider or self.config.provider

        if provider == "openai":
            self._provider = OpenAIProvider(
                model=self.config.openai_model,
                api_key=self.config.openai_api_key,
            )
        elif provider == "ollama":
            self._provider = OllamaProvider(
                model=self.config.ollama_model,
                base_url=self.config.ollama_base_url,
            )
        elif provider == "gemini":
            self._provider = GeminiProvider(
                model=self.config.gemini_model,
                api_key=self.config.gemini_api_key,
            )
        elif provider == "mistral":
            self._provider = MistralProvider(
                model=self.config.mistral_model,
                api_key=self.config.mistral_api_key,
            )
        else:
            raise ValueError(f"Unknown LLM provider: {provider}")

        self._provider_name = provider
        logger.info(f"LLMService initialized with {provider} provider")

    async def complete(
        self,
        messages: List[Dict[str, str]],
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """
        Generate a chat completion.

        Args:
            messages: Chat messages in OpenAI format
            system_prompt: Optional system instructions
            temperature: Creativity (0-1)
            max_tokens: Maximum tokens in response
            json_mode: Request a JSON object response
            model: Optional model override

        Returns:
            LLMResponse object
        """
        return await self._provider.complete(
            messages=messages,
            system_prompt=system_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=json_mode,
            model=model,
        )

    @property
    def model_name(self) -> str:
        """Return the default model name."""
        return self._provider.model_name

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return self._provider_name
