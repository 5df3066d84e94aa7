"""
Query embeddings for similarity search.

The query vector must come from the same model that embedded the indexed
documents, so the provider is picked from configuration and never per call:

- local: sentence-transformers checkpoint (384 dims for all-MiniLM-L6-v2)
- openai: embeddings API (1536 dims for text-embedding-ada-002)
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import List, Optional

from config.settings import get_settings, EmbeddingConfig

logger = logging.getLogger(__name__)

OPENAI_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class BaseEmbeddingProvider(ABC):
    """Synchronous embedder; EmbeddingService moves calls off the event loop."""

    @abstractmethod
    def embed_text(self, text: str) -> List[float]:
        ...

    @property
    @abstractmethod
    def dimension(self) -> int:
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        ...


class LocalEmbeddingProvider(BaseEmbeddingProvider):
    """sentence-transformers model, loaded on first use."""

    def __init__(self, model_name: str = "all-MiniLM-L6-v2", hf_token: Optional[str] = None):
        self._model_name = model_name
        self._hf_token = hf_token
        self._model = None

    def _load_model(self):
        if self._model is not None:
            return self._model

        from sentence_transformers import SentenceTransformer

        # Gated checkpoints need a Hugging Face login before download
        if self._hf_token:
            from huggingface_hub import login
            login(token=self._hf_token)

        logger.info(f"Loading sentence-transformers model {self._model_name}")
        self._model = SentenceTransformer(self._model_name)
        return self._model

    def embed_text(self, text: str) -> List[float]:
        return self._load_model().encode(text, convert_to_numpy=True).tolist()

    @property
    def dimension(self) -> int:
        return self._load_model().get_sentence_embedding_dimension()

    @property
    def model_name(self) -> str:
        return self._model_name


class OpenAIEmbeddingProvider(BaseEmbeddingProvider):
    """OpenAI embeddings API. Unknown models are assumed to be 1536-dimensional."""

    def __init__(self, model_name: str = "text-embedding-ada-002", api_key: Optional[str] = None):
        self._model_name = model_name
        self._api_key = api_key
        self._client = None

        if model_name not in OPENAI_DIMENSIONS:
            logger.warning(f"Unknown OpenAI embedding model {model_name}, assuming 1536 dimensions")

    def _get_client(self):
        if self._client is None:
            from openai import OpenAI

            api_key = self._api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ValueError("OPENAI_API_KEY is required for openai embeddings")
            self._client = OpenAI(api_key=api_key)
        return self._client

    def embed_text(self, text: str) -> List[float]:
        response = self._get_client().embeddings.create(input=text, model=self._model_name)
        return response.data[0].embedding

    @property
    def dimension(self) -> int:
        return OPENAI_DIMENSIONS.get(self._model_name, 1536)

    @property
    def model_name(self) -> str:
        return self._model_name


class EmbeddingService:
    """
    Configured query embedder.

    Example:
        service = EmbeddingService()
        vector = await service.aembed_query("Como altero meu e-mail?")
    """

    def __init__(self, provider: Optional[str] = None, config: Optional[EmbeddingConfig] = None):
        self.config = config or get_settings().embedding
        provider = provider or self.config.provider

        if provider == "local":
            self._provider = LocalEmbeddingProvider(self.config.local_model, hf_token=self.config.hf_token)
        elif provider == "openai":
            self._provider = OpenAIEmbeddingProvider(self.config.openai_model, api_key=self.config.openai_api_key)
        else:
            raise ValueError(f"Unknown embedding provider: {provider}")

        self.provider_name = provider
        logger.info(f"EmbeddingService using {provider} ({self._provider.model_name})")

    def embed_query(self, query: str) -> List[float]:
        if not query or not query.strip():
            raise ValueError("Cannot embed empty text")
        return self._provider.embed_text(query)

    async def aembed_query(self, query: str) -> List[float]:
        """embed_query in a worker thread; both providers block on I/O or compute."""
        return await asyncio.to_thread(self.embed_query, query)

    @property
    def dimension(self) -> int:
        return self._provider.dimension

    @property
    def model_name(self) -> str:
        return self._provider.model_name
