"""
Support Mediator - Core Module

This module contains the query pipeline components:
- EmbeddingService: Query embedding (local vs cloud)
- VectorStoreAdapter: Named vector backends (MongoDB/Pinecone/FAISS)
- LLMService: LLM provider abstraction (OpenAI/Ollama/Gemini/Mistral)
- IntentClassifier: Greeting/question/support classification
- ContextWeigher: Relevance weighting of retrieved contexts
- ConversationManager: Per-user conversation memory
- AnswerOrchestrator: Runs a support turn end to end
"""

from .cache import TTLCache
from .embeddings import EmbeddingService
from .enrichment import EnrichmentClient
from .exceptions import (
    ClassificationFailure,
    EmbeddingFailure,
    EnrichmentFailure,
    GenerationFailure,
    MediatorError,
    TransientBackendFailure,
    UnsupportedBackend,
)
from .intent import Intent, IntentClassifier
from .llm_service import LLMService, LLMResponse
from .memory import ConversationMemory, ConversationManager, HistoryView, Message
from .orchestrator import AnswerOrchestrator, QueryOptions, QueryResponse, create_orchestrator
from .relevance import ContextWeigher, WeightedContext
from .retry import RetryPolicy, retry
from .summary import ConversationSummarizer
from .vector_store import VectorMatch, VectorStoreAdapter, create_vector_store

__all__ = [
    # Collaborators
    "EmbeddingService",
    "LLMService",
    "LLMResponse",
    "VectorStoreAdapter",
    "VectorMatch",
    "EnrichmentClient",
    # Pipeline
    "Intent",
    "IntentClassifier",
    "ContextWeigher",
    "WeightedContext",
    "ConversationMemory",
    "ConversationManager",
    "ConversationSummarizer",
    "HistoryView",
    "Message",
    "AnswerOrchestrator",
    "QueryOptions",
    "QueryResponse",
    # Infrastructure
    "TTLCache",
    "RetryPolicy",
    "retry",
    # Errors
    "MediatorError",
    "TransientBackendFailure",
    "UnsupportedBackend",
    "EmbeddingFailure",
    "ClassificationFailure",
    "GenerationFailure",
    "EnrichmentFailure",
    # Factory functions
    "create_orchestrator",
    "create_vector_store",
]
