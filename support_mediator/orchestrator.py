"""
Answer Orchestrator Module

Runs one support turn end to end:

    DedupCheck -> CacheCheck -> Embed -> ClassifyIntent
        -> GreetingBranch | RetrievalBranch (vector search, weighting, enrichment)
        -> MemoryLoad -> PromptAssembly -> Generate -> PersistMemory -> CacheStore

- A message id already seen within its TTL suppresses the turn (None).
- Identical (query, options) within the result TTL return the cached response.
- A pure greeting skips retrieval and memory entirely.
- Enrichment failures are logged and treated as no results.
- Results are cached, and message ids marked, only after a successful answer.

All collaborators are injected; create_orchestrator() builds the default
graph from settings once at process start.
"""

import asyncio
import copy
import json
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Dict, List, Optional

from config.settings import get_settings, Settings
from support_mediator.cache import TTLCache
from support_mediator.embeddings import EmbeddingService
from support_mediator.enrichment import EnrichmentClient
from support_mediator.exceptions import (
    ClassificationFailure,
    EmbeddingFailure,
    EnrichmentFailure,
    GenerationFailure,
)
from support_mediator.intent import Intent, IntentClassifier
from support_mediator.llm_service import LLMService
from support_mediator.memory import ConversationManager
from support_mediator.relevance import ContextWeigher, WeightedContext
from support_mediator.retry import RetryPolicy
from support_mediator.summary import ConversationSummarizer
from support_mediator.vector_store import VectorStoreAdapter, create_vector_store

logger = logging.getLogger(__name__)


@dataclass
class QueryOptions:
    """
    Per-turn options.

    Attributes:
        top_k: Number of matches to retrieve (default from settings)
        enable_api_query: Call the external enrichment API
        language: Query language, enables the language-match bonus
        user_id: Conversation owner (None = anonymous)
        message_id: Transport message id used for duplicate suppression
        context: Free-form caller context, added to the answer prompt
    """
    top_k: Optional[int] = None
    enable_api_query: bool = False
    language: Optional[str] = None
    user_id: Optional[str] = None
    message_id: Optional[str] = None
    context: Optional[Dict[str, Any]] = None

    def to_payload(self) -> Dict[str, Any]:
        """Every option, as used in the result cache key."""
        return asdict(self)


@dataclass
class QueryResponse:
    """
    Result of one successful turn.

    Attributes:
        matches: Weighted contexts used for the answer
        api_results: External enrichment results
        answer: Generated answer text
        intent: Classified intent (informational)
    """
    matches: List[WeightedContext] = field(default_factory=list)
    api_results: List[Any] = field(default_factory=list)
    answer: str = ""
    intent: Optional[Intent] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (for API response)."""
        return {
            "matches": [match.to_dict() for match in self.matches],
            "apiResults": self.api_results,
            "answer": self.answer,
            "intent": self.intent.to_dict() if self.intent else None,
        }


def build_cache_key(query: str, options: QueryOptions) -> str:
    """Result cache key: the query plus the full options payload."""
    return f"{query}:{json.dumps(options.to_payload(), sort_keys=True, default=str)}"


class AnswerOrchestrator:
    """
    Coordinates retrieval, intent, memory and generation for a turn.

    Example:
        orchestrator = create_orchestrator()
        response = await orchestrator.query_embeddings(
            "I'm having issues with payment",
            QueryOptions(user_id="42", message_id="m-1001"),
        )
        if response is not None:
            print(response.answer)
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: VectorStoreAdapter,
        llm_service: LLMService,
        intent_classifier: IntentClassifier,
        weigher: ContextWeigher,
        conversation_manager: ConversationManager,
        summarizer: ConversationSummarizer,
        enrichment_client: EnrichmentClient,
        result_cache: TTLCache,
        message_cache: TTLCache,
        retry_policy: Optional[RetryPolicy] = None,
        store_name: str = "mongodb",
        top_k: int = 5,
        system_prompt: Optional[str] = None,
        answer_model: Optional[str] = None,
        answer_max_tokens: int = 500,
        greeting_temperature: float = 0.7,
        enrichment_api_name: str = "support",
        last_conversation_ttl: int = 86400,
    ):
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.llm_service = llm_service
        self.intent_classifier = intent_classifier
        self.weigher = weigher
        self.conversation_manager = conversation_manager
        self.summarizer = summarizer
        self.enrichment_client = enrichment_client
        self.result_cache = result_cache
        self.message_cache = message_cache
        self.retry_policy = retry_policy or RetryPolicy()

        self.store_name = store_name
        self.top_k = top_k
        self.system_prompt = system_prompt
        self.answer_model = answer_model
        self.answer_max_tokens = answer_max_tokens
        self.greeting_temperature = greeting_temperature
        self.enrichment_api_name = enrichment_api_name
        self.last_conversation_ttl = last_conversation_ttl

        logger.info(
            f"AnswerOrchestrator initialized: store={store_name}, top_k={top_k}"
        )

    async def _with_timeout(self, awaitable: Awaitable[Any]) -> Any:
        if self.retry_policy.timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self.retry_policy.timeout)

    async def _embed(self, query: str) -> List[float]:
        try:
            return await self.retry_policy.run(
                lambda: self.embedding_service.aembed_query(query),
                description="query embedding",
            )
        except Exception as e:
            raise EmbeddingFailure(f"Could not embed query: {e}") from e

    async def _classify(self, query: str) -> Intent:
        try:
            return await self._with_timeout(self.intent_classifier.classify(query))
        except asyncio.TimeoutError as e:
            raise ClassificationFailure("Intent classification timed out") from e

    async def _complete(self, messages: List[Dict[str, str]], temperature: float, description: str) -> str:
        """One completion under the retry policy. Empty answers count as failures."""

        async def attempt() -> str:
            response = await self.llm_service.complete(
                messages=messages,
                system_prompt=self.system_prompt,
                temperature=temperature,
                max_tokens=self.answer_max_tokens,
                model=self.answer_model,
            )
            content = (response.content or "").strip()
            if not content:
                raise GenerationFailure("Model returned an empty answer")
            return content

        try:
            return await self.retry_policy.run(attempt, description=description)
        except GenerationFailure:
            raise
        except Exception as e:
            raise GenerationFailure(f"{description} failed: {e}") from e

    async def _enrich(self, query: str, contexts: List[WeightedContext]) -> List[Any]:
        payload = {"query": query, "contexts": [context.to_dict() for context in contexts]}
        try:
            return await self._with_timeout(
                self.enrichment_client.query(self.enrichment_api_name, payload)
            )
        except (EnrichmentFailure, asyncio.TimeoutError) as e:
            logger.warning(f"Enrichment '{self.enrichment_api_name}' failed, continuing without it: {e!r}")
            return []

    @staticmethod
    def build_prompt(
        query: str,
        intent: Intent,
        summary: str,
        rendered_contexts: str,
        api_results: Optional[List[Any]] = None,
        caller_context: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Assemble the single user prompt for the answer completion."""
        lines = [
            f'Query: "{query}"',
            f"Intent: {json.dumps(intent.to_dict(), ensure_ascii=False)}",
            "",
            "Conversation Summary:",
            summary,
            "",
            "Relevant contexts:",
            rendered_contexts,
        ]
        if api_results:
            lines += ["", "External API results:", json.dumps(api_results, ensure_ascii=False, default=str)]
        if caller_context:
            lines += ["", "Additional context:", json.dumps(caller_context, ensure_ascii=False, default=str)]
        return "\n".join(lines)

    @staticmethod
    def build_greeting_prompt(query: str) -> str:
        return (
            f'Query: "{query}"\nType: Greeting\n\n'
            "Respond in a friendly and natural way, without assuming any supporting context"
        )

    async def query_embeddings(
        self,
        query: str,
        options: Optional[QueryOptions] = None,
    ) -> Optional[QueryResponse]:
        """
        Answer ``query``.

        Args:
            query: User message
            options: Per-turn options

        Returns:
            QueryResponse, or None when ``options.message_id`` was already handled

        Raises:
            ValueError: empty query
            EmbeddingFailure: embedding failed after retries
            ClassificationFailure: intent could not be classified
            TransientBackendFailure / UnsupportedBackend: retrieval failed
            GenerationFailure: answer could not be generated after retries
        """
        if not query or not query.strip():
            raise ValueError("Query must not be empty")

        options = options or QueryOptions()
        if options.top_k is not None and options.top_k < 1:
            raise ValueError(f"top_k must be at least 1, got {options.top_k}")
        message_id = options.message_id

        if self.is_duplicate(message_id):
            logger.info(f"Duplicate message detected: {message_id}")
            return None

        logger.info(f'Query: "{query}"')

        cache_key = build_cache_key(query, options)
        cached = self.result_cache.get(cache_key)
        if cached is not None:
            logger.info("Using cached result")
            return copy.deepcopy(cached)

        start_time = time.time()

        query_vector = await self._embed(query)
        intent = await self._classify(query)

        if intent.is_pure_greeting:
            answer = await self._complete(
                [{"role": "user", "content": self.build_greeting_prompt(query)}],
                temperature=self.greeting_temperature,
                description="greeting completion",
            )
            response = QueryResponse(matches=[], api_results=[], answer=answer, intent=intent)
            self._store(cache_key, message_id, response)
            logger.info(f"Greeting answered in {time.time() - start_time:.2f}s")
            return response

        # Retrieval branch
        top_k = options.top_k if options.top_k is not None else self.top_k
        vector_results = await self.vector_store.query(self.store_name, query_vector, top_k=top_k)
        contexts = self.weigher.weight(query, vector_results["matches"], language=options.language)
        retrieval_time = time.time() - start_time

        api_results: List[Any] = []
        if options.enable_api_query:
            api_results = await self._enrich(query, contexts)

        memory = self.conversation_manager.get_memory(options.user_id)
        history = await memory.load_memory_variables()
        try:
            summary = await self.summarizer.summarize(history)
        except Exception as e:
            raise GenerationFailure(f"Conversation summary failed: {e}") from e

        content = self.build_prompt(
            query,
            intent,
            summary,
            self.weigher.format_contexts(contexts),
            api_results=api_results,
            caller_context=options.context,
        )
        logger.debug(f"Chatbot input:\n{content}")

        generation_start = time.time()
        answer = await self._complete(
            [{"role": "user", "content": content}],
            temperature=0.3,  # Lower for factual responses
            description="answer completion",
        )
        generation_time = time.time() - generation_start

        await memory.save_context({"input": query}, {"output": answer})

        response = QueryResponse(matches=contexts, api_results=api_results, answer=answer, intent=intent)
        self._store(cache_key, message_id, response)

        logger.info(
            f"Query completed in {time.time() - start_time:.2f}s "
            f"(retrieval: {retrieval_time:.2f}s, generation: {generation_time:.2f}s, "
            f"contexts: {len(contexts)})"
        )
        return response

    def is_duplicate(self, message_id: Optional[str]) -> bool:
        """True if ``message_id`` was already answered within the message TTL."""
        return bool(message_id) and self.message_cache.has(message_id)

    def _store(self, cache_key: str, message_id: Optional[str], response: QueryResponse) -> None:
        if message_id:
            self.message_cache.set(message_id, True)
        # Snapshot so callers mutating their copy cannot alter later hits
        self.result_cache.set(cache_key, copy.deepcopy(response))

    def get_last_conversation(self, user_id: str) -> Any:
        """Return the stored last conversation for ``user_id``, if still live."""
        return self.result_cache.get(f"lastConversation:{user_id}")

    def set_last_conversation(self, user_id: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Store ``value`` as the last conversation for ``user_id``."""
        self.result_cache.set(
            f"lastConversation:{user_id}",
            value,
            ttl=self.last_conversation_ttl if ttl_seconds is None else ttl_seconds,
        )


def create_orchestrator(settings: Optional[Settings] = None) -> AnswerOrchestrator:
    """
    Factory function to create a fully configured orchestrator.

    Builds every collaborator from settings. Call once at process start
    and share the instance.
    """
    settings = settings or get_settings()

    retry_policy = RetryPolicy(
        max_attempts=settings.retry.max_attempts,
        base_delay=settings.retry.base_delay,
        timeout=settings.retry.stage_timeout,
    )
    llm_service = LLMService(config=settings.llm)

    return AnswerOrchestrator(
        embedding_service=EmbeddingService(config=settings.embedding),
        vector_store=create_vector_store(settings, retry_policy=retry_policy),
        llm_service=llm_service,
        intent_classifier=IntentClassifier(llm_service, model=settings.llm.classifier_model),
        weigher=ContextWeigher(
            lexical_weight=settings.retrieval.lexical_weight,
            language_weight=settings.retrieval.language_weight,
            min_score=settings.retrieval.similarity_threshold,
            max_context_length=settings.retrieval.max_context_length,
        ),
        conversation_manager=ConversationManager(
            default_max_turns=settings.memory.max_turns,
            default_max_tokens=settings.memory.max_tokens,
        ),
        summarizer=ConversationSummarizer(llm_service, retry_policy=retry_policy),
        enrichment_client=EnrichmentClient(
            api_url=settings.enrichment.api_url,
            timeout=settings.enrichment.timeout,
        ),
        result_cache=TTLCache(
            default_ttl=settings.cache.result_ttl,
            max_keys=settings.cache.result_max_keys,
            name="results",
        ),
        message_cache=TTLCache(
            default_ttl=settings.cache.message_ttl,
            max_keys=settings.cache.message_max_keys,
            name="messages",
        ),
        retry_policy=retry_policy,
        store_name=settings.vector_store.provider,
        top_k=settings.retrieval.top_k,
        system_prompt=settings.llm.system_prompt,
        answer_model=settings.llm.answer_model,
        answer_max_tokens=settings.llm.answer_max_tokens,
        greeting_temperature=settings.llm.greeting_temperature,
        enrichment_api_name=settings.enrichment.api_name,
        last_conversation_ttl=settings.cache.last_conversation_ttl,
    )
