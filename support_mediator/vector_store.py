"""
Vector Store Module

Uniform query interface over one or more named vector backends:
- mongodb: MongoDB Atlas Vector Search (primary knowledge base). Several
  sub-collections are searched concurrently and merged into one global
  top-K.
- pinecone: Pinecone index (retry-eligible).
- faiss: Local on-disk FAISS index for development.

Each backend returns hits in its own shape; the adapter normalises them
to VectorMatch so the rest of the pipeline never sees backend details.

Scores are "higher is better" within a backend. Comparing scores across
backends is best-effort only: Atlas, Pinecone and FAISS use different
scales.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import numpy as np
from pymongo.errors import PyMongoError

from config.settings import get_settings, Settings
from support_mediator.exceptions import TransientBackendFailure, UnsupportedBackend
from support_mediator.retry import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class VectorMatch:
    """
    A normalised retrieval hit.

    Attributes:
        text: Retrieved text content
        language: Language code of the content, if known
        source: Document the content came from, if known
        score: Backend similarity score (higher is better)
        metadata: Any remaining backend metadata
    """
    text: str
    language: Optional[str]
    source: Optional[str]
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "text": self.text,
            "language": self.language,
            "source": self.source,
            "score": self.score,
        }


def _field(hit: Any, name: str, default: Any = None) -> Any:
    """Read ``name`` from a dict-like or attribute-style hit."""
    if isinstance(hit, dict):
        return hit.get(name, default)
    return getattr(hit, name, default)


def normalize_hit(hit: Any) -> VectorMatch:
    """
    Convert a backend hit into a VectorMatch.

    Accepts dicts or SDK objects, with text/language/source either at the
    top level or inside ``metadata``.
    """
    metadata = dict(_field(hit, "metadata") or {})

    text = _field(hit, "text") or metadata.pop("text", None) or ""
    language = _field(hit, "language") or metadata.pop("language", None)
    source = _field(hit, "source") or metadata.pop("source", None)
    metadata.pop("text", None)
    metadata.pop("language", None)
    metadata.pop("source", None)

    score = _field(hit, "score")
    return VectorMatch(
        text=text,
        language=language,
        source=source,
        score=float(score) if score is not None else 0.0,
        metadata=metadata,
    )


def top_k_by_score(matches: Iterable[VectorMatch], top_k: int) -> List[VectorMatch]:
    """Sort all matches by descending score, then keep the first ``top_k``."""
    return sorted(matches, key=lambda m: m.score, reverse=True)[:top_k]


class BaseVectorBackend(ABC):
    """
    Abstract base class for vector backends.

    Implementations return at most ``top_k`` normalised matches sorted by
    descending score, and raise TransientBackendFailure for network or
    server errors.
    """

    @abstractmethod
    async def search(self, query_vector: List[float], top_k: int) -> List[VectorMatch]:
        """
        Search for the nearest neighbours of ``query_vector``.

        Args:
            query_vector: Query embedding
            top_k: Maximum number of hits

        Returns:
            List of VectorMatch, sorted by score descending
        """
        pass


class MongoDBBackend(BaseVectorBackend):
    """
    MongoDB Atlas Vector Search backend.

    Requires a vector search index on the ``embedding`` field of every
    configured collection. All collections are queried concurrently; the
    merged hits are sorted globally and truncated to ``top_k``.
    """

    def __init__(
        self,
        uri: Optional[str],
        database: str,
        collections: List[Tuple[str, str]],
        client: Any = None,
    ):
        """
        Args:
            uri: MongoDB connection URI
            database: Database name
            collections: (collection name, vector index name) pairs
            client: Optional pre-built AsyncMongoClient
        """
        if not collections:
            raise ValueError("At least one MongoDB collection must be configured")

        self.uri = uri
        self.database_name = database
        self.collections = list(collections)
        self._client = client

        logger.info(
            f"MongoDBBackend initialized: db={database}, "
            f"collections={[name for name, _ in self.collections]}"
        )

    def _get_client(self):
        """Get or create the async MongoDB client."""
        if self._client is None:
            if not self.uri:
                raise ValueError(
                    "MongoDB URI not configured. Set MONGODB_URI environment variable."
                )
            from pymongo import AsyncMongoClient

            self._client = AsyncMongoClient(self.uri)
            logger.info("Connected to MongoDB Atlas")
        return self._client

    @staticmethod
    def build_pipeline(index_name: str, query_vector: List[float], top_k: int) -> List[Dict[str, Any]]:
        """Build the Atlas $vectorSearch aggregation pipeline."""
        return [
            {
                "$vectorSearch": {
                    "index": index_name,
                    "path": "embedding",
                    "queryVector": query_vector,
                    "numCandidates": top_k * 10,  # Over-fetch for recall
                    "limit": top_k,
                }
            },
            {
                "$project": {
                    "_id": 0,
                    "text": 1,
                    "language": 1,
                    "source": 1,
                    "metadata": 1,
                    "score": {"$meta": "vectorSearchScore"},
                }
            },
        ]

    async def _search_collection(
        self,
        collection_name: str,
        index_name: str,
        query_vector: List[float],
        top_k: int,
    ) -> List[VectorMatch]:
        collection = self._get_client()[self.database_name][collection_name]
        pipeline = self.build_pipeline(index_name, query_vector, top_k)

        try:
            cursor = await collection.aggregate(pipeline)
            docs = await cursor.to_list(length=None)
        except PyMongoError as e:
            raise TransientBackendFailure(
                f"MongoDB search on '{collection_name}' failed: {e}", backend="mongodb"
            ) from e

        logger.debug(f"MongoDB '{collection_name}' returned {len(docs)} hits")
        return [normalize_hit(doc) for doc in docs]

    async def search(self, query_vector: List[float], top_k: int) -> List[VectorMatch]:
        """Search every collection concurrently and return the global top-K."""
        results = await asyncio.gather(*(
            self._search_collection(name, index, query_vector, top_k)
            for name, index in self.collections
        ))

        merged = [match for hits in results for match in hits]
        return top_k_by_score(merged, top_k)


class PineconeBackend(BaseVectorBackend):
    """Pinecone index backend. The SDK is synchronous, so calls run in a thread."""

    def __init__(
        self,
        api_key: Optional[str],
        index_name: Optional[str],
        index: Any = None,
    ):
        """
        Args:
            api_key: Pinecone API key
            index_name: Name of the Pinecone index
            index: Optional pre-built Index handle
        """
        self.api_key = api_key
        self.index_name = index_name
        self._index = index

        logger.info(f"PineconeBackend initialized: index={index_name}")

    def _get_index(self):
        """Get or create the Pinecone index handle."""
        if self._index is None:
            if not self.api_key or not self.index_name:
                raise ValueError(
                    "Pinecone not configured. Set PINECONE_API_KEY and PINECONE_INDEX_NAME."
                )
            from pinecone import Pinecone

            self._index = Pinecone(api_key=self.api_key).Index(self.index_name)
            logger.info("Pinecone index handle created")
        return self._index

    async def search(self, query_vector: List[float], top_k: int) -> List[VectorMatch]:
        """Query the Pinecone index with metadata included."""
        index = self._get_index()

        try:
            response = await asyncio.to_thread(
                index.query,
                vector=query_vector,
                top_k=top_k,
                include_metadata=True,
            )
        except Exception as e:
            raise TransientBackendFailure(
                f"Pinecone query failed: {e}", backend="pinecone"
            ) from e

        hits = _field(response, "matches") or []
        return top_k_by_score((normalize_hit(hit) for hit in hits), top_k)


class FAISSBackend(BaseVectorBackend):
    """
    Local FAISS index for development.

    Reads an IndexFlatIP written next to a JSON metadata file
    (``<index>.json`` with a ``chunks`` mapping from vector position to
    chunk dict). Query vectors are L2-normalised so inner product equals
    cosine similarity.
    """

    def __init__(self, index_path: str):
        """
        Args:
            index_path: Path to the FAISS index file
        """
        self.index_path = Path(index_path)
        self._index = None
        self._chunks: Dict[int, Dict[str, Any]] = {}

        logger.info(f"FAISSBackend initialized: index_path={index_path}")

    def _load(self):
        """Load index and metadata from disk (once)."""
        if self._index is not None:
            return

        import faiss

        if not self.index_path.exists():
            raise ValueError(f"FAISS index not found: {self.index_path}")

        self._index = faiss.read_index(str(self.index_path))

        metadata_path = self.index_path.with_suffix(".json")
        if metadata_path.exists():
            with open(metadata_path, "r", encoding="utf-8") as f:
                metadata = json.load(f)
            self._chunks = {int(k): v for k, v in metadata.get("chunks", {}).items()}

        logger.info(f"Loaded FAISS index with {self._index.ntotal} vectors")

    @staticmethod
    def _normalize(vectors: np.ndarray) -> np.ndarray:
        """Normalize vectors for cosine similarity."""
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        norms[norms == 0] = 1
        return vectors / norms

    def _search_sync(self, query_vector: List[float], top_k: int) -> List[VectorMatch]:
        self._load()
        if self._index.ntotal == 0:
            logger.warning("Search on empty FAISS index")
            return []

        query = self._normalize(np.array([query_vector], dtype=np.float32))
        scores, indices = self._index.search(query, min(top_k, self._index.ntotal))

        matches = []
        for score, idx in zip(scores[0], indices[0]):
            chunk = self._chunks.get(int(idx))
            if idx < 0 or chunk is None:  # FAISS returns -1 for not found
                continue
            matches.append(normalize_hit({**chunk, "score": float(score)}))
        return matches

    async def search(self, query_vector: List[float], top_k: int) -> List[VectorMatch]:
        """Search the local index in a worker thread."""
        matches = await asyncio.to_thread(self._search_sync, query_vector, top_k)
        return top_k_by_score(matches, top_k)


class VectorStoreAdapter:
    """
    Routes queries to named backends and applies per-backend retry.

    Example:
        store = VectorStoreAdapter(retry_policy=RetryPolicy())
        store.register_backend("mongodb", MongoDBBackend(...))
        store.register_backend("pinecone", PineconeBackend(...), retry=True)

        result = await store.query("mongodb", vector, top_k=5)
        result["matches"]  # List[VectorMatch]
    """

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        default_top_k: int = 5,
    ):
        """
        Args:
            retry_policy: Policy used for retry-eligible backends
            default_top_k: top_k used when a query does not give one
        """
        self.retry_policy = retry_policy or RetryPolicy()
        self.default_top_k = default_top_k
        self._backends: Dict[str, BaseVectorBackend] = {}
        self._retry_backends: Set[str] = set()

    def register_backend(self, name: str, backend: BaseVectorBackend, retry: bool = False) -> None:
        """
        Register (or replace) a backend under ``name``.

        Args:
            name: Store name used in query()
            backend: Backend implementation
            retry: Whether transient failures are retried
        """
        self._backends[name] = backend
        if retry:
            self._retry_backends.add(name)
        else:
            self._retry_backends.discard(name)
        logger.info(f"Registered vector backend '{name}' (retry={retry})")

    @property
    def supported_backends(self) -> List[str]:
        """Names of registered backends."""
        return sorted(self._backends)

    async def query(
        self,
        store_name: str,
        query_vector: List[float],
        top_k: Optional[int] = None,
    ) -> Dict[str, List[VectorMatch]]:
        """
        Search ``store_name`` for the nearest matches.

        Args:
            store_name: Registered backend name
            query_vector: Query embedding
            top_k: Maximum number of matches (default from config)

        Returns:
            {"matches": [VectorMatch, ...]} sorted by score descending

        Raises:
            UnsupportedBackend: ``store_name`` is not registered
            TransientBackendFailure: backend failed (after retries, if eligible)
        """
        backend = self._backends.get(store_name)
        if backend is None:
            raise UnsupportedBackend(store_name)

        if top_k is None:
            top_k = self.default_top_k
        if top_k < 1:
            raise ValueError("top_k must be at least 1")

        if store_name in self._retry_backends:
            matches = await self.retry_policy.run(
                lambda: backend.search(query_vector, top_k),
                description=f"{store_name} vector search",
            )
        elif self.retry_policy.timeout is not None:
            try:
                matches = await asyncio.wait_for(
                    backend.search(query_vector, top_k),
                    timeout=self.retry_policy.timeout,
                )
            except asyncio.TimeoutError as e:
                raise TransientBackendFailure(
                    f"{store_name} vector search timed out", backend=store_name
                ) from e
        else:
            matches = await backend.search(query_vector, top_k)

        logger.debug(f"Vector store '{store_name}' returned {len(matches)} matches")
        return {"matches": matches[:top_k]}


def create_vector_store(
    settings: Optional[Settings] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> VectorStoreAdapter:
    """
    Build an adapter with every backend the configuration can support.

    Connections are opened lazily, so unconfigured backends only fail
    when they are actually queried.
    """
    settings = settings or get_settings()
    config = settings.vector_store

    store = VectorStoreAdapter(
        retry_policy=retry_policy,
        default_top_k=settings.retrieval.top_k,
    )
    store.register_backend(
        "mongodb",
        MongoDBBackend(
            uri=config.mongodb_uri,
            database=config.mongodb_database,
            collections=config.mongodb_collections,
        ),
    )
    store.register_backend(
        "pinecone",
        PineconeBackend(
            api_key=config.pinecone_api_key,
            index_name=config.pinecone_index_name,
        ),
        retry=True,
    )
    store.register_backend("faiss", FAISSBackend(index_path=config.faiss_index_path))
    return store
