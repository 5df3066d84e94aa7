"""
Error taxonomy for the query pipeline.

Only ``EnrichmentFailure`` is tolerated by the orchestrator; every other
error ends the current turn. ``NonRetryableError`` subclasses are never
retried by the default retry predicate.
"""

from typing import Optional


class MediatorError(Exception):
    """Base class for all pipeline errors."""


class NonRetryableError(MediatorError):
    """Marker base for errors that retrying cannot fix."""


class TransientBackendFailure(MediatorError):
    """A vector backend call failed (network, timeout, server error)."""

    def __init__(self, message: str, backend: Optional[str] = None):
        super().__init__(message)
        self.backend = backend


class UnsupportedBackend(NonRetryableError, ValueError):
    """The requested vector store name is not registered."""

    def __init__(self, backend: str):
        super().__init__(f'Vector store "{backend}" is not implemented.')
        self.backend = backend


class EmbeddingFailure(MediatorError):
    """The query could not be embedded after all retries."""


class ClassificationFailure(NonRetryableError):
    """The intent classifier returned malformed output or failed."""


class GenerationFailure(MediatorError):
    """A completion could not be generated after all retries."""


class EnrichmentFailure(MediatorError):
    """An external enrichment call failed. Non-fatal for the turn."""
