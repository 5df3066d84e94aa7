"""
Context Relevance Module

Re-ranks raw retrieval hits against the query and renders them for the
answer prompt.

weighted_score = score + lexical_weight * overlap + language_weight * language_match

- overlap: fraction of distinct query terms found in the context
  (lowercased, accent-folded, stop words removed) in [0, 1]
- language_match: 1 if the context language equals the query language

Both terms are non-negative and added to the raw score, so at equal
retrieval score a context with more query terms never ranks lower.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"\w+", re.UNICODE)

# Small EN/PT/ES stop-word list, accent-folded
STOP_WORDS: FrozenSet[str] = frozenset("""
a an and are as at be but by can do does for from how i in is it me my of on or
so that the this to was what when where which who why will with you your
o os as um uma uns umas e de do da dos das em no na nos nas por para com que
eu meu minha se nao sim ao como esta estou tem
el la los las un una unos unas y en del al por para con que yo mi se no si es
estoy tengo como
""".split())


def fold(text: str) -> str:
    """Lowercase and strip accents (é -> e, ç -> c)."""
    decomposed = unicodedata.normalize("NFKD", text.lower())
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def tokenize(text: str) -> FrozenSet[str]:
    """Distinct content terms of ``text``."""
    return frozenset(
        token for token in _WORD_RE.findall(fold(text))
        if token not in STOP_WORDS
    )


def _fingerprint(text: str) -> str:
    return " ".join(text.split())


@dataclass
class WeightedContext:
    """
    A retrieval hit re-scored against the query.

    Attributes:
        text: Context text
        language: Context language code, if known
        source: Originating document, if known
        score: Raw backend similarity score
        relevance: Lexical overlap with the query (0-1)
        weighted_score: Combined ranking score
    """
    text: str
    language: Optional[str]
    source: Optional[str]
    score: float
    relevance: float
    weighted_score: float

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (for API response)."""
        return {
            "text": self.text,
            "language": self.language,
            "source": self.source,
            "score": self.score,
            "relevance": self.relevance,
            "weightedScore": self.weighted_score,
        }


class ContextWeigher:
    """
    Ranks and filters retrieved contexts for a query.

    Example:
        weigher = ContextWeigher(lexical_weight=0.3)
        contexts = weigher.weight("payment failed", [
            {"text": "...", "language": "en", "score": 0.82},
        ])
        prompt_block = weigher.format_contexts(contexts)
    """

    def __init__(
        self,
        lexical_weight: float = 0.3,
        language_weight: float = 0.1,
        min_score: float = 0.0,
        max_context_length: int = 4000,
    ):
        """
        Args:
            lexical_weight: Weight of query-term overlap (>= 0)
            language_weight: Bonus when context language matches the query (>= 0)
            min_score: Contexts whose weighted score is below this are dropped
            max_context_length: Max characters of rendered context
        """
        if lexical_weight < 0 or language_weight < 0:
            raise ValueError("Relevance weights must be non-negative")

        self.lexical_weight = lexical_weight
        self.language_weight = language_weight
        self.min_score = min_score
        self.max_context_length = max_context_length

    @staticmethod
    def overlap(query_terms: FrozenSet[str], text: str) -> float:
        """Fraction of ``query_terms`` present in ``text``."""
        if not query_terms:
            return 0.0
        return len(query_terms & tokenize(text)) / len(query_terms)

    def weight(
        self,
        query: str,
        matches: Iterable[Any],
        language: Optional[str] = None,
    ) -> List[WeightedContext]:
        """
        Score, rank, deduplicate and filter ``matches``.

        Args:
            query: User query
            matches: Dicts or objects with text, language, score (and optional source)
            language: Query language, enables the language-match bonus

        Returns:
            WeightedContext list, most relevant first
        """
        query_terms = tokenize(query)
        query_language = language.lower() if language else None

        scored = []
        for position, match in enumerate(matches):
            text = _get(match, "text") or ""
            if not text.strip():
                continue

            score = float(_get(match, "score") or 0.0)
            match_language = _get(match, "language")
            relevance = self.overlap(query_terms, text)
            language_match = (
                1.0 if query_language and match_language
                and match_language.lower() == query_language else 0.0
            )
            weighted = score + self.lexical_weight * relevance + self.language_weight * language_match

            context = WeightedContext(
                text=text,
                language=match_language,
                source=_get(match, "source"),
                score=score,
                relevance=relevance,
                weighted_score=weighted,
            )
            scored.append((position, context))

        # Stable: ties by raw score, then original order
        scored.sort(key=lambda item: (-item[1].weighted_score, -item[1].score, item[0]))

        contexts = []
        seen = set()
        for _, context in scored:
            fingerprint = _fingerprint(context.text)
            if fingerprint in seen:
                logger.debug(f"Skipping duplicate context from {context.source}")
                continue
            seen.add(fingerprint)
            if context.weighted_score < self.min_score:
                continue
            contexts.append(context)

        logger.debug(f"Weighted {len(contexts)} contexts (from {len(scored)} non-empty matches)")
        return contexts

    def format_contexts(self, contexts: Sequence[WeightedContext]) -> str:
        """
        Render contexts as numbered, delimited blocks for the prompt.

        Respects max_context_length; a block that does not fit is cut
        (if at least 100 characters remain) and rendering stops.
        """
        if not contexts:
            return "No relevant context found."

        parts = []
        current_length = 0
        separator = "\n\n---\n\n"

        for number, context in enumerate(contexts, 1):
            header = f"[{number}] Source: {context.source or 'unknown'}"
            if context.language:
                header += f" | Language: {context.language}"
            header += f" | Relevance: {context.relevance:.0%}"
            block = f"{header}\n{context.text.strip()}"

            if current_length + len(block) > self.max_context_length:
                remaining = self.max_context_length - current_length
                if remaining > 100:
                    parts.append(block[:remaining] + "...")
                break

            parts.append(block)
            current_length += len(block) + len(separator)

        return separator.join(parts)


def _get(match: Any, name: str) -> Any:
    if isinstance(match, dict):
        return match.get(name)
    return getattr(match, name, None)
