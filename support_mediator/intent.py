"""
Intent Classifier Module

Classifies a raw user message (English, Portuguese or Spanish) into four
flags with a single JSON-mode completion at temperature 0.

Only the pure-greeting branch depends on the result; the other flags are
passed to the answer prompt for model awareness.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from support_mediator.exceptions import ClassificationFailure
from support_mediator.llm_service import LLMService

logger = logging.getLogger(__name__)


INTENT_PROMPT = """Analyze the user's message intent and classify it in a JSON format with the following fields:
- isGreeting (boolean): contains any kind of greeting or salutation
- hasQuestion (boolean): contains a question or inquiry
- needsSupport (boolean): requires technical or customer support
- topic (string): main topic of the message (or "none" if there isn't one)

Examples:
"hello" -> {"isGreeting": true, "hasQuestion": false, "needsSupport": false, "topic": "none"}
"hi, how do I change my email?" -> {"isGreeting": true, "hasQuestion": true, "needsSupport": true, "topic": "email"}
"I'm having issues with payment" -> {"isGreeting": false, "hasQuestion": false, "needsSupport": true, "topic": "payment"}
"buenas tardes, necesito ayuda con mi cuenta" -> {"isGreeting": true, "hasQuestion": false, "needsSupport": true, "topic": "account"}
"olá, tudo bem?" -> {"isGreeting": true, "hasQuestion": true, "needsSupport": false, "topic": "none"}

Notes:
- The user may write in English, Portuguese or Spanish
- A greeting alone should not be considered as needing support
- The topic should be specific and relevant to support context
- Casual questions like "how are you?" should not be marked as needsSupport
- Respond with the JSON object only"""


@dataclass(frozen=True)
class Intent:
    """
    Classified intent of a user message.

    Attributes:
        is_greeting: Message contains a greeting or salutation
        has_question: Message contains a question or inquiry
        needs_support: Message requires technical or customer support
        topic: Main topic, or "none"
    """
    is_greeting: bool
    has_question: bool
    needs_support: bool
    topic: str = "none"

    @property
    def is_pure_greeting(self) -> bool:
        """A greeting with no question and no support need."""
        return self.is_greeting and not self.has_question and not self.needs_support

    @classmethod
    def from_payload(cls, payload: Any) -> "Intent":
        """
        Validate a parsed classifier payload.

        Raises:
            ClassificationFailure: payload is not the four-field structure
        """
        if not isinstance(payload, dict):
            raise ClassificationFailure(f"Intent payload is not an object: {payload!r}")

        flags = {}
        for key in ("isGreeting", "hasQuestion", "needsSupport"):
            value = payload.get(key)
            if not isinstance(value, bool):
                raise ClassificationFailure(f"Intent field '{key}' must be a boolean, got {value!r}")
            flags[key] = value

        topic = payload.get("topic")
        if not isinstance(topic, str):
            raise ClassificationFailure(f"Intent field 'topic' must be a string, got {topic!r}")

        return cls(
            is_greeting=flags["isGreeting"],
            has_question=flags["hasQuestion"],
            needs_support=flags["needsSupport"],
            topic=topic.strip() or "none",
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the classifier's field names."""
        return {
            "isGreeting": self.is_greeting,
            "hasQuestion": self.has_question,
            "needsSupport": self.needs_support,
            "topic": self.topic,
        }


class IntentClassifier:
    """
    Structured-output intent classifier.

    Example:
        classifier = IntentClassifier(llm_service)
        intent = await classifier.classify("olá, tudo bem?")
        intent.is_pure_greeting
    """

    def __init__(self, llm_service: LLMService, model: Optional[str] = None):
        """
        Args:
            llm_service: Completion service (must support JSON mode)
            model: Optional model override (e.g. a cheaper model)
        """
        self.llm_service = llm_service
        self.model = model

    async def classify(self, query: str) -> Intent:
        """
        Classify ``query``.

        Raises:
            ClassificationFailure: the call failed or returned malformed output
        """
        try:
            response = await self.llm_service.complete(
                messages=[{"role": "user", "content": query}],
                system_prompt=INTENT_PROMPT,
                temperature=0,
                json_mode=True,
                model=self.model,
            )
        except Exception as e:
            raise ClassificationFailure(f"Intent classification call failed: {e}") from e

        try:
            payload = json.loads(response.content)
        except (TypeError, ValueError) as e:
            raise ClassificationFailure(
                f"Intent classifier returned non-JSON output: {response.content!r}"
            ) from e

        intent = Intent.from_payload(payload)
        logger.debug(f"Classified intent: {intent.to_dict()}")
        return intent
