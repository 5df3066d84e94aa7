"""Summarizes a user's prior conversation for the answer prompt."""

import logging
from typing import Optional

from support_mediator.llm_service import LLMService
from support_mediator.memory import HistoryView
from support_mediator.retry import RetryPolicy

logger = logging.getLogger(__name__)

EMPTY_HISTORY_SUMMARY = "No previous conversation."

SUMMARY_PROMPT = """Summarize the conversation below between a user and a support assistant.
Keep the facts the assistant needs to continue helping: the user's problem, details they shared,
and what was already suggested. Use at most 5 short sentences, in the language of the conversation."""


class ConversationSummarizer:
    """Read-only summary of a HistoryView. Never touches stored memory."""

    def __init__(
        self,
        llm_service: LLMService,
        retry_policy: Optional[RetryPolicy] = None,
        max_tokens: int = 200,
    ):
        self.llm_service = llm_service
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_tokens = max_tokens

    async def summarize(self, history: HistoryView) -> str:
        """Return a short summary, or a fixed marker for empty history."""
        if history.is_empty():
            return EMPTY_HISTORY_SUMMARY

        response = await self.retry_policy.run(
            lambda: self.llm_service.complete(
                messages=[{"role": "user", "content": history.as_text()}],
                system_prompt=SUMMARY_PROMPT,
                temperature=0.2,
                max_tokens=self.max_tokens,
            ),
            description="conversation summary",
        )

        summary = response.content.strip()
        logger.debug(f"Summarized {len(history)} messages into {len(summary)} chars")
        return summary or EMPTY_HISTORY_SUMMARY
