"""
Priority classification.

Keywords decide first; the completion service is consulted only when the
text carries neither urgency nor low-priority signals. Matching is by
case-insensitive substring, so "urgently" counts as "urgent".
"""

import logging
from typing import Optional

from .errors import UpstreamError
from .llm_client import CompletionClient
from .models import Priority, Transcript


logger = logging.getLogger(__name__)


URGENCY_KEYWORDS = (
    "urgent", "asap", "critical", "emergency", "immediately",
    "broken", "down", "not working", "failed", "error",
)

LOW_PRIORITY_KEYWORDS = (
    "question", "inquiry", "information", "when", "how",
    "general", "feedback", "suggestion",
)

SYSTEM_PROMPT = (
    "Determine the priority level for a customer service request. "
    "Respond with only one word: Low, Medium, or High."
)

DEFAULT_PRIORITY = Priority.MEDIUM


def keyword_priority(text: str) -> Optional[Priority]:
    """
    Classify by keywords alone.
    
    Returns:
        High or Low on a keyword hit, None when the text is ambiguous.
    """
    lowered = text.lower()
    if any(keyword in lowered for keyword in URGENCY_KEYWORDS):
        return Priority.HIGH
    if any(keyword in lowered for keyword in LOW_PRIORITY_KEYWORDS):
        return Priority.LOW
    return None


class PriorityClassifier:
    """Two-tier urgency classifier."""
    
    def __init__(self, completion: CompletionClient):
        self._completion = completion
    
    async def classify(self, transcript: Transcript, summary: str) -> Priority:
        by_keyword = keyword_priority(f"{transcript.text} {summary}")
        if by_keyword is not None:
            logger.info(f"Priority {by_keyword.value} from keywords")
            return by_keyword
        
        try:
            response = await self._completion.complete(
                f"Voicemail: {transcript.text}\nSummary: {summary}",
                system_prompt=SYSTEM_PROMPT,
                max_tokens=10,
                temperature=0.1,
            )
        except UpstreamError as e:
            logger.warning(f"Priority call failed, defaulting to {DEFAULT_PRIORITY.value}: {e}")
            return DEFAULT_PRIORITY
        
        answer = response.strip()
        if answer in {p.value for p in Priority}:
            logger.info(f"Priority {answer} from model")
            return Priority(answer)
        
        logger.warning(f"Unexpected priority answer {answer!r}, defaulting to {DEFAULT_PRIORITY.value}")
        return DEFAULT_PRIORITY
