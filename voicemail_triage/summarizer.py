"""One-sentence transcript summaries for ticket creation."""

import logging

from .errors import UpstreamError
from .llm_client import CompletionClient
from .models import Transcript


logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "Summarize customer voicemails for ticket creation. "
    "Focus on the main issue and urgency."
)

SUMMARY_MAX_TOKENS = 80

# Length of raw transcript used when the summary cannot be generated
FALLBACK_CHARS = 1000


class Summarizer:
    """Summarize a transcript in one sentence, degrading to raw text."""
    
    def __init__(self, completion: CompletionClient):
        self._completion = completion
    
    async def summarize(self, transcript: Transcript) -> str:
        try:
            summary = await self._completion.complete(
                f"Summarize this voicemail in one sentence:\n{transcript.text}",
                system_prompt=SYSTEM_PROMPT,
                max_tokens=SUMMARY_MAX_TOKENS,
            )
        except UpstreamError as e:
            logger.warning(f"Summarization failed, using raw transcript: {e}")
            return transcript.text[:FALLBACK_CHARS]
        
        summary = summary.strip()
        if not summary:
            logger.warning("Summarization returned empty text, using raw transcript")
            return transcript.text[:FALLBACK_CHARS]
        
        logger.info(f"Summary: {summary}")
        return summary
