"""
Transcript normalization.

Turns a raw voicemail event payload into a canonical Transcript. Accepted
shapes:
- a plain transcript string
- ``{"transcript": "..."}`` or ``{"transcript": [turns]}``
- a post-call webhook event ``{"type": ..., "data": {"transcript": [turns],
  "conversation_id": ...}}``
"""

import logging
from typing import Any, Optional

from .errors import MalformedInputError
from .models import Transcript, Utterance


logger = logging.getLogger(__name__)


TRANSCRIPTION_EVENT_TYPE = "post_call_transcription"


def _extract_turns(turns: list) -> list[Utterance]:
    utterances = []
    for turn in turns:
        if not isinstance(turn, dict):
            raise MalformedInputError(f"Transcript turn is not an object: {turn!r}")
        message = turn.get("message")
        if message is None or not str(message).strip():
            # Tool calls and silences carry no message
            continue
        utterances.append(Utterance(
            role=str(turn.get("role") or "unknown"),
            message=str(message).strip(),
        ))
    return utterances


def _from_content(content: Any, conversation_id: Optional[str]) -> Transcript:
    if isinstance(content, str):
        text = content.strip()
        if not text:
            raise MalformedInputError("Transcript text is empty")
        return Transcript(text=text, conversation_id=conversation_id)
    
    if isinstance(content, list):
        if not content:
            raise MalformedInputError("Transcript turn list is empty")
        utterances = _extract_turns(content)
        if not utterances:
            raise MalformedInputError("Transcript turns contain no messages")
        text = "\n".join(f"{u.role}: {u.message}" for u in utterances)
        return Transcript(
            utterances=tuple(utterances),
            text=text,
            conversation_id=conversation_id,
        )
    
    raise MalformedInputError("Payload contains no transcript turns or text")


def normalize_transcript(raw_event: Any) -> Transcript:
    """
    Build a Transcript from a raw event payload.
    
    Args:
        raw_event: String or dict payload, see module docstring.
    
    Returns:
        Transcript with turns joined as "role: message" lines in original
        order.
    
    Raises:
        MalformedInputError: If the payload carries no transcript content,
            the turn list is empty, or the event is of another type.
    """
    if isinstance(raw_event, str):
        return _from_content(raw_event, None)
    
    if not isinstance(raw_event, dict):
        raise MalformedInputError(
            f"Unsupported payload type: {type(raw_event).__name__}"
        )
    
    event_type = raw_event.get("type")
    if event_type is not None and event_type != TRANSCRIPTION_EVENT_TYPE:
        raise MalformedInputError(f"Unsupported event type: {event_type}")
    
    data = raw_event.get("data")
    if isinstance(data, dict) and "transcript" in data:
        conversation_id = data.get("conversation_id") or raw_event.get("conversation_id")
        content = data["transcript"]
    else:
        conversation_id = raw_event.get("conversation_id")
        content = raw_event.get("transcript")
    
    transcript = _from_content(content, str(conversation_id) if conversation_id else None)
    logger.debug(
        f"Normalized transcript: {len(transcript.utterances)} turns, "
        f"{len(transcript.text)} chars"
    )
    return transcript
