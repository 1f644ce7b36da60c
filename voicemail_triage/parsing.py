"""
Defensive parsing of model output.

Model responses are not guaranteed to be valid JSON. Parsing returns a
tagged ParseResult instead of raising, so every stage decides its own
fallback value.
"""

import json
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from .errors import ParseError


T = TypeVar("T")


@dataclass(frozen=True)
class ParseResult(Generic[T]):
    """Either a parsed value or the ParseError explaining why there is none."""
    
    value: Optional[T] = None
    error: Optional[ParseError] = None
    
    @property
    def ok(self) -> bool:
        return self.error is None
    
    @classmethod
    def success(cls, value: T) -> "ParseResult[T]":
        return cls(value=value)
    
    @classmethod
    def failure(cls, message: str) -> "ParseResult[T]":
        return cls(error=ParseError(message))


def parse_json_object(text: Optional[str]) -> ParseResult[dict[str, Any]]:
    """
    Parse model output as one strict JSON object.
    
    Args:
        text: Raw completion text.
    
    Returns:
        ParseResult holding the decoded dict, or a ParseError when the text
        is empty, is not valid JSON, or decodes to something other than an
        object.
    """
    if text is None or not text.strip():
        return ParseResult.failure("Empty model response")
    
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        return ParseResult.failure(f"Invalid JSON: {e.msg} at position {e.pos}")
    
    if not isinstance(data, dict):
        return ParseResult.failure(f"Expected a JSON object, got {type(data).__name__}")
    
    return ParseResult.success(data)
