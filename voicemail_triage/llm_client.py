"""
Completion client for the voicemail triage pipeline.

Wraps the OpenAI-compatible Chat Completions API behind a single async
``complete`` call. Library errors are translated into UpstreamError;
structured-output parsing is left to the calling stage.
"""

import logging
from typing import Optional

from openai import APIConnectionError, APIError, APITimeoutError, AsyncOpenAI
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import LLMConfig
from .errors import UpstreamError


logger = logging.getLogger(__name__)


class CompletionClient:
    """
    Async client for text completions.
    
    Transport failures (connection errors, timeouts) are retried with
    exponential backoff up to ``LLMConfig.max_retries`` attempts. Status
    errors and malformed bodies are not retried.
    """
    
    def __init__(self, config: LLMConfig):
        """
        Initialize the completion client.
        
        Args:
            config: LLM configuration.
        """
        self._config = config
        
        client_kwargs = {
            "api_key": config.api_key,
            "timeout": config.request_timeout,
            # Retries are owned by tenacity below
            "max_retries": 0,
        }
        if config.api_base_url:
            client_kwargs["base_url"] = config.api_base_url
        
        self._client = AsyncOpenAI(**client_kwargs)
        
        logger.info(f"Initialized completion client with model: {config.model}")
    
    @property
    def model(self) -> str:
        return self._config.model
    
    async def complete(
        self,
        user_prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """
        Request one completion.
        
        Args:
            user_prompt: User message content.
            system_prompt: Optional system instruction.
            max_tokens: Token budget, defaults to the configured value.
            temperature: Sampling temperature, defaults to the configured value.
        
        Returns:
            The completion text, stripped.
        
        Raises:
            UpstreamError: On non-success status, exhausted transport
                retries, or a response body without message content.
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})
        
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(self._config.max_retries, 1)),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type((APIConnectionError, APITimeoutError)),
            before_sleep=lambda retry_state: logger.warning(
                f"Retrying completion after error: {retry_state.outcome.exception()}"
            ),
            reraise=True,
        )
        
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._client.chat.completions.create(
                        model=self._config.model,
                        messages=messages,
                        max_tokens=max_tokens or self._config.max_tokens,
                        temperature=(
                            self._config.temperature if temperature is None else temperature
                        ),
                    )
        except (APIConnectionError, APITimeoutError) as e:
            logger.error(f"Completion service unreachable: {e}")
            raise UpstreamError(f"Completion service unreachable: {e}") from e
        except APIError as e:
            logger.error(f"Completion service error: {e}")
            raise UpstreamError(f"Completion service error: {e}") from e
        
        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise UpstreamError(f"Malformed completion response: {e}") from e
        
        if content is None:
            raise UpstreamError("Completion response has no message content")
        
        return content.strip()
