"""
LLM-based request type classifier for the voicemail triage pipeline.

Picks one request type from a tenant's catalog for a voicemail summary.

Implements graceful degradation when:
- the LLM returns an id that is not in the catalog
- the LLM returns text that is not valid JSON
- the completion service fails
In each case the first catalog entry is selected, so the result is always a
member of the catalog.
"""

import logging
from typing import Optional

from .errors import EmptyCatalogError, UpstreamError
from .llm_client import CompletionClient
from .models import RequestType, RequestTypeCatalog
from .parsing import ParseResult, parse_json_object


logger = logging.getLogger(__name__)


CLASSIFICATION_TEMPERATURE = 0.1


def build_classification_prompt(summary: str, catalog: RequestTypeCatalog) -> str:
    """
    Build the routing prompt.
    
    Args:
        summary: Voicemail summary to classify.
        catalog: Candidate request types.
    
    Returns:
        Prompt listing every candidate and the required JSON answer shape.
    """
    return f"""You are an AI service desk router. Given a voicemail summary, pick the most appropriate service request type.

Available request types:
{catalog.to_classification_context()}

Respond ONLY with valid JSON, using the exact name and id from the list above:
{{"name": "<name>", "id": "<id>"}}

Summary: "{summary}\""""


class RequestTypeClassifier:
    """
    Select one request type from a catalog using the completion service.
    
    No retry is attempted: a single malformed response is absorbed by the
    first-entry fallback.
    """
    
    def __init__(self, completion: CompletionClient):
        self._completion = completion
    
    def _resolve(
        self,
        parsed: ParseResult[dict],
        catalog: RequestTypeCatalog,
    ) -> RequestType:
        """
        Map a parsed model answer onto a catalog entry.
        
        Matching is by exact identifier; the name is used only when the
        answer carries no id.
        """
        if not parsed.ok:
            logger.warning(f"Unparseable classification, using first request type: {parsed.error}")
            return catalog.first()
        
        choice = parsed.value
        chosen: Optional[RequestType] = None
        
        if choice.get("id") is not None:
            chosen = catalog.find(choice["id"])
        elif isinstance(choice.get("name"), str):
            chosen = catalog.find_by_name(choice["name"])
        
        if chosen is None:
            logger.warning(
                f"Classification {choice!r} not found in catalog, "
                f"using first request type"
            )
            return catalog.first()
        
        return chosen
    
    async def classify(self, summary: str, catalog: RequestTypeCatalog) -> RequestType:
        """
        Pick the best request type for a summary.
        
        Args:
            summary: Voicemail summary.
            catalog: Tenant request type catalog.
        
        Returns:
            A member of the catalog.
        
        Raises:
            EmptyCatalogError: If the catalog has no entries. Checked before
                any completion call.
        """
        if catalog.is_empty():
            raise EmptyCatalogError("Tenant has no request types configured")
        
        prompt = build_classification_prompt(summary, catalog)
        
        try:
            response = await self._completion.complete(
                prompt,
                temperature=CLASSIFICATION_TEMPERATURE,
            )
        except UpstreamError as e:
            logger.warning(f"Classification call failed, using first request type: {e}")
            return catalog.first()
        
        chosen = self._resolve(parse_json_object(response), catalog)
        logger.info(f"Selected request type: {chosen.name} (id: {chosen.id})")
        return chosen
