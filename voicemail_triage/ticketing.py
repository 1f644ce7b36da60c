"""
Service desk client for the voicemail triage pipeline.

Talks to a Jira Service Management style REST API:
- request type catalog and per-type field schemas
- request creation and issue updates
"""

import logging
from typing import Any, Optional

import httpx

from .config import TicketingConfig
from .errors import TicketingServiceError, UpstreamError
from .models import FieldSpec, FieldType, RequestType


logger = logging.getLogger(__name__)


class TicketingClient:
    """
    Async client for the service desk API.
    
    Catalog reads raise UpstreamError; create and update calls raise
    TicketingServiceError. Must be used as an async context manager.
    """
    
    PAGE_SIZE = 50
    
    def __init__(
        self,
        config: TicketingConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the service desk client.
        
        Args:
            config: Ticketing configuration with base URL and credentials.
            transport: Optional httpx transport (used by tests).
        """
        self._config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
    
    async def __aenter__(self) -> "TicketingClient":
        """Async context manager entry."""
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url.rstrip("/"),
            auth=httpx.BasicAuth(self._config.email, self._config.api_token),
            headers={"Accept": "application/json"},
            timeout=self._config.request_timeout,
            transport=self._transport,
        )
        return self
    
    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
            self._client = None
    
    def _require_client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("Client must be used within an async context manager")
        return self._client
    
    async def _get_json(self, path: str, params: Optional[dict] = None) -> Any:
        client = self._require_client()
        try:
            response = await client.get(path, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error fetching {path}: {e}")
            raise UpstreamError(f"HTTP error: {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error(f"Request error fetching {path}: {e}")
            raise UpstreamError(f"Request failed: {str(e)}") from e
        except ValueError as e:
            logger.error(f"Invalid JSON from {path}: {e}")
            raise UpstreamError(f"Invalid JSON from service desk: {str(e)}") from e
    
    async def list_request_types(self, service_desk_id: str) -> list[RequestType]:
        """
        Fetch every request type configured for a service desk.
        
        Follows ``isLastPage`` pagination.
        
        Args:
            service_desk_id: Service desk identifier.
        
        Returns:
            Request types in service desk order (field specs not loaded).
        
        Raises:
            UpstreamError: If the catalog cannot be fetched.
        """
        path = f"/rest/servicedeskapi/servicedesk/{service_desk_id}/requesttype"
        request_types: list[RequestType] = []
        start = 0
        
        logger.info(f"Fetching request types for service desk {service_desk_id}")
        
        while True:
            data = await self._get_json(path, params={"start": start, "limit": self.PAGE_SIZE})
            values = data.get("values", []) if isinstance(data, dict) else []
            
            for item in values:
                if not isinstance(item, dict) or "id" not in item:
                    logger.warning(f"Skipping malformed request type entry: {item!r}")
                    continue
                request_types.append(RequestType(
                    id=item["id"],
                    name=str(item.get("name", "Unknown")),
                    category=str(item.get("category") or item.get("description") or ""),
                ))
            
            if not isinstance(data, dict) or data.get("isLastPage", True) or not values:
                break
            start += len(values)
        
        logger.info(f"Fetched {len(request_types)} request types")
        return request_types
    
    async def list_fields(self, service_desk_id: str, request_type_id: str) -> list[FieldSpec]:
        """
        Fetch the field schema of one request type.
        
        Args:
            service_desk_id: Service desk identifier.
            request_type_id: Request type identifier.
        
        Returns:
            Field specs in declaration order.
        
        Raises:
            UpstreamError: If the field schema cannot be fetched.
        """
        path = (
            f"/rest/servicedeskapi/servicedesk/{service_desk_id}"
            f"/requesttype/{request_type_id}/field"
        )
        data = await self._get_json(path)
        raw_fields = data.get("requestTypeFields", []) if isinstance(data, dict) else []
        
        fields = []
        for item in raw_fields:
            if not isinstance(item, dict) or not item.get("fieldId"):
                continue
            field_id = str(item["fieldId"])
            fields.append(FieldSpec(
                field_id=field_id,
                display_name=str(item.get("name", "")),
                required=bool(item.get("required", False)),
                type=FieldType.from_jira_schema(item.get("jiraSchema"), field_id),
                options=[
                    str(v.get("label") or v.get("value"))
                    for v in item.get("validValues", [])
                    if isinstance(v, dict) and (v.get("label") or v.get("value"))
                ],
            ))
        
        logger.debug(f"Request type {request_type_id} declares {len(fields)} fields")
        return fields
    
    async def create_request(
        self,
        service_desk_id: str,
        request_type_id: str,
        field_values: dict[str, Any],
    ) -> str:
        """
        Create a customer request.
        
        Returns:
            The issue key of the created request.
        
        Raises:
            TicketingServiceError: On any non-success response or a
                response without an issue key.
        """
        client = self._require_client()
        payload = {
            "serviceDeskId": service_desk_id,
            "requestTypeId": request_type_id,
            "requestFieldValues": field_values,
        }
        
        try:
            response = await client.post("/rest/servicedeskapi/request", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Service desk rejected request creation: {e.response.text}")
            raise TicketingServiceError(
                f"Create failed with HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise TicketingServiceError(f"Create request failed: {str(e)}") from e
        except ValueError as e:
            raise TicketingServiceError(f"Invalid JSON in create response: {str(e)}") from e
        
        issue_key = data.get("issueKey") if isinstance(data, dict) else None
        if not issue_key:
            raise TicketingServiceError("Create response did not include an issue key")
        
        logger.info(f"Created service request {issue_key}")
        return str(issue_key)
    
    async def update_request(self, issue_key: str, summary: str, description: str) -> None:
        """
        Update summary and description of an existing issue.
        
        Raises:
            TicketingServiceError: On any non-success response.
        """
        client = self._require_client()
        payload = {"fields": {"summary": summary, "description": description}}
        
        try:
            response = await client.put(f"/rest/api/2/issue/{issue_key}", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Service desk rejected update of {issue_key}: {e.response.text}")
            raise TicketingServiceError(
                f"Update of {issue_key} failed with HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise TicketingServiceError(f"Update request failed: {str(e)}") from e
        
        logger.info(f"Updated issue {issue_key}")
