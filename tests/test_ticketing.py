"""Tests for the service desk client."""

import json

import httpx
import pytest

from voicemail_triage.config import TicketingConfig
from voicemail_triage.errors import TicketingServiceError, UpstreamError
from voicemail_triage.models import FieldType
from voicemail_triage.ticketing import TicketingClient


@pytest.fixture
def config():
    """Create test ticketing config."""
    return TicketingConfig(
        base_url="https://acme.atlassian.net/",
        email="bot@acme.test",
        api_token="token",
        service_desk_id="2",
        request_timeout=5,
    )


def make_client(config, handler) -> TicketingClient:
    return TicketingClient(config, transport=httpx.MockTransport(handler))


class TestClientLifecycle:
    """Tests for context manager handling."""
    
    @pytest.mark.asyncio
    async def test_context_manager(self, config):
        client = make_client(config, lambda request: httpx.Response(200, json={}))
        async with client:
            assert client._client is not None
        assert client._client is None
    
    @pytest.mark.asyncio
    async def test_call_without_context_raises(self, config):
        client = make_client(config, lambda request: httpx.Response(200, json={}))
        with pytest.raises(RuntimeError, match="context manager"):
            await client.list_request_types("2")
    
    @pytest.mark.asyncio
    async def test_basic_auth_header(self, config):
        seen = []
        
        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"values": [], "isLastPage": True})
        
        async with make_client(config, handler) as client:
            await client.list_request_types("2")
        
        assert seen[0].headers["Authorization"].startswith("Basic ")
        assert seen[0].url.host == "acme.atlassian.net"


class TestListRequestTypes:
    """Tests for catalog fetching."""
    
    @pytest.mark.asyncio
    async def test_follows_pagination(self, config):
        pages = {
            "0": {
                "values": [
                    {"id": "1", "name": "Billing", "description": "Payments"},
                    {"id": "2", "name": "Fraud"},
                ],
                "isLastPage": False,
            },
            "2": {
                "values": [{"id": 3, "name": "Access"}],
                "isLastPage": True,
            },
        }
        seen_paths = []
        
        def handler(request):
            seen_paths.append(request.url.path)
            return httpx.Response(200, json=pages[request.url.params["start"]])
        
        async with make_client(config, handler) as client:
            request_types = await client.list_request_types("2")
        
        assert [rt.id for rt in request_types] == ["1", "2", "3"]
        assert request_types[0].category == "Payments"
        assert request_types[1].category == ""
        assert request_types[1].field_specs == []
        assert seen_paths == ["/rest/servicedeskapi/servicedesk/2/requesttype"] * 2
    
    @pytest.mark.asyncio
    async def test_skips_malformed_entries(self, config):
        body = {"values": [{"name": "no id"}, "junk", {"id": "5", "name": "Other"}], "isLastPage": True}
        
        async with make_client(config, lambda request: httpx.Response(200, json=body)) as client:
            request_types = await client.list_request_types("2")
        
        assert [rt.name for rt in request_types] == ["Other"]
    
    @pytest.mark.asyncio
    async def test_http_error(self, config):
        async with make_client(config, lambda request: httpx.Response(503)) as client:
            with pytest.raises(UpstreamError, match="503"):
                await client.list_request_types("2")
    
    @pytest.mark.asyncio
    async def test_invalid_json(self, config):
        handler = lambda request: httpx.Response(200, content=b"<html>maintenance</html>")
        
        async with make_client(config, handler) as client:
            with pytest.raises(UpstreamError, match="Invalid JSON"):
                await client.list_request_types("2")
    
    @pytest.mark.asyncio
    async def test_connection_error(self, config):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)
        
        async with make_client(config, handler) as client:
            with pytest.raises(UpstreamError, match="Request failed"):
                await client.list_request_types("2")


class TestListFields:
    """Tests for field schema fetching."""
    
    @pytest.mark.asyncio
    async def test_maps_field_schema(self, config):
        body = {
            "requestTypeFields": [
                {
                    "fieldId": "summary",
                    "name": "Summary",
                    "required": True,
                    "jiraSchema": {"type": "string", "system": "summary"},
                },
                {
                    "fieldId": "description",
                    "name": "Description",
                    "required": False,
                    "jiraSchema": {"type": "string", "system": "description"},
                },
                {
                    "fieldId": "customfield_10010",
                    "name": "Affected products",
                    "required": False,
                    "jiraSchema": {"type": "array", "items": "option"},
                    "validValues": [
                        {"value": "1", "label": "Cards"},
                        {"value": "Online banking"},
                    ],
                },
                {"name": "no id"},
            ]
        }
        seen_paths = []
        
        def handler(request):
            seen_paths.append(request.url.path)
            return httpx.Response(200, json=body)
        
        async with make_client(config, handler) as client:
            fields = await client.list_fields("2", "7")
        
        assert seen_paths == ["/rest/servicedeskapi/servicedesk/2/requesttype/7/field"]
        assert [f.field_id for f in fields] == ["summary", "description", "customfield_10010"]
        assert fields[0].required is True
        assert fields[0].type is FieldType.TEXT
        assert fields[1].type is FieldType.TEXT_AREA
        assert fields[2].type is FieldType.MULTI_VALUE
        assert fields[2].options == ["Cards", "Online banking"]


class TestCreateRequest:
    """Tests for request creation."""
    
    @pytest.mark.asyncio
    async def test_create_success(self, config):
        seen = []
        
        def handler(request):
            seen.append(request)
            return httpx.Response(201, json={"issueKey": "SD-101", "issueId": "10001"})
        
        async with make_client(config, handler) as client:
            key = await client.create_request("2", "7", {"summary": "AI Voicemail: lost card"})
        
        assert key == "SD-101"
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/rest/servicedeskapi/request"
        assert json.loads(seen[0].content) == {
            "serviceDeskId": "2",
            "requestTypeId": "7",
            "requestFieldValues": {"summary": "AI Voicemail: lost card"},
        }
    
    @pytest.mark.asyncio
    async def test_create_rejected(self, config):
        handler = lambda request: httpx.Response(
            400, json={"errorMessage": "Field 'summary' is required"}
        )
        
        async with make_client(config, handler) as client:
            with pytest.raises(TicketingServiceError, match="HTTP 400"):
                await client.create_request("2", "7", {})
    
    @pytest.mark.asyncio
    async def test_create_without_issue_key(self, config):
        async with make_client(config, lambda request: httpx.Response(201, json={})) as client:
            with pytest.raises(TicketingServiceError, match="issue key"):
                await client.create_request("2", "7", {})
    
    @pytest.mark.asyncio
    async def test_create_connection_error(self, config):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)
        
        async with make_client(config, handler) as client:
            with pytest.raises(TicketingServiceError):
                await client.create_request("2", "7", {})


class TestUpdateRequest:
    """Tests for issue updates."""
    
    @pytest.mark.asyncio
    async def test_update_success(self, config):
        seen = []
        
        def handler(request):
            seen.append(request)
            return httpx.Response(204)
        
        async with make_client(config, handler) as client:
            await client.update_request("SD-42", "AI Voicemail: lost card", "user: lost card")
        
        assert seen[0].method == "PUT"
        assert seen[0].url.path == "/rest/api/2/issue/SD-42"
        assert json.loads(seen[0].content) == {
            "fields": {"summary": "AI Voicemail: lost card", "description": "user: lost card"}
        }
    
    @pytest.mark.asyncio
    async def test_update_not_found(self, config):
        async with make_client(config, lambda request: httpx.Response(404)) as client:
            with pytest.raises(TicketingServiceError, match="SD-42"):
                await client.update_request("SD-42", "s", "d")
