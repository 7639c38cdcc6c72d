"""
Unit tests for the origin fetch client.
"""

import httpx
import pytest

from shared.errors import OriginError
from service_edge.app.adapters.origin_client import DEFAULT_CONTENT_TYPE, OriginClient


def make_client(handler) -> OriginClient:
    transport = httpx.MockTransport(handler)
    return OriginClient(timeout=1.0, client=httpx.AsyncClient(transport=transport, follow_redirects=True))


class TestOriginClient:
    """Test cases for OriginClient."""

    @pytest.mark.asyncio
    async def test_successful_fetch(self):
        """Body, content type and length come from the origin response."""
        def handler(request):
            assert str(request.url) == "https://origin.example/app.js?v=1"
            return httpx.Response(200, content=b"abc", headers={"Content-Type": "application/javascript"})

        client = make_client(handler)
        response = await client.fetch("https://origin.example/app.js?v=1")

        assert response.content == b"abc"
        assert response.content_type == "application/javascript"
        assert response.content_length == 3
        assert response.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_missing_content_type_defaults(self):
        client = make_client(lambda request: httpx.Response(200, content=b"\x00\x01"))

        response = await client.fetch("https://origin.example/blob")

        assert response.content_type == DEFAULT_CONTENT_TYPE

    @pytest.mark.asyncio
    async def test_redirects_followed(self):
        def handler(request):
            if request.url.path == "/old":
                return httpx.Response(301, headers={"Location": "https://origin.example/new"})
            return httpx.Response(200, content=b"moved", headers={"Content-Type": "text/plain"})

        client = make_client(handler)
        response = await client.fetch("https://origin.example/old")

        assert response.content == b"moved"

    @pytest.mark.asyncio
    async def test_non_success_status_raises(self):
        """A 404 from origin is a fetch failure, not cacheable content."""
        client = make_client(lambda request: httpx.Response(404, content=b"not found"))

        with pytest.raises(OriginError) as exc_info:
            await client.fetch("https://origin.example/missing")

        assert exc_info.value.status_code == 502
        assert exc_info.value.details == {"status_code": 404}
        assert "Unexpected status 404" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_connection_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        with pytest.raises(OriginError) as exc_info:
            await client.fetch("https://origin.example/app.js")

        assert exc_info.value.url == "https://origin.example/app.js"

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = make_client(handler)

        with pytest.raises(OriginError) as exc_info:
            await client.fetch("https://origin.example/slow")

        assert exc_info.value.message.endswith("timed out")
        assert exc_info.value.details == {"timeout_seconds": 1.0}

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        client = OriginClient(client=http_client)

        await client.close()

        assert not http_client.is_closed
        await http_client.aclose()
