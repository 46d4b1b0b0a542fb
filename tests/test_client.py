"""
Tests for the Gemini remote job client against a mocked transport.

Run with:
    python -m pytest tests/test_client.py -v
"""

import gzip
import json
import os
import sys

import httpx
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import completed_response, make_config
from core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from core.exceptions import NotConfigured, RemoteProtocolError, RemoteUnavailable
from services.video_generation.client import VeoClient
from services.video_generation.models import GenerationRequest

API_BASE = "https://generativelanguage.googleapis.com/v1beta"


def make_client(handler, api_key="test-key", breaker=None) -> VeoClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return VeoClient(make_config(api_key=api_key), http_client=http_client, breaker=breaker)


class TestSubmit:

    @pytest.mark.asyncio
    async def test_submit_request_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("x-goog-api-key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"name": "models/veo/operations/job-1"})

        client = make_client(handler)
        name = await client.submit(
            GenerationRequest(prompt="a cat", duration="5 seconds", aspect_ratio="9:16")
        )

        assert name == "models/veo/operations/job-1"
        assert seen["url"] == f"{API_BASE}/models/veo-3.1-generate-preview:predictLongRunning"
        assert seen["key"] == "test-key"
        assert seen["body"] == {
            "instances": [{"prompt": "a cat"}],
            "parameters": {"aspectRatio": "9:16", "durationSeconds": 5},
        }

    @pytest.mark.asyncio
    async def test_audio_prompt_is_appended(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"name": "job-1"})

        client = make_client(handler)
        await client.submit(GenerationRequest(prompt="a cat", audio_prompt="purring"))

        assert bodies[0]["instances"][0]["prompt"] == "a cat\n\nAudio: purring"
        assert bodies[0]["parameters"]["durationSeconds"] == 10

    @pytest.mark.asyncio
    async def test_non_success_status(self):
        client = make_client(lambda request: httpx.Response(429, text="quota exceeded"))

        with pytest.raises(RemoteUnavailable) as exc_info:
            await client.submit(GenerationRequest(prompt="a cat"))

        assert exc_info.value.upstream_status == 429
        assert exc_info.value.upstream_text == "quota exceeded"
        assert exc_info.value.to_dict()["upstreamStatus"] == 429

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        with pytest.raises(RemoteUnavailable):
            await client.submit(GenerationRequest(prompt="a cat"))

    @pytest.mark.asyncio
    async def test_missing_operation_name(self):
        client = make_client(lambda request: httpx.Response(200, json={"metadata": {}}))

        with pytest.raises(RemoteProtocolError) as exc_info:
            await client.submit(GenerationRequest(prompt="a cat"))

        assert exc_info.value.raw_response == {"metadata": {}}

    @pytest.mark.asyncio
    async def test_not_configured(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"name": "job-1"})

        client = make_client(handler, api_key="")

        assert not client.is_configured
        with pytest.raises(NotConfigured):
            await client.submit(GenerationRequest(prompt="a cat"))
        assert calls == []


class TestPoll:

    @pytest.mark.asyncio
    async def test_pending_job(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, json={"name": "models/veo/operations/job-1"})

        client = make_client(handler)
        result = await client.poll("models/veo/operations/job-1")

        assert result.done is False
        assert seen == [f"{API_BASE}/models/veo/operations/job-1"]

    @pytest.mark.asyncio
    async def test_finished_job(self):
        client = make_client(lambda request: httpx.Response(200, json=completed_response()))
        result = await client.poll("job-1")

        assert result.done is True
        assert result.raw_response == completed_response()

    @pytest.mark.asyncio
    async def test_server_error(self):
        client = make_client(lambda request: httpx.Response(500, text="backend error"))

        with pytest.raises(RemoteUnavailable):
            await client.poll("job-1")

    @pytest.mark.asyncio
    async def test_open_breaker_surfaces_as_unavailable(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, text="unavailable")

        breaker = CircuitBreaker(
            "gemini-test", CircuitBreakerConfig(failure_threshold=2, recovery_timeout=60.0)
        )
        client = make_client(handler, breaker=breaker)

        for _ in range(2):
            with pytest.raises(RemoteUnavailable):
                await client.poll("job-1")
        assert breaker.state == CircuitState.OPEN

        with pytest.raises(RemoteUnavailable) as exc_info:
            await client.poll("job-1")

        assert "Circuit breaker is OPEN" in str(exc_info.value)
        assert len(calls) == 2
        assert client.get_circuit_breaker_status()["state"] == "open"


class TestArtifacts:

    def test_relative_reference_resolves_against_api_base(self):
        client = make_client(lambda request: httpx.Response(200))
        url = client.artifact_url("files/abc:download")

        assert str(url) == f"{API_BASE}/files/abc:download?alt=media"

    def test_absolute_reference_keeps_existing_alt(self):
        client = make_client(lambda request: httpx.Response(200))
        url = client.artifact_url(f"{API_BASE}/files/abc:download?alt=media")

        assert str(url) == f"{API_BASE}/files/abc:download?alt=media"

    @pytest.mark.asyncio
    async def test_fetch_streams_bytes_with_headers(self):
        payload = b"\x00\x00\x00\x18ftypmp42" * 100

        def handler(request):
            assert request.headers["x-goog-api-key"] == "test-key"
            assert request.url.params["alt"] == "media"
            return httpx.Response(
                200,
                content=payload,
                headers={"content-type": "video/mp4", "content-length": str(len(payload))},
            )

        client = make_client(handler)
        stream = await client.fetch_artifact("files/abc:download")

        assert stream.content_type == "video/mp4"
        assert stream.content_length == len(payload)

        received = b"".join([chunk async for chunk in stream.iter_bytes()])
        assert received == payload
        assert stream.response.is_closed

    @pytest.mark.asyncio
    async def test_fetch_missing_artifact(self):
        client = make_client(lambda request: httpx.Response(404, text="not found"))

        with pytest.raises(RemoteUnavailable) as exc_info:
            await client.fetch_artifact("files/gone:download")

        assert exc_info.value.upstream_status == 404

    @pytest.mark.asyncio
    async def test_encoded_body_has_no_content_length(self):
        payload = b"\x00\x00\x00\x18ftypmp42" * 1000
        compressed = gzip.compress(payload)

        def handler(request):
            return httpx.Response(
                200,
                content=compressed,
                headers={"content-type": "video/mp4", "content-encoding": "gzip"},
            )

        client = make_client(handler)
        stream = await client.fetch_artifact("files/abc:download")

        assert stream.content_length is None
        received = b"".join([chunk async for chunk in stream.iter_bytes()])
        assert received == payload

    def test_non_http_scheme_rejected(self):
        client = make_client(lambda request: httpx.Response(200))

        with pytest.raises(RemoteProtocolError):
            client.artifact_url("gs://bucket/v.mp4")

    @pytest.mark.asyncio
    async def test_non_http_scheme_never_requested(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, content=b"video")

        client = make_client(handler)

        with pytest.raises(RemoteProtocolError):
            await client.fetch_artifact("gs://bucket/v.mp4")
        assert requests == []


class TestArtifactCredentials:

    @pytest.mark.asyncio
    async def test_key_dropped_on_cross_host_redirect(self):
        keys = {}

        def handler(request):
            keys[request.url.host] = request.headers.get("x-goog-api-key")
            if request.url.host == "generativelanguage.googleapis.com":
                return httpx.Response(302, headers={"location": "https://cdn.other.example/v.mp4"})
            return httpx.Response(200, content=b"video", headers={"content-type": "video/mp4"})

        client = make_client(handler)
        stream = await client.fetch_artifact("files/abc:download")
        received = b"".join([chunk async for chunk in stream.iter_bytes()])

        assert received == b"video"
        assert keys == {
            "generativelanguage.googleapis.com": "test-key",
            "cdn.other.example": None,
        }

    @pytest.mark.asyncio
    async def test_key_kept_on_same_host_redirect(self):
        seen = []

        def handler(request):
            seen.append((request.url.path, request.headers.get("x-goog-api-key")))
            if request.url.path.endswith(":download"):
                return httpx.Response(307, headers={"location": "/v1beta/files/abc:media"})
            return httpx.Response(200, content=b"video")

        client = make_client(handler)
        stream = await client.fetch_artifact("files/abc:download")
        await stream.aclose()

        assert seen == [
            ("/v1beta/files/abc:download", "test-key"),
            ("/v1beta/files/abc:media", "test-key"),
        ]

    @pytest.mark.asyncio
    async def test_absolute_foreign_reference_gets_no_key(self):
        keys = []

        def handler(request):
            keys.append(request.headers.get("x-goog-api-key"))
            return httpx.Response(200, content=b"video")

        client = make_client(handler)
        stream = await client.fetch_artifact("https://storage.example.com/v.mp4")
        await stream.aclose()

        assert keys == [None]

    @pytest.mark.asyncio
    async def test_redirect_loop_is_unavailable(self):
        def handler(request):
            return httpx.Response(302, headers={"location": str(request.url)})

        client = make_client(handler)

        with pytest.raises(RemoteUnavailable):
            await client.fetch_artifact("files/abc:download")
