"""
Remote Job Client for the Gemini long-running video API

Wraps the three upstream calls the relay needs:
- submit: start a Veo generation job, returns the remote operation name
- poll: fetch the current state of a job by name
- fetch_artifact: open a streaming download of a finished video

All calls carry the API key header and go through a circuit breaker so an
upstream outage does not turn every poll tick into a failed request.
"""

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerOpen
from core.config import Config, get_config
from core.exceptions import NotConfigured, RemoteProtocolError, RemoteUnavailable

from .models import GenerationRequest, PollResult

logger = logging.getLogger(__name__)

# Upstream error bodies can be large HTML pages
MAX_ERROR_TEXT = 500

MAX_REDIRECTS = 5


@dataclass
class ArtifactStream:
    """An open upstream download, relayed chunk by chunk."""
    response: httpx.Response
    content_type: str
    content_length: Optional[int] = None

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.response.aiter_bytes():
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self):
        await self.response.aclose()


def _error_text(response: httpx.Response) -> str:
    try:
        return response.text[:MAX_ERROR_TEXT]
    except httpx.ResponseNotRead:
        return ""


class VeoClient:
    """
    Client for Veo generation through the Gemini API.

    Usage:
        client = VeoClient()

        name = await client.submit(GenerationRequest(prompt="A cat surfing"))
        poll = await client.poll(name)
        if poll.done:
            stream = await client.fetch_artifact(uri)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.config = config or get_config()

        # An injected client stays owned by the caller
        self._http_client = http_client
        self._owns_client = http_client is None

        self._breaker = breaker or CircuitBreaker(
            "gemini",
            CircuitBreakerConfig(excluded_exceptions=(RemoteProtocolError, NotConfigured)),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.config.api.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.api.request_timeout)
        return self._http_client

    async def close(self):
        """Close the HTTP client."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None

    def _headers(self) -> dict:
        if not self.is_configured:
            raise NotConfigured("API key may be missing or invalid")
        return {
            "x-goog-api-key": self.config.api.api_key,
            "Content-Type": "application/json",
        }

    async def _send_json(self, method: str, url: str, **kwargs) -> dict:
        """Send a request and return the decoded JSON body of a 2xx response."""
        client = await self._get_client()

        try:
            response = await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as e:
            raise RemoteUnavailable(f"Gemini API timeout: {type(e).__name__}")
        except httpx.RequestError as e:
            raise RemoteUnavailable(f"Gemini API request failed: {type(e).__name__}: {e}")

        if not response.is_success:
            raise RemoteUnavailable(
                f"Gemini API returned HTTP {response.status_code}",
                upstream_status=response.status_code,
                upstream_text=_error_text(response),
            )

        try:
            data = response.json()
        except ValueError:
            raise RemoteProtocolError(f"Gemini API returned a non-JSON body for {url}")

        if not isinstance(data, dict):
            raise RemoteProtocolError(f"Gemini API returned unexpected JSON for {url}")
        return data

    async def _guarded(self, func, *args):
        try:
            return await self._breaker.call(func, *args)
        except CircuitBreakerOpen as e:
            raise RemoteUnavailable(str(e))

    async def submit(self, request: GenerationRequest) -> str:
        """
        Start a generation job.

        Returns:
            The remote operation name used for polling

        Raises:
            NotConfigured: No API key
            RemoteUnavailable: Transport failure or non-2xx response
            RemoteProtocolError: Success response without an operation name
        """
        return await self._guarded(self._submit, request)

    async def _submit(self, request: GenerationRequest) -> str:
        prompt = request.prompt
        if request.audio_prompt:
            prompt = f"{prompt}\n\nAudio: {request.audio_prompt}"

        payload = {
            "instances": [{"prompt": prompt}],
            "parameters": {
                "aspectRatio": request.aspect_ratio,
                "durationSeconds": request.duration_seconds,
            },
        }

        model = self.config.api.model
        logger.info(f"Veo request: model={model}, prompt={request.prompt[:50]}...")

        data = await self._send_json(
            "POST",
            f"{self.config.api.api_base}/models/{model}:predictLongRunning",
            json=payload,
        )

        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise RemoteProtocolError("No operation name in Gemini API response", raw_response=data)

        logger.info(f"Veo job created: {name}")
        return name

    async def poll(self, job_ref: str) -> PollResult:
        """
        Fetch the current state of a job.

        An unfinished job is a normal ``done=False`` result.

        Raises:
            RemoteUnavailable: Transport failure or non-2xx response
        """
        return await self._guarded(self._poll, job_ref)

    async def _poll(self, job_ref: str) -> PollResult:
        data = await self._send_json("GET", f"{self.config.api.api_base}/{job_ref.lstrip('/')}")
        return PollResult(done=bool(data.get("done")), raw_response=data)

    def artifact_url(self, artifact_ref: str) -> httpx.URL:
        """
        Resolve an artifact reference to a download URL.

        Raises:
            RemoteProtocolError: The reference names a scheme other than http(s)
        """
        scheme, sep, _ = artifact_ref.partition("://")
        if sep and "/" not in scheme:
            if scheme.lower() not in ("http", "https"):
                raise RemoteProtocolError(f"Unsupported artifact reference: {artifact_ref}")
            url = httpx.URL(artifact_ref)
        else:
            url = httpx.URL(f"{self.config.api.api_base}/{artifact_ref.lstrip('/')}")

        if "alt" not in url.params:
            url = url.copy_merge_params({"alt": "media"})
        return url

    def _download_headers(self, url: httpx.URL) -> dict:
        # Only the API host gets the key, including after redirects
        headers = self._headers()
        if url.host != httpx.URL(self.config.api.api_base).host:
            return {}
        return {"x-goog-api-key": headers["x-goog-api-key"]}

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, max=4),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _open_stream(self, url: httpx.URL) -> httpx.Response:
        client = await self._get_client()

        for _ in range(MAX_REDIRECTS + 1):
            request = client.build_request("GET", url, headers=self._download_headers(url))
            response = await client.send(request, stream=True, follow_redirects=False)
            if not response.has_redirect_location:
                return response

            await response.aclose()
            url = url.join(response.headers["location"])
            logger.debug(f"Video download redirected to {url.host}")

        raise httpx.TooManyRedirects("Exceeded maximum allowed redirects", request=request)

    async def fetch_artifact(self, artifact_ref: str) -> ArtifactStream:
        """
        Open a streaming download of a finished video.

        The caller must consume ``iter_bytes()`` or call ``aclose()``.

        Raises:
            RemoteUnavailable: The artifact cannot be retrieved
            RemoteProtocolError: The artifact reference is not downloadable
        """
        url = self.artifact_url(artifact_ref)

        try:
            response = await self._open_stream(url)
        except httpx.RequestError as e:
            raise RemoteUnavailable(f"Video download failed: {type(e).__name__}: {e}")

        if not response.is_success:
            await response.aread()
            await response.aclose()
            raise RemoteUnavailable(
                f"Video download returned HTTP {response.status_code}",
                upstream_status=response.status_code,
                upstream_text=_error_text(response),
            )

        # iter_bytes() yields decoded bytes, so an encoded body's length does not apply
        length = response.headers.get("content-length")
        if response.headers.get("content-encoding", "identity").lower() != "identity":
            length = None

        return ArtifactStream(
            response=response,
            content_type=response.headers.get("content-type", "video/mp4"),
            content_length=int(length) if length and length.isdigit() else None,
        )

    def get_circuit_breaker_status(self) -> dict:
        return self._breaker.get_status()
