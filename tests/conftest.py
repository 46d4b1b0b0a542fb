"""
Shared fixtures for relay tests.
"""

import asyncio
import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import APIConfig, Config, PollingConfig, ServerConfig
from services.video_generation.models import PollResult


def completed_response(uri: str = "files/abc:download") -> dict:
    """Poll document of a finished job in the canonical shape."""
    return {
        "name": "job-1",
        "done": True,
        "response": {
            "@type": "type.googleapis.com/google.ai.generativelanguage.v1beta.PredictLongRunningResponse",
            "generateVideoResponse": {"generatedSamples": [{"video": {"uri": uri}}]},
        },
    }


class FakeVeoClient:
    """Scripted stand-in for VeoClient.

    ``poll_script`` items are returned (or raised, for exceptions) in order;
    once exhausted every poll reports ``done=False``.
    """

    def __init__(self, poll_script=None, configured: bool = True, yield_in_poll: bool = False):
        self.is_configured = configured
        self.poll_script = list(poll_script or [])
        self.yield_in_poll = yield_in_poll
        self.submitted = []
        self.poll_calls = 0
        self.closed = False

    async def submit(self, request):
        self.submitted.append(request)
        return f"models/veo/operations/job-{len(self.submitted)}"

    async def poll(self, job_ref):
        self.poll_calls += 1
        if self.yield_in_poll:
            await asyncio.sleep(0)

        item = self.poll_script.pop(0) if self.poll_script else PollResult(done=False)
        if isinstance(item, Exception):
            raise item
        return item

    async def fetch_artifact(self, artifact_ref):
        raise AssertionError("fetch_artifact not scripted")

    async def close(self):
        self.closed = True

    def get_circuit_breaker_status(self):
        return {"service": "fake", "state": "closed"}


def make_config(
    api_key: str = "test-key",
    interval_seconds: float = 0.0,
    max_attempts: int = 5,
    public_base_url=None,
) -> Config:
    return Config(
        api=APIConfig(
            api_key=api_key,
            api_base="https://generativelanguage.googleapis.com/v1beta",
            model="veo-3.1-generate-preview",
            request_timeout=5.0,
        ),
        polling=PollingConfig(interval_seconds=interval_seconds, max_attempts=max_attempts),
        server=ServerConfig(
            public_base_url=public_base_url,
            allowed_origins=["http://localhost:3000"],
        ),
    )


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def fake_client():
    return FakeVeoClient()
