"""
Video Relay - the operations exposed to request handlers.

Ties the remote client, the store and the tracker together:
- create_operation: validate, submit upstream, register, start polling
- get_operation_status: cached for terminal records, one poll otherwise
- stream_artifact: open the upstream download of a completed video
- delete_operation: evict a record and cancel its poller
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from core.config import Config, get_config
from core.exceptions import ArtifactNotReady, NotConfigured, OperationNotFound, ValidationError
from services.video_generation.client import ArtifactStream, VeoClient
from services.video_generation.models import (
    DEFAULT_ASPECT_RATIO,
    DEFAULT_DURATION,
    GenerationRequest,
    Operation,
    OperationStatus,
)

from .store import OperationStore
from .tracker import OperationTracker

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    OperationStatus.PROCESSING: "Video is still generating...",
    OperationStatus.COMPLETED: "Video generation complete",
    OperationStatus.FAILED: "Video generation failed",
    OperationStatus.TIMEOUT: "Video generation timed out",
}


def new_operation_id() -> str:
    return secrets.token_urlsafe(12)


@dataclass
class OperationStatusView:
    """What a status read reports back to the client."""
    operation_id: str
    status: OperationStatus
    artifact_location: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "success": self.status in (OperationStatus.PROCESSING, OperationStatus.COMPLETED),
            "status": self.status.value,
            "operationId": self.operation_id,
            "message": STATUS_MESSAGES[self.status],
        }
        if self.status == OperationStatus.COMPLETED:
            data["videoUrl"] = self.artifact_location
        if self.status in (OperationStatus.COMPLETED, OperationStatus.FAILED):
            data["metadata"] = self.metadata
        if self.error:
            data["error"] = self.error
        return data


class VideoRelay:
    """
    Owns the operation store, tracker and remote client for one process.

    Usage:
        relay = VideoRelay()
        operation = await relay.create_operation("A cat surfing at sunset")
        view = await relay.get_operation_status(operation.id)
        await relay.close()
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        client: Optional[VeoClient] = None,
        store: Optional[OperationStore] = None,
        tracker: Optional[OperationTracker] = None,
    ):
        self.config = config or get_config()
        self.client = client or VeoClient(self.config)
        self.store = store or OperationStore()
        self.tracker = tracker or OperationTracker(
            self.store,
            self.client,
            interval_seconds=self.config.polling.interval_seconds,
            max_attempts=self.config.polling.max_attempts,
        )

    @property
    def is_configured(self) -> bool:
        return self.client.is_configured

    async def create_operation(
        self,
        prompt: Optional[str],
        audio_prompt: Optional[str] = None,
        duration: Optional[str] = None,
        aspect_ratio: Optional[str] = None,
    ) -> Operation:
        """
        Submit a generation job and start tracking it.

        Raises:
            NotConfigured: No API credential
            ValidationError: Missing prompt
            RemoteUnavailable / RemoteProtocolError: The submit call failed
        """
        if not self.is_configured:
            raise NotConfigured("API key may be missing or invalid")

        if not prompt or not prompt.strip():
            raise ValidationError("Missing required field: visualPrompt")

        request = GenerationRequest(
            prompt=prompt,
            audio_prompt=audio_prompt or None,
            duration=duration or DEFAULT_DURATION,
            aspect_ratio=aspect_ratio or DEFAULT_ASPECT_RATIO,
        )

        logger.info(f'Generating video: "{prompt[:50]}..."')

        try:
            remote_job_ref = await self.client.submit(request)
        except Exception as e:
            logger.error(f"Generation error: {e}")
            raise

        operation_id = new_operation_id()
        while operation_id in self.store:
            operation_id = new_operation_id()

        operation = await self.store.create(
            Operation(id=operation_id, remote_job_ref=remote_job_ref, request=request)
        )
        self.tracker.start(operation.id)

        logger.info(f"Operation {operation.id} tracking {remote_job_ref}")
        return operation

    async def get_operation(self, operation_id: str) -> Operation:
        operation = await self.store.get(operation_id)
        if operation is None:
            raise OperationNotFound(operation_id)
        return operation

    async def get_operation_status(self, operation_id: str) -> OperationStatusView:
        """
        Report the state of an operation.

        Terminal records are served from the store without a remote call;
        processing ones get one opportunistic poll first.
        """
        operation = await self.get_operation(operation_id)

        if not operation.is_terminal:
            operation = await self.tracker.refresh(operation_id)
            if operation is None:
                raise OperationNotFound(operation_id)

        return OperationStatusView(
            operation_id=operation.id,
            status=operation.status,
            artifact_location=self.artifact_location(operation),
            metadata=operation.result_metadata,
            error=operation.error,
        )

    def artifact_location(self, operation: Operation) -> Optional[str]:
        """Client-facing video link: proxied when a public URL is configured."""
        if operation.status != OperationStatus.COMPLETED:
            return None

        base_url = self.config.server.public_base_url
        if base_url:
            return f"{base_url}/api/video/{operation.id}"
        return operation.artifact_ref

    async def stream_artifact(self, operation_id: str) -> ArtifactStream:
        """
        Open the upstream download for a completed operation.

        Raises:
            OperationNotFound: Unknown id
            ArtifactNotReady: The operation has not completed
            RemoteUnavailable: The upstream download failed
            RemoteProtocolError: The artifact reference is not downloadable
        """
        operation = await self.get_operation(operation_id)
        if operation.status != OperationStatus.COMPLETED:
            raise ArtifactNotReady(operation_id, operation.status.value)

        return await self.client.fetch_artifact(operation.artifact_ref)

    async def delete_operation(self, operation_id: str) -> Operation:
        """Evict an operation and stop its poller."""
        operation = await self.store.delete(operation_id)
        if operation is None:
            raise OperationNotFound(operation_id)

        await self.tracker.cancel(operation_id)
        logger.info(f"Operation {operation_id} deleted")
        return operation

    async def list_operations(self) -> list[Operation]:
        return await self.store.list_all()

    async def health(self) -> dict:
        return {
            "status": "ok",
            "aiConfigured": self.is_configured,
            "activeOperations": await self.store.count_active(),
            "trackedOperations": len(self.store),
            "breaker": self.client.get_circuit_breaker_status(),
            "timestamp": datetime.utcnow().isoformat(),
        }

    async def close(self):
        """Cancel pollers and release the HTTP client."""
        await self.tracker.shutdown()
        await self.client.close()
