"""
Data types for tracked video generation operations.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class OperationStatus(str, Enum):
    """Lifecycle state of a tracked operation."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self is not OperationStatus.PROCESSING


# Client-facing duration categories -> seconds sent upstream
DURATION_SECONDS = {
    "5 seconds": 5,
    "10 seconds": 10,
    "20 seconds": 20,
    "30 seconds": 30,
}
DEFAULT_DURATION = "10 seconds"
DEFAULT_ASPECT_RATIO = "16:9"


def duration_to_seconds(duration: Optional[str]) -> int:
    """Map a duration category to seconds, falling back to 10."""
    return DURATION_SECONDS.get(duration or DEFAULT_DURATION, DURATION_SECONDS[DEFAULT_DURATION])


@dataclass(frozen=True)
class GenerationRequest:
    """Immutable parameters of a generation request."""
    prompt: str
    audio_prompt: Optional[str] = None
    duration: str = DEFAULT_DURATION
    aspect_ratio: str = DEFAULT_ASPECT_RATIO

    @property
    def duration_seconds(self) -> int:
        return duration_to_seconds(self.duration)


@dataclass(frozen=True)
class PollResult:
    """One observation of a remote job."""
    done: bool
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def error_message(self) -> Optional[str]:
        """Message of an upstream ``error`` object, if the job reported one."""
        error = self.raw_response.get("error")
        if isinstance(error, dict):
            return error.get("message") or f"Remote job failed (code {error.get('code')})"
        if error:
            return str(error)
        return None


@dataclass(frozen=True)
class Operation:
    """
    A tracked remote generation job.

    Records are immutable; state changes produce a new record through
    ``dataclasses.replace`` inside the store's atomic update.
    """
    id: str
    remote_job_ref: str
    request: GenerationRequest
    status: OperationStatus = OperationStatus.PROCESSING
    created_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    artifact_ref: Optional[str] = None
    result_metadata: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_summary(self) -> dict:
        """Compact listing entry."""
        return {
            "operationId": self.id,
            "status": self.status.value,
            "visualPrompt": self.request.prompt,
            "createdAt": self.created_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }
