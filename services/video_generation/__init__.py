"""
Video Generation Service

Access to Veo video generation through the Gemini long-running operation API:
- client: submit / poll / download calls, guarded by a circuit breaker
- extractor: locate the video reference in the completion payload
- models: operation records and request parameters
"""

from .client import ArtifactStream, VeoClient
from .extractor import extract_artifact_ref
from .models import (
    GenerationRequest,
    Operation,
    OperationStatus,
    PollResult,
)

__all__ = [
    "ArtifactStream",
    "VeoClient",
    "extract_artifact_ref",
    "GenerationRequest",
    "Operation",
    "OperationStatus",
    "PollResult",
]
