"""
Error taxonomy for the relay.

Each error carries the HTTP status code the request handlers surface it with,
so the API layer needs a single exception handler.
"""

from typing import Optional


class RelayError(Exception):
    """Base class for errors surfaced to relay clients."""

    status_code: int = 500
    error: str = "Relay error"

    def __init__(self, message: str, error: Optional[str] = None):
        if error is not None:
            self.error = error
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message}


class NotConfigured(RelayError):
    """Raised when no API credential is configured."""

    status_code = 503
    error = "Google AI not configured"


class ValidationError(RelayError):
    """Raised when a generation request is missing a required field."""

    status_code = 400
    error = "Invalid request"


class RemoteUnavailable(RelayError):
    """Raised on transport failure or a non-success upstream response."""

    status_code = 502
    error = "Remote service unavailable"

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        upstream_text: Optional[str] = None,
    ):
        self.upstream_status = upstream_status
        self.upstream_text = upstream_text
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.upstream_status is not None:
            data["upstreamStatus"] = self.upstream_status
        if self.upstream_text:
            data["upstreamText"] = self.upstream_text
        return data


class RemoteProtocolError(RelayError):
    """Raised when a success response lacks an expected field or names an unusable artifact."""

    status_code = 502
    error = "Unexpected remote response"

    def __init__(self, message: str, raw_response: Optional[dict] = None):
        self.raw_response = raw_response
        super().__init__(message)


class OperationNotFound(RelayError):
    """Raised for an unknown operation id."""

    status_code = 404
    error = "Operation not found"

    def __init__(self, operation_id: str):
        self.operation_id = operation_id
        super().__init__(f"No operation with id {operation_id}")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["operationId"] = self.operation_id
        return data


class ArtifactNotReady(RelayError):
    """Raised when an artifact is requested before the operation completed."""

    status_code = 409
    error = "Video not ready"

    def __init__(self, operation_id: str, status: str):
        self.operation_id = operation_id
        self.status = status
        super().__init__(f"Operation {operation_id} is {status}")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["operationId"] = self.operation_id
        data["status"] = self.status
        return data
