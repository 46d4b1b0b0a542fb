"""
Veo Relay HTTP Server

FastAPI server that provides:
- POST /api/generate - Start video generation
- GET /api/status/{operation_id} - Get operation status
- GET /api/video/{operation_id} - Stream the finished video
- GET /api/operations - List tracked operations
- DELETE /api/operations/{operation_id} - Stop tracking an operation
- GET /api/health - Health check

Usage:
    # Start server
    python -m uvicorn services.api.server:app --host 0.0.0.0 --port 3000

    # Or via main.py
    python main.py server
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from starlette.background import BackgroundTask

from core.config import Config, get_config
from core.exceptions import RelayError
from services.operations.relay import VideoRelay
from services.video_generation.models import DEFAULT_ASPECT_RATIO, DEFAULT_DURATION

logger = logging.getLogger(__name__)


# Request/Response Models
class GenerateRequest(BaseModel):
    """Request to generate a video."""
    visualPrompt: Optional[str] = None
    audioPrompt: Optional[str] = None
    duration: str = DEFAULT_DURATION
    aspectRatio: str = DEFAULT_ASPECT_RATIO


class GenerateResponse(BaseModel):
    """Response from generate endpoint."""
    success: bool = True
    operationId: str
    message: str
    estimatedTime: str


def get_relay(request: Request) -> VideoRelay:
    return request.app.state.relay


def create_app(relay: Optional[VideoRelay] = None, config: Optional[Config] = None) -> FastAPI:
    """
    Build the FastAPI application.

    An injected relay is left running on shutdown; one built here is closed.
    """
    config = config or (relay.config if relay else get_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        owned = app.state.relay is None
        if owned:
            app.state.relay = VideoRelay(config)

        issues = config.validate()
        for issue in issues:
            logger.warning(f"Configuration issue: {issue}")
        logger.info(
            f"Veo relay started (environment={config.server.environment}, "
            f"AI configured={app.state.relay.is_configured})"
        )

        yield

        logger.info("Shutting down Veo relay...")
        if owned:
            await app.state.relay.close()
            app.state.relay = None

    app = FastAPI(
        title="Veo Relay API",
        description="Relay for Veo video generation with long-running operation tracking",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.relay = relay

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Server error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "message": str(exc)},
        )

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "status": "healthy",
            "message": "Veo 3.1 Backend API Server",
            "timestamp": datetime.utcnow().isoformat(),
            "endpoints": {
                "health": "GET /api/health",
                "generate": "POST /api/generate",
                "status": "GET /api/status/{operation_id}",
                "video": "GET /api/video/{operation_id}",
                "operations": "GET /api/operations",
                "delete": "DELETE /api/operations/{operation_id}",
            },
        }

    @app.get("/api/health")
    async def health(request: Request):
        """Health check endpoint. Reports even when the API key is missing."""
        return await get_relay(request).health()

    @app.post("/api/generate", response_model=GenerateResponse)
    async def generate(body: GenerateRequest, request: Request):
        """
        Start video generation.

        Returns immediately with an operation id. Poll /api/status/{operation_id}
        until the status is terminal.
        """
        operation = await get_relay(request).create_operation(
            prompt=body.visualPrompt,
            audio_prompt=body.audioPrompt,
            duration=body.duration,
            aspect_ratio=body.aspectRatio,
        )
        return GenerateResponse(
            operationId=operation.id,
            message="Video generation started",
            estimatedTime="60 seconds",
        )

    @app.get("/api/status/{operation_id}")
    async def get_status(operation_id: str, request: Request):
        """Get operation status."""
        view = await get_relay(request).get_operation_status(operation_id)
        return view.to_dict()

    @app.get("/api/video/{operation_id}")
    async def stream_video(operation_id: str, request: Request):
        """Relay the finished video bytes without buffering them."""
        stream = await get_relay(request).stream_artifact(operation_id)

        headers = {"Cache-Control": "no-cache"}
        if stream.content_length is not None:
            headers["Content-Length"] = str(stream.content_length)

        return StreamingResponse(
            stream.iter_bytes(),
            media_type=stream.content_type,
            headers=headers,
            background=BackgroundTask(stream.aclose),
        )

    @app.get("/api/operations")
    async def list_operations(request: Request):
        """List all tracked operations."""
        operations = await get_relay(request).list_operations()
        return {
            "total": len(operations),
            "operations": [op.to_summary() for op in operations],
        }

    @app.delete("/api/operations/{operation_id}")
    async def delete_operation(operation_id: str, request: Request):
        """Remove an operation from tracking and stop its poller."""
        operation = await get_relay(request).delete_operation(operation_id)
        return {"status": "deleted", "operationId": operation.id}

    return app


app = create_app()


# Module-level run function for main.py
def run_server(host: Optional[str] = None, port: Optional[int] = None):
    """Run the server using uvicorn."""
    import uvicorn

    config = get_config()
    uvicorn.run(app, host=host or config.server.host, port=port or config.server.port)


if __name__ == "__main__":
    run_server()
