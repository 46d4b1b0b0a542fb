#!/usr/bin/env python3
"""
Veo Relay - Main Entry Point

Usage:
    # Start the HTTP relay
    python main.py server

    # Generate a single video in-process and save it
    python main.py generate --prompt "A cat surfing at sunset" --output cat.mp4

    # Check configuration
    python main.py check

    # Query a running relay
    python main.py status --server http://localhost:3000
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("veorelay")


async def generate_video(
    prompt: str,
    audio_prompt: Optional[str] = None,
    duration: Optional[str] = None,
    aspect_ratio: Optional[str] = None,
    output_path: Optional[str] = None,
) -> bool:
    """
    Generate a video without the HTTP layer.

    Submits the job, waits for the background tracker to reach a terminal
    state and, if ``output_path`` is given, streams the video to disk.
    """
    from core.config import get_config
    from core.exceptions import RelayError
    from services.operations import VideoRelay
    from services.video_generation import OperationStatus

    config = get_config()
    relay = VideoRelay(config)

    try:
        operation = await relay.create_operation(
            prompt,
            audio_prompt=audio_prompt,
            duration=duration,
            aspect_ratio=aspect_ratio,
        )
        logger.info(f"Operation {operation.id} started")

        while True:
            await asyncio.sleep(max(config.polling.interval_seconds, 1.0))
            operation = await relay.get_operation(operation.id)
            if operation.is_terminal:
                break

        if operation.status != OperationStatus.COMPLETED:
            logger.error(f"Generation ended as {operation.status.value}: {operation.error}")
            return False

        logger.info(f"Video ready: {operation.artifact_ref}")

        if output_path:
            stream = await relay.stream_artifact(operation.id)
            written = 0
            with open(output_path, "wb") as f:
                async for chunk in stream.iter_bytes():
                    f.write(chunk)
                    written += len(chunk)
            logger.info(f"Video downloaded: {output_path} ({written / 1024 / 1024:.1f} MB)")

        return True

    except RelayError as e:
        logger.error(f"{e.error}: {e.message}")
        return False

    finally:
        await relay.close()


def check_config() -> bool:
    """Print configuration issues. Returns True when there are none."""
    from core.config import get_config

    config = get_config()
    issues = config.validate()

    print(f"Model:        {config.api.model}")
    print(f"API base:     {config.api.api_base}")
    print(f"AI configured: {'yes' if config.is_configured() else 'no'}")
    print(f"Polling:      every {config.polling.interval_seconds}s, "
          f"max {config.polling.max_attempts} attempts")

    for issue in issues:
        print(f"  - {issue}")
    return not issues


async def server_status(server_url: str) -> bool:
    """Print the health report of a running relay."""
    import httpx

    async with httpx.AsyncClient(timeout=10.0) as client:
        try:
            resp = await client.get(f"{server_url.rstrip('/')}/api/health")
        except httpx.RequestError as e:
            print(f"Cannot connect to server: {e}")
            return False

    if resp.status_code != 200:
        print(f"Server returned status {resp.status_code}")
        return False

    data = resp.json()
    print(f"Server: {server_url}")
    print("Status: Online")
    print(f"AI configured: {data['aiConfigured']}")
    print(f"Active operations: {data['activeOperations']}")
    print(f"Circuit breaker: {data['breaker']['state']}")
    return True


def main():
    parser = argparse.ArgumentParser(
        description="Veo Relay - video generation relay with operation tracking",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python main.py server --port 3000
    python main.py generate --prompt "A timelapse of a city at night" -o city.mp4
    python main.py check
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Server command
    server_parser = subparsers.add_parser("server", help="Start the HTTP relay")
    server_parser.add_argument("--host", help="Host to bind (default: HOST or 0.0.0.0)")
    server_parser.add_argument("--port", type=int, help="Port to bind (default: PORT or 3000)")

    # Generate command
    gen_parser = subparsers.add_parser("generate", help="Generate a video in-process")
    gen_parser.add_argument("--prompt", "-p", required=True, help="Visual prompt")
    gen_parser.add_argument("--audio-prompt", "-a", help="Audio cue appended to the prompt")
    gen_parser.add_argument(
        "--duration",
        "-d",
        choices=["5 seconds", "10 seconds", "20 seconds", "30 seconds"],
        default="10 seconds",
        help="Duration category",
    )
    gen_parser.add_argument("--aspect-ratio", default="16:9", help="Aspect ratio, e.g. 16:9 or 9:16")
    gen_parser.add_argument("--output", "-o", help="File to write the video to")

    subparsers.add_parser("check", help="Validate configuration")

    status_parser = subparsers.add_parser("status", help="Check a running relay")
    status_parser.add_argument("--server", default="http://localhost:3000", help="Relay base URL")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "server":
        from services.api.server import run_server

        run_server(host=args.host, port=args.port)

    elif args.command == "generate":
        ok = asyncio.run(
            generate_video(
                prompt=args.prompt,
                audio_prompt=args.audio_prompt,
                duration=args.duration,
                aspect_ratio=args.aspect_ratio,
                output_path=args.output,
            )
        )
        sys.exit(0 if ok else 1)

    elif args.command == "check":
        sys.exit(0 if check_config() else 1)

    elif args.command == "status":
        sys.exit(0 if asyncio.run(server_status(args.server)) else 1)


if __name__ == "__main__":
    main()
