#!/usr/bin/env python3
"""Main entrypoint — wires the alert engine, notifiers and HTTP API.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # Feed JSON-lines metric samples from a collector on stdin
    collector | python scripts/run.py --stdin

    # Override log level
    python scripts/run.py --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from typing import IO

import structlog
from pydantic import ValidationError

from netalert.core.config import load_settings
from netalert.core.exceptions import ConfigError
from netalert.core.logging import setup_logging
from netalert.core.types import MetricSample
from netalert.engine.pipeline import AlertEngine
from netalert.monitor.api import start_api

logger = structlog.get_logger(__name__)


async def _read_stdin(engine: AlertEngine, stdin: IO[bytes] | None = None) -> None:
    """Submit one MetricSample per JSON line read from stdin.

    The pipe is read through the event loop, so cancelling the task
    stops the reader immediately even when no data is arriving.
    """
    loop = asyncio.get_running_loop()
    stream = asyncio.StreamReader()
    try:
        transport, _ = await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(stream),
            stdin if stdin is not None else sys.stdin.buffer,
        )
    except ValueError as exc:
        logger.error("stdin_not_a_pipe", error=str(exc))
        return
    try:
        while True:
            raw = await stream.readline()
            if not raw:
                logger.info("stdin_closed")
                return
            line = raw.strip()
            if not line:
                continue
            try:
                sample = MetricSample.model_validate_json(line)
            except ValidationError as exc:
                logger.warning("sample_dropped", reason="malformed", error=str(exc)[:200])
                continue
            engine.submit_sample(sample)
    finally:
        transport.close()


async def run(args: argparse.Namespace) -> int:
    """Start the engine and run until interrupted."""
    try:
        settings = load_settings(args.config)
    except ConfigError as exc:
        print(f"Refusing to start: {exc}", file=sys.stderr)
        return 2
    setup_logging(level=args.log_level, config=settings.logging)

    logger.info(
        "engine_starting",
        thresholds=len(settings.thresholds),
        services=len(settings.business_services),
        channels=settings.notifications.enabled_channels,
        api=settings.api.enabled,
    )

    engine = AlertEngine(settings)
    await engine.start()

    runner = None
    if settings.api.enabled:
        runner = await start_api(
            engine,
            host=settings.api.host,
            port=settings.api.port,
            username=settings.api.username or None,
            password=settings.api.password.get_secret_value() or None,
        )
        logger.info("api_listening", host=settings.api.host, port=settings.api.port)

    # ── Wait for shutdown signal ─────────────────────────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    reader = None
    if args.stdin:
        reader = asyncio.create_task(_read_stdin(engine))

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("engine_shutting_down")

    if reader is not None:
        reader.cancel()
        try:
            await reader
        except asyncio.CancelledError:
            pass
    if runner is not None:
        await runner.cleanup()
    await engine.drain()
    await engine.stop()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run the network alert correlation and escalation engine.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument(
        "--stdin",
        action="store_true",
        help="Read JSON-lines metric samples from stdin",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
