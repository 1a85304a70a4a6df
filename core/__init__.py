"""
Core module for the presence bot farm.

This package contains the connection lifecycle, rotation scheduling,
configuration and monitoring components that keep a pool of bot accounts
online.

Submodules:
    config: Application settings (``BotSettings``, ``Identity``, ``Endpoint``) via Pydantic.
    clock: ``Clock`` timer abstraction (``LoopClock`` for asyncio, ``ManualClock`` for tests).
    errors: ``ErrorKind`` taxonomy, disconnect-reason extraction, ``ErrorFilter`` ignore list.
    connection: ``ManagedConnection`` connect/retry/rotate state machine.
    pool: ``ConnectionPool`` fixed set of connections with aggregate status.
    rotation: ``RotationScheduler`` staggered periodic rotation.
    status: ``StatusReporter`` heartbeat log line and Rich status table.
    orchestrator: ``PresenceFarm`` owning context, bootstrap and shutdown.
    registry: Factory registry mapping connector names to classes.
    health_endpoint: aiohttp server exposing ``/health`` and ``/status``.
    logging_setup: Compressed rotating file + safe console logging.
"""
