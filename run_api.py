#!/usr/bin/env python3
"""Launcher script for the REST API server."""

import asyncio
import uvicorn
from topicbus.api import app, set_bus
from topicbus.bus import Bus
from topicbus.config import Config
from topicbus.metrics import PrometheusMetrics


async def serve(config: Config):
    """Connect the bus, then serve the API on the same event loop."""
    metrics = PrometheusMetrics(port=config.get("monitoring", "prometheus_port", 9090))
    if config.get("monitoring", "prometheus_enabled", False):
        metrics.start()

    bus = Bus.from_config(config, metrics=metrics)
    await bus.connect()
    set_bus(bus)

    for label in bus.router.labels():
        await bus.subscribe(label)

    server = uvicorn.Server(uvicorn.Config(
        app,
        host=config.get("api", "host", "0.0.0.0"),
        port=config.get("api", "port", 8080),
    ))
    try:
        await server.serve()
    finally:
        await bus.end()


if __name__ == "__main__":
    config = Config()
    print(f"Starting API server on port {config.get('api', 'port', 8080)}")
    print(f"Broker: {config.get('bus', 'url')}")

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        print("\nShutting down...")
