"""
Mock certstream feed for testing when the public feed is unavailable.

Serves a local WebSocket endpoint that emits realistic certstream frames:
certificate updates with random domain lists, plus periodic heartbeats.

Usage:
    python -m certwatch.main --mock
"""
from __future__ import annotations

import asyncio
import json
import logging
import random
import time
import uuid
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)

BASE_DOMAINS = [
    "example.com",
    "example.org",
    "shop-online.net",
    "evil.com",
    "bank.example",
    "cloud-storage.io",
    "mail-service.co",
    "paypal-login.xyz",
    "secure-update.top",
    "news-portal.info",
]

SUBDOMAINS = ["www", "mail", "api", "login", "secure", "cdn", "dev", "auth", "portal", "m"]

ISSUERS = [
    "R3",
    "E1",
    "Sectigo RSA Domain Validation Secure Server CA",
    "GTS CA 1D4",
    "Amazon RSA 2048 M02",
]

LOG_SOURCES = [
    ("Google 'Argon2024' log", "https://ct.googleapis.com/logs/argon2024/"),
    ("Cloudflare 'Nimbus2024' Log", "https://ct.cloudflare.com/logs/nimbus2024/"),
    ("Let's Encrypt 'Oak2024H1' log", "https://oak.ct.letsencrypt.org/2024h1/"),
]

_cert_index = 0


def _make_domains() -> list[str]:
    base = random.choice(BASE_DOMAINS)
    domains = [base]
    for sub in random.sample(SUBDOMAINS, k=random.randint(0, 3)):
        domains.append(f"{sub}.{base}")
    if random.random() < 0.2:
        domains.append(f"*.{base}")
    return domains


def make_certificate_update() -> dict[str, Any]:
    """Build one certstream certificate_update frame."""
    global _cert_index
    _cert_index += 1

    now = time.time()
    domains = _make_domains()
    source_name, source_url = random.choice(LOG_SOURCES)
    return {
        "message_type": "certificate_update",
        "data": {
            "update_type": "X509LogEntry",
            "leaf_cert": {
                "subject": {"CN": domains[0]},
                "issuer": {"CN": random.choice(ISSUERS)},
                "all_domains": domains,
                "not_before": int(now),
                "not_after": int(now) + 90 * 24 * 3600,
                "serial_number": uuid.uuid4().hex.upper(),
            },
            "cert_index": _cert_index,
            "seen": now,
            "source": {"name": source_name, "url": source_url},
        },
    }


def make_heartbeat() -> dict[str, Any]:
    return {"message_type": "heartbeat", "timestamp": time.time()}


async def _stream_to_client(
    websocket,
    interval_range: tuple[float, float],
    heartbeat_every: int,
) -> None:
    sent = 0
    try:
        while True:
            sent += 1
            if heartbeat_every and sent % heartbeat_every == 0:
                frame = make_heartbeat()
            else:
                frame = make_certificate_update()
            await websocket.send(json.dumps(frame))
            await asyncio.sleep(random.uniform(*interval_range))
    except ConnectionClosed:
        logger.debug(f"Mock feed client disconnected after {sent} frames")


async def run_mock_feed(
    *,
    host: str = "127.0.0.1",
    port: int = 4000,
    interval_range: tuple[float, float] = (0.05, 0.5),
    heartbeat_every: int = 20,
    shutdown: asyncio.Event | None = None,
    ready: asyncio.Event | None = None,
) -> None:
    """Serve certstream-style frames to every client until shutdown is set."""

    async def handler(websocket) -> None:
        await _stream_to_client(websocket, interval_range, heartbeat_every)

    async with websockets.serve(handler, host, port):
        logger.info(f"Mock certstream feed listening on ws://{host}:{port}/")
        if ready is not None:
            ready.set()
        if shutdown is None:
            await asyncio.Future()  # run forever
        else:
            await shutdown.wait()

    logger.info("Mock certstream feed stopped")
