"""
Feed Message Extractor

Turns one raw certstream frame into a CertificateEvent.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from certwatch.core.types import ExtractError
from certwatch.models.cert import CertificateEvent

logger = logging.getLogger(__name__)

CERTIFICATE_UPDATE = "certificate_update"

DOMAINS_PATH = ("data", "leaf_cert", "all_domains")


def _decode(raw_message: str | bytes) -> Any:
    if isinstance(raw_message, bytes):
        try:
            raw_message = raw_message.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ExtractError("Message is not valid UTF-8") from e

    try:
        return json.loads(raw_message)
    except json.JSONDecodeError as e:
        raise ExtractError(
            f"Message is not valid JSON: {e.msg}",
            value=raw_message,
        ) from e


def _lookup(document: Any, path: tuple[str, ...]) -> Any:
    """Follow ``path`` through nested objects, raising if any step is missing."""
    node = document
    for key in path:
        if not isinstance(node, dict) or key not in node:
            raise ExtractError(
                f"Missing {'.'.join(path)}",
                field=".".join(path),
            )
        node = node[key]
    return node


def extract(raw_message: str | bytes) -> Optional[CertificateEvent]:
    """
    Extract the certificate's domain list from one feed message.

    Args:
        raw_message: One WebSocket frame (text or UTF-8 bytes)

    Returns:
        A CertificateEvent, or None when the message is not a
        certificate update (heartbeats and other status frames).

    Raises:
        ExtractError: If the message is malformed or a certificate update
            lacks a usable domain list.
    """
    document = _decode(raw_message)

    message_type = document.get("message_type") if isinstance(document, dict) else None
    if message_type is None:
        raise ExtractError("Missing message_type", field="message_type")
    if not isinstance(message_type, str):
        raise ExtractError(
            "message_type is not a string",
            field="message_type",
            value=message_type,
        )

    if message_type != CERTIFICATE_UPDATE:
        return None

    domains = _lookup(document, DOMAINS_PATH)
    if not isinstance(domains, list):
        raise ExtractError(
            "all_domains is not a list",
            field="data.leaf_cert.all_domains",
            value=domains,
        )

    for i, domain in enumerate(domains):
        if not isinstance(domain, str):
            raise ExtractError(
                "domain is not a string",
                field=f"data.leaf_cert.all_domains[{i}]",
                value=domain,
            )

    return CertificateEvent(domains=tuple(domains))
