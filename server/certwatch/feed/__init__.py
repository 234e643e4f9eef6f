"""
Feed Module

certstream WebSocket consumption: message extraction, per-connection
sessions, and the reconnecting supervisor.
"""
from certwatch.feed.extractor import CERTIFICATE_UPDATE, extract
from certwatch.feed.session import SessionStats, StreamSession
from certwatch.feed.supervisor import Supervisor

__all__ = [
    "CERTIFICATE_UPDATE",
    "SessionStats",
    "StreamSession",
    "Supervisor",
    "extract",
]
