"""
Notify Module

Match notification sinks and the Notifier that fans out to them.
"""
from certwatch.notify.interface import MatchSink
from certwatch.notify.notifier import Notifier, NotifierStats
from certwatch.notify.stdout import OUTPUT_MODES, StdoutSink, format_lines
from certwatch.notify.webhook import WEBHOOK_FORMATS, WebhookSink, build_payload

__all__ = [
    "MatchSink",
    "Notifier",
    "NotifierStats",
    "OUTPUT_MODES",
    "StdoutSink",
    "WEBHOOK_FORMATS",
    "WebhookSink",
    "build_payload",
    "format_lines",
]
