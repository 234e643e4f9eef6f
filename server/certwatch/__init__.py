"""
certwatch

Certificate-transparency domain monitor. Consumes a certstream WebSocket
feed, matches every certificate domain against a regex file and reports
matches to stdout and, optionally, a webhook.

Architecture:
    certstream (external) -> feed.supervisor -> feed.session
        -> feed.extractor -> patterns.matcher -> notify -> [stdout, webhook]

Components:
    - patterns: immutable compiled PatternSet and the domain matcher
    - feed: frame extraction, per-connection sessions, reconnect supervisor
    - notify: stdout and webhook sinks behind a fan-out Notifier
    - mock_feed: local certstream-compatible server for development
"""
