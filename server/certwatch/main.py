"""
certwatch Entry Point

Watches a certstream WebSocket feed and reports every certificate domain
that matches a pattern from the regex file.

Usage:
    certwatch                                  # ws://127.0.0.1:4000/, regexes.txt
    certwatch -u wss://certstream.calidog.io/ -r regexes.txt
    certwatch -s https://hooks.slack.com/services/...   # also POST to Slack
    certwatch --mock                           # serve and watch a local mock feed
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional, Sequence

from dotenv import load_dotenv

from certwatch.config import DEFAULT_FEED_URL, Settings, load_settings
from certwatch.core.types import CertWatchError, ConfigurationError
from certwatch.feed.supervisor import Supervisor
from certwatch.notify.notifier import Notifier
from certwatch.notify.stdout import OUTPUT_MODES, StdoutSink
from certwatch.notify.webhook import WEBHOOK_FORMATS, WebhookSink
from certwatch.patterns.pattern_set import load_patterns

logger = logging.getLogger("certwatch")

MOCK_HOST = "127.0.0.1"
MOCK_PORT = 4000
SHUTDOWN_TIMEOUT_SECONDS = 10.0


def configure_logging(debug: bool) -> None:
    """Send logs to stderr; stdout carries match lines only."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    # Frame-level websockets logging drowns out our own debug output.
    logging.getLogger("websockets").setLevel(logging.INFO)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="certwatch",
        description="Match newly-issued certificate domains against regexes",
    )
    parser.add_argument(
        "-r", "--regex-file", "--pattern-file",
        dest="regex_file",
        help="List of regexes, one per line (default: regexes.txt)",
    )
    parser.add_argument(
        "-u", "--url",
        help=f"certstream WebSocket URL, e.g. 'wss://certstream.calidog.io/' (default: {DEFAULT_FEED_URL})",
    )
    parser.add_argument(
        "-s", "--slack-url", "--webhook-url",
        dest="webhook_url",
        help="Webhook URL to POST matches to",
    )
    parser.add_argument(
        "--webhook-format",
        choices=WEBHOOK_FORMATS,
        help="Webhook payload format (default: slack)",
    )
    parser.add_argument(
        "--output-mode",
        choices=OUTPUT_MODES,
        help="stdout line format (default: pattern)",
    )
    parser.add_argument(
        "-c", "--concurrency",
        type=int,
        help="Max messages processed at once; 0 = unbounded (default: CPU count)",
    )
    parser.add_argument(
        "-d", "--debug",
        action="store_true",
        default=None,
        help="Debug logging",
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Serve a local mock certstream feed and watch it",
    )
    return parser


def build_notifier(settings: Settings) -> Notifier:
    sinks = [StdoutSink(mode=settings.output.mode)]
    if settings.webhook.enabled:
        webhook = WebhookSink(
            settings.webhook.url,
            fmt=settings.webhook.format,
            timeout=settings.webhook.timeout_seconds,
        )
        logger.info(f"Webhook notifications enabled: {webhook.safe_url}")
        sinks.append(webhook)
    return Notifier(sinks)


async def run(settings: Settings, *, use_mock: bool = False) -> None:
    """
    Load patterns and supervise the feed until a shutdown signal arrives.

    Raises:
        CertWatchError: On setup failure or a fatal runtime error.
    """
    patterns = load_patterns(settings.regex_file)

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    mock_task: Optional[asyncio.Task[None]] = None
    if use_mock:
        from certwatch.mock_feed import run_mock_feed

        ready = asyncio.Event()
        mock_task = asyncio.create_task(
            run_mock_feed(host=MOCK_HOST, port=MOCK_PORT, shutdown=shutdown_event, ready=ready)
        )
        ready_task = asyncio.create_task(ready.wait())
        await asyncio.wait({ready_task, mock_task}, return_when=asyncio.FIRST_COMPLETED)
        if mock_task.done():
            ready_task.cancel()
            try:
                mock_task.result()
            except OSError as e:
                raise ConfigurationError(f"Cannot start mock feed: {e}") from e

    notifier = build_notifier(settings)
    supervisor = Supervisor(
        settings.feed.url,
        patterns,
        notifier,
        settings.feed.concurrency,
        reconnection=settings.reconnect.new_state(),
        max_retries=settings.reconnect.max_retries,
        ping_interval=settings.feed.ping_interval,
        ping_timeout=settings.feed.ping_timeout,
    )

    supervise_task = asyncio.create_task(supervisor.supervise())
    shutdown_task = asyncio.create_task(shutdown_event.wait())

    try:
        done, _ = await asyncio.wait(
            {supervise_task, shutdown_task},
            return_when=asyncio.FIRST_COMPLETED,
        )

        if supervise_task in done:
            # Only returns early on a fatal error; result() re-raises it.
            supervise_task.result()
        else:
            logger.info("Shutdown signal received")
            await supervisor.stop()
            try:
                await asyncio.wait_for(supervise_task, timeout=SHUTDOWN_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                logger.warning("Supervisor did not stop in time, cancelled")

    finally:
        logger.info("Shutting down...")
        shutdown_event.set()
        shutdown_task.cancel()

        if mock_task is not None:
            await mock_task

        await notifier.close()

        stats = supervisor.get_stats()
        logger.info(
            f"Final - sessions: {stats['sessions_started']}, "
            f"messages: {stats['messages_received']}, "
            f"matches: {stats['matches']}, "
            f"delivery failures: {notifier.stats.delivery_failures}"
        )


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()

    args = build_parser().parse_args(argv)

    try:
        settings = load_settings().with_overrides(
            regex_file=args.regex_file,
            url=DEFAULT_FEED_URL if args.mock else args.url,
            webhook_url=args.webhook_url,
            webhook_format=args.webhook_format,
            output_mode=args.output_mode,
            concurrency=args.concurrency,
            debug=args.debug,
        )
    except CertWatchError as e:
        configure_logging(debug=False)
        logger.error(f"Configuration error: {e}")
        return 1

    configure_logging(settings.debug)

    try:
        asyncio.run(run(settings, use_mock=args.mock))
    except CertWatchError as e:
        logger.error(f"Fatal: {e}")
        return 1
    return 0


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
