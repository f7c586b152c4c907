#!/usr/bin/env python3
"""
Trade Copier - Main Entry Point

Usage:
    copier serve [--host HOST] [--port PORT]
    copier poll
    copier sign '{"symbol": "BTCUSDT", "side": "BUY", ...}'
    copier init-db
    copier subscribers

Examples:
    # Webhook mode: HTTP API + /webhook on port 8000
    copier serve --port 8000

    # Long-poll mode (no public URL needed)
    copier poll

    # Produce a signature for a leader payload
    copier sign '{"symbol":"BTCUSDT","side":"BUY","size":1000,"price":65000,"leverage":10}'
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv
from rich import box
from rich.console import Console
from rich.table import Table

from copier.config import CopierConfig

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def cmd_serve(config: CopierConfig, args: argparse.Namespace) -> int:
    from copier.api.app import create_app
    from copier.service import build_services

    services = build_services(config)
    if args.webhook_url:
        services.dispatcher.transport.set_webhook(args.webhook_url, config.webhook_secret_token)

    app = create_app(services)
    try:
        app.run(
            host=args.host or config.api_host,
            port=args.port or config.api_port,
            debug=config.debug,
            threaded=True,
        )
    finally:
        services.shutdown()
    return 0


def cmd_poll(config: CopierConfig, args: argparse.Namespace) -> int:
    from copier.service import build_services

    services = build_services(config)
    try:
        services.dispatcher.poll_forever(timeout=args.timeout)
    except KeyboardInterrupt:
        logger.info("Polling stopped")
    finally:
        services.shutdown()
    return 0


def cmd_sign(config: CopierConfig, args: argparse.Namespace) -> int:
    from copier.relay.signature import sign_signal

    try:
        payload = json.loads(args.payload)
        signature = sign_signal(payload, config.app_secret)
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        print(f"Invalid payload: {e}", file=sys.stderr)
        return 2

    if args.full:
        payload["signature"] = signature
        print(json.dumps(payload, separators=(",", ":")))
    else:
        print(signature)
    return 0


def cmd_init_db(config: CopierConfig, args: argparse.Namespace) -> int:
    from copier.storage import CopierDB

    CopierDB(config.db_path)
    logger.info(f"Database ready: {config.db_path}")
    return 0


def cmd_subscribers(config: CopierConfig, args: argparse.Namespace) -> int:
    from copier.storage import CopierDB, SignalStore, SubscriptionStore

    db = CopierDB(config.db_path)
    subscriptions = SubscriptionStore(db, min_risk=config.min_risk, max_risk=config.max_risk)
    signals = SignalStore(db, max_list_limit=config.signals_page_limit)
    scope = args.ref or config.referral_code

    table = Table(title=f"Subscribers ({scope})", box=box.ROUNDED)
    table.add_column("Subscriber", style="cyan")
    table.add_column("Risk", justify="right")
    table.add_column("Signals", justify="right")

    members = subscriptions.list_by_scope(scope)
    for subscriber_id, risk in members:
        table.add_row(subscriber_id, f"{risk}x", str(signals.count_for_subscriber(subscriber_id)))

    console = Console()
    console.print(table)
    console.print(f"[bold]{len(members)}[/bold] subscriber(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="copier", description="Trade signal copier bot")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API and webhook")
    serve.add_argument("--host", default=None, help="Bind address (default: API_HOST)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: API_PORT)")
    serve.add_argument("--webhook-url", default=None, help="Register this public URL as the bot webhook")
    serve.set_defaults(func=cmd_serve)

    poll = sub.add_parser("poll", help="Long-poll the chat platform")
    poll.add_argument("--timeout", type=int, default=30, help="Long-poll timeout in seconds")
    poll.set_defaults(func=cmd_poll)

    sign = sub.add_parser("sign", help="Sign a signal payload with APP_SECRET")
    sign.add_argument("payload", help="JSON object with symbol, side, size, price, leverage")
    sign.add_argument("--full", action="store_true", help="Print the payload with signature attached")
    sign.set_defaults(func=cmd_sign)

    init_db = sub.add_parser("init-db", help="Create or verify the database schema")
    init_db.set_defaults(func=cmd_init_db)

    subscribers = sub.add_parser("subscribers", help="List subscribers in a referral scope")
    subscribers.add_argument("--ref", default=None, help="Referral scope (default: REFERRAL_CODE)")
    subscribers.set_defaults(func=cmd_subscribers)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        config = CopierConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    configure_logging(config.log_level)
    return args.func(config, args)


if __name__ == "__main__":
    sys.exit(main())
