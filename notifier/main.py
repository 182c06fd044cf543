"""Command-line front door for the notification pipeline."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import json
import os
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Tuple

from notifier.config.environment import EnvironmentConfig
from notifier.config.exceptions import ConfigurationError
from notifier.config.loader import load_config
from notifier.config.models import AppConfig
from notifier.deadletter import DeadLetterClassifier
from notifier.ingress import HttpRequest, IngressAdapter, MalformedBatchError, SqsQueuePublisher
from notifier.logging import get_logger
from notifier.logging.config import configure_logging
from notifier.notifications import NotificationOrchestrator, SMTPClient
from notifier.persistence import DeliveryStateStore, close_database, init_database
from notifier.templates import (
    FileSystemTemplateSource,
    S3TemplateSource,
    TemplateResolver,
    TemplateSource,
    get_render_strategy,
)
from notifier.validation import SchemaValidator

logger = get_logger(__name__, component="cli")

# Commands that deliver mail and therefore need SMTP credentials
DELIVERY_COMMANDS = {"send", "batch", "bulk", "test-email"}


@dataclass
class Services:
    """Components wired for one CLI invocation."""

    validator: SchemaValidator
    store: DeliveryStateStore
    resolver: TemplateResolver
    orchestrator: Optional[NotificationOrchestrator] = None
    adapter: Optional[IngressAdapter] = None
    classifier: Optional[DeadLetterClassifier] = None


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and resolve the effective log level.

    Log level priority: CLI > environment > config file > INFO.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    return app_config, env_config


def build_template_source(env_config: EnvironmentConfig) -> TemplateSource:
    """Use the S3 bucket when TEMPLATE_BUCKET is set, else a local directory."""
    if env_config.template_bucket:
        return S3TemplateSource(env_config.template_bucket, region_name=env_config.aws_region)
    if env_config.template_dir:
        return FileSystemTemplateSource(Path(env_config.template_dir))
    return FileSystemTemplateSource()


def build_services(
    app_config: AppConfig,
    env_config: EnvironmentConfig,
    with_transport: bool = True,
    transport=None,
) -> Services:
    """
    Wire the pipeline components.

    Args:
        app_config: Application configuration
        env_config: Environment configuration
        with_transport: Build the orchestrator and adapter (requires SMTP credentials)
        transport: Mail transport to use instead of an SMTPClient

    Raises:
        ConfigurationError: If the transport is required but not configured
    """
    validator = SchemaValidator()
    store = DeliveryStateStore()
    source = build_template_source(env_config)
    resolver = TemplateResolver(
        source,
        render_strategy=get_render_strategy(app_config.templates.render_engine),
        freshness_window=app_config.templates.freshness_timedelta,
    )
    services = Services(
        validator=validator,
        store=store,
        resolver=resolver,
        classifier=DeadLetterClassifier(validator, store),
    )

    publisher = None
    if env_config.sqs_queue_url:
        publisher = SqsQueuePublisher(env_config.sqs_queue_url, region_name=env_config.aws_region)

    if not with_transport:
        # Enqueue only validates and publishes, so a transport-less adapter suffices
        services.adapter = IngressAdapter(validator, orchestrator=None, publisher=publisher)
        return services

    if transport is None:
        transport = SMTPClient(env_config, use_tls=app_config.delivery.use_tls)

    services.orchestrator = NotificationOrchestrator(
        resolver,
        store,
        transport,
        bulk_wave_size=app_config.delivery.bulk_wave_size,
        bulk_wave_pause=app_config.delivery.bulk_wave_pause_seconds,
    )
    services.adapter = IngressAdapter(
        validator,
        services.orchestrator,
        publisher=publisher,
        max_workers=app_config.delivery.max_workers,
    )

    logger.info(
        "Services initialized",
        extra={
            "event": "services.initialized",
            "template_source": source.describe(),
            "render_engine": app_config.templates.render_engine,
        },
    )
    return services


def _read_json(path: str) -> Any:
    """Read JSON from a file, or from stdin when path is '-'."""
    if path == "-":
        text = sys.stdin.read()
    else:
        text = Path(path).read_text(encoding="utf-8")
    return json.loads(text)


def _read_text(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="notifier",
        description="Notification pipeline - validate, render and deliver templated email notifications",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml if present)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    send = subparsers.add_parser("send", help="Validate and deliver one notification now")
    send.add_argument("input", help="JSON notification file, or '-' for stdin")

    enqueue = subparsers.add_parser("enqueue", help="Validate one notification and publish it to the queue")
    enqueue.add_argument("input", help="JSON notification file, or '-' for stdin")

    batch = subparsers.add_parser("batch", help="Process a queue batch event")
    batch.add_argument("input", help="JSON event file with a 'Records' list, or '-' for stdin")

    dead_letter = subparsers.add_parser("dead-letter", help="Classify a dead-letter batch event")
    dead_letter.add_argument("input", help="JSON event file with a 'Records' list, or '-' for stdin")

    bulk = subparsers.add_parser("bulk", help="Deliver a JSON list of notifications in waves")
    bulk.add_argument("input", help="JSON file holding a list of notifications, or '-' for stdin")

    history = subparsers.add_parser("history", help="Show a user's notification history")
    history.add_argument("user_id", help="User identifier")
    history.add_argument("--limit", type=int, default=50, help="Maximum records to show (default: 50)")

    test_email = subparsers.add_parser("test-email", help="Send a WELCOME notification to a test address")
    test_email.add_argument("email", help="Recipient email address")

    subparsers.add_parser("check-config", help="Validate configuration and exit")

    return parser


def run_command(args: argparse.Namespace, services: Services) -> int:
    """Execute one subcommand against wired services and return its exit code."""
    command = args.command

    if command == "send":
        response = services.adapter.handle_http_request(HttpRequest(method="POST", body=_read_text(args.input)))
        _print_json(response.to_dict())
        return 0 if response.status_code == 200 else 1

    if command == "enqueue":
        response = services.adapter.enqueue_http_request(HttpRequest(method="POST", body=_read_text(args.input)))
        _print_json(response.to_dict())
        return 0 if response.status_code == 200 else 1

    if command == "batch":
        try:
            summary = services.adapter.handle_queue_batch(_read_json(args.input))
        except MalformedBatchError as e:
            logger.error(f"Malformed queue batch: {e}", extra={"event": "cli.batch.malformed"})
            print(f"Malformed batch: {e}", file=sys.stderr)
            return 1
        _print_json(summary.to_dict())
        return 0 if summary.failed == 0 else 1

    if command == "dead-letter":
        _print_json(services.classifier.handle_batch(_read_json(args.input)))
        return 0

    if command == "bulk":
        return _run_bulk(args.input, services)

    if command == "history":
        records = services.store.query_history(args.user_id, limit=args.limit)
        _print_json([record.model_dump(mode="json", by_alias=True) for record in records])
        return 0

    if command == "test-email":
        notification_id = services.orchestrator.send_test_notification(args.email)
        _print_json({"success": True, "notificationId": notification_id})
        return 0

    raise ValueError(f"Unknown command: {command}")


def _run_bulk(path: str, services: Services) -> int:
    raw_items = _read_json(path)
    if not isinstance(raw_items, list):
        print("Bulk input must be a JSON list of notifications", file=sys.stderr)
        return 1

    envelopes = []
    rejected: List[dict] = []
    for index, raw in enumerate(raw_items):
        result = services.validator.validate_envelope(raw)
        if result.is_valid:
            envelopes.append(result.envelope)
        else:
            rejected.append({"index": index, "errors": result.errors})

    results = services.orchestrator.send_bulk(envelopes)
    _print_json({"results": [r.to_dict() for r in results], "rejected": rejected})
    return 0 if not rejected and all(r.success for r in results) else 1


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the notifier CLI.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        environment = os.environ.get("ENVIRONMENT", "local")
        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=environment,
        )

        logger.info(
            "Notification pipeline starting",
            extra={
                "event": "service.starting",
                "command": args.command,
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
            },
        )

        if args.command == "check-config":
            env_config.require_mail_credentials()
            print("Configuration OK")
            _print_json(
                {
                    "templates": app_config.templates.model_dump(),
                    "delivery": app_config.delivery.model_dump(),
                    "logging": app_config.logging.model_dump(),
                    "templateSource": build_template_source(env_config).describe(),
                    "mailCredentials": env_config.has_mail_credentials,
                    "queueConfigured": bool(env_config.sqs_queue_url),
                }
            )
            return 0

        init_database(
            env_config.database_url,
            notification_table=env_config.notification_table_name,
            error_table=env_config.error_table_name,
        )

        try:
            services = build_services(
                app_config, env_config, with_transport=args.command in DELIVERY_COMMANDS
            )
            return run_command(args, services)
        finally:
            close_database()
            logger.info(
                "Notification pipeline stopped",
                extra={
                    "event": "service.stopping",
                    "uptime_seconds": round(time.time() - start_time, 2),
                },
            )

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e.message}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except (OSError, ValueError) as e:
        print(f"Input error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            extra={
                "event": "service.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
