"""CLI entry point for s3verify."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from s3verify import fixtures, metrics
from s3verify.config import S3VerifyConfig, apply_env_overrides, load_config
from s3verify.errors import S3VerifyError
from s3verify.logging_config import configure_logging
from s3verify.suite import run_suite

DEFAULT_CONFIG = Path("s3verify.yaml")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="s3verify",
        description="s3verify - S3 API conformance tests for object storage servers",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Path to YAML configuration file (default: {DEFAULT_CONFIG} if present)",
    )
    parser.add_argument("--url", type=str, default=None, help="Endpoint URL (overrides config and S3_URL)")
    parser.add_argument("--access", type=str, default=None, help="Access key (overrides config and S3_ACCESS)")
    parser.add_argument("--secret", type=str, default=None, help="Secret key (overrides config and S3_SECRET)")
    parser.add_argument("--region", type=str, default=None, help="Region (overrides config and S3_REGION)")
    parser.add_argument(
        "--extended",
        action="store_true",
        default=None,
        help="Also run the extended tests",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=None,
        help="Trace every request and response",
    )
    parser.add_argument(
        "--prepare",
        action="store_true",
        help="Create a fixture bucket with test objects and print its name",
    )
    parser.add_argument(
        "--clean",
        type=str,
        default=None,
        metavar="BUCKET",
        help="Remove an s3verify-created bucket and its contents",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config, default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )
    parser.add_argument(
        "--metrics-file",
        type=str,
        default=None,
        help="Write Prometheus metrics to this text file after the run",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace, environ=None) -> S3VerifyConfig:
    """Load the config file, then layer environment and CLI overrides on top.

    Raises:
        FileNotFoundError: If an explicitly given config file is missing.
    """
    if args.config is not None:
        config = load_config(args.config)
    elif DEFAULT_CONFIG.exists():
        config = load_config(DEFAULT_CONFIG)
    else:
        config = S3VerifyConfig()

    config = apply_env_overrides(config, environ)

    if args.url is not None:
        config.server.endpoint = args.url
    if args.region is not None:
        config.server.region = args.region
    if args.access is not None:
        config.auth.access_key = args.access
    if args.secret is not None:
        config.auth.secret_key = args.secret
    if args.extended is not None:
        config.run.extended = args.extended
    if args.verbose is not None:
        config.run.verbose = args.verbose
    if args.log_level is not None:
        config.logging.level = args.log_level
    if args.log_format is not None:
        config.logging.format = args.log_format
    if args.metrics_file is not None:
        config.metrics.textfile = args.metrics_file
    return config


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the s3verify CLI.

    Runs the conformance suite, or prepares / cleans fixtures when asked.
    Exits non-zero when anything fails.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    args = parse_args(argv)

    # Use a basic stderr logger for config-loading errors
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    logger = logging.getLogger("s3verify")

    try:
        config = build_config(args)
    except FileNotFoundError:
        logger.error("Config file not found: %s", args.config)
        sys.exit(1)
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        sys.exit(1)

    configure_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        verbose=config.run.verbose,
    )
    metrics.init_metrics()

    if not config.auth.access_key or not config.auth.secret_key:
        logger.error("Missing credentials: set --access/--secret, S3_ACCESS/S3_SECRET or auth in config")
        sys.exit(1)

    try:
        if args.clean is not None:
            fixtures.clean(fixtures.new_s3_client(config.credentials()), args.clean)
            print(f"Removed {args.clean}")
            return
        if args.prepare:
            bucket = fixtures.prepare(
                fixtures.new_s3_client(config.credentials()),
                region=config.server.region,
                object_count=config.run.object_count,
            )
            print(bucket)
            return

        logger.info(
            "Running s3verify against %s (region=%s, extended=%s)",
            config.server.endpoint,
            config.server.region,
            config.run.extended,
        )
        summary = asyncio.run(run_suite(config))
    except S3VerifyError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    finally:
        if config.metrics.textfile:
            metrics.write_metrics(config.metrics.textfile)

    if not summary.ok:
        logger.error("s3verify failed: %s", summary.primary_failure)
        sys.exit(1)


if __name__ == "__main__":
    main()
