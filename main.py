#!/usr/bin/env python3
"""
Tenant Intelligence - Main Entry Point
======================================
Command-line interface for privacy-preserving conversion benchmarks and
tenant success prediction over a JSON data fixture.

Usage:
    python main.py --config configs/default.ini --data data.json insights --device mobile
    python main.py --config configs/default.ini --data data.json opportunities --tenant t1
    python main.py --config configs/default.ini --data data.json predict --profile profile.json
"""

import argparse
import json
import logging
import logging.handlers
import sys
import os
from datetime import datetime
from typing import Optional

from core.config import Config
from core.errors import IntelligenceError
from core.hub import IntelligenceHub
from queries.memory import InMemoryDataStore
from schema.profile import TenantProfile
from schema.segment import SegmentDescriptor


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    log_dir: str = "logs"
) -> logging.Logger:
    """
    Set up logging with console and optional file output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file name. If None, auto-generated.
        log_dir: Directory for log files

    Returns:
        Configured logger instance
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper()))

    # Console handler (stderr keeps stdout for JSON results)
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, log_level.upper()))
    console_format = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%H:%M:%S'
    )
    console_handler.setFormatter(console_format)
    root.addHandler(console_handler)

    logger = logging.getLogger("tenant_intelligence")

    # File handler (rotating)
    if log_file or log_dir:
        os.makedirs(log_dir, exist_ok=True)
        if log_file is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_file = f"tenant_intelligence_{timestamp}.log"

        log_path = os.path.join(log_dir, log_file)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_format = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s'
        )
        file_handler.setFormatter(file_format)
        root.addHandler(file_handler)
        logger.info(f"Logging to file: {log_path}")

    return logger


def _add_segment_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--page", dest="page_type", default=None, help="Page type (e.g., product)")
    parser.add_argument("--source", dest="traffic_source", default=None, help="Traffic source (e.g., social)")
    parser.add_argument("--device", dest="device_type", default=None, help="Device type (e.g., mobile)")
    parser.add_argument("--category", default=None, help="Tenant category (e.g., tech)")
    parser.add_argument("--segment", default=None,
                        help="Canonical segment key, e.g. 'device:mobile|page:product'")


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Tenant Intelligence - privacy-preserving benchmarks and success prediction",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Release a benchmark for mobile product pages
    python main.py -c configs/default.ini -d data.json insights --device mobile --page product

    # Optimization opportunities for one tenant over 60 days
    python main.py -c configs/default.ini -d data.json opportunities --tenant t1 --window 60

    # Export benchmark history as CSV
    python main.py -c configs/default.ini -d data.json history --segment general -o history.csv
        """
    )

    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to configuration INI file (defaults are used when omitted)"
    )

    parser.add_argument(
        "--data", "-d",
        required=True,
        help="Path to JSON data fixture"
    )

    # Logging options
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-dir",
        type=str,
        default="logs",
        help="Directory for log files (default: logs/)"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    insights = sub.add_parser("insights", help="Release a conversion benchmark for a segment")
    _add_segment_args(insights)
    insights.add_argument("--window", type=int, default=None, help="Window in days")

    opportunities = sub.add_parser("opportunities", help="Optimization opportunities for a tenant")
    opportunities.add_argument("--tenant", required=True, help="Tenant id")
    opportunities.add_argument("--window", type=int, default=None, help="Window in days")

    predict = sub.add_parser("predict", help="Predict success for a candidate profile")
    predict.add_argument("--profile", required=True, help="Path to candidate profile JSON")

    sub.add_parser("train", help="Train the configured backend")
    sub.add_parser("budget", help="Show privacy budget ledger status")

    history = sub.add_parser("history", help="Export benchmark history as CSV")
    _add_segment_args(history)
    history.add_argument("--limit", type=int, default=None, help="Maximum rows")
    history.add_argument("--output", "-o", default=None, help="CSV output path (stdout when omitted)")

    return parser.parse_args(argv)


def segment_from_args(args: argparse.Namespace) -> SegmentDescriptor:
    if args.segment:
        return SegmentDescriptor.parse(args.segment)
    return SegmentDescriptor(
        page_type=args.page_type,
        traffic_source=args.traffic_source,
        device_type=args.device_type,
        category=args.category,
    )


def print_config_summary(config: Config, logger: logging.Logger):
    """Print configuration summary."""
    logger.info("=" * 60)
    logger.info("Configuration Summary")
    logger.info("=" * 60)
    logger.info(f"Noise level (epsilon):    {config.privacy.noise_level}")
    logger.info(f"Reserve threshold:        {config.privacy.reserve_threshold}")
    logger.info(f"Participant floor:        {config.privacy.min_participants}")
    logger.info(f"Min data points:          {config.aggregation.min_data_points}")
    logger.info(f"Default window:           {config.aggregation.default_window_days} days")
    logger.info(f"Prediction backend:       {config.prediction.backend}")
    logger.info(f"Request timeout:          {config.runtime.request_timeout_seconds}s")
    logger.info("=" * 60)


def run_command(hub: IntelligenceHub, args: argparse.Namespace):
    """Dispatch a subcommand. Returns a JSON-serializable result or None."""
    if args.command == "insights":
        return hub.get_conversion_insights(segment_from_args(args), args.window).to_dict()

    if args.command == "opportunities":
        return [o.to_dict() for o in hub.get_optimization_opportunities(args.tenant, args.window)]

    if args.command == "predict":
        with open(args.profile, 'r', encoding='utf-8') as f:
            profile = TenantProfile.from_dict(json.load(f))
        return hub.predict_site_success(profile).to_dict()

    if args.command == "train":
        return hub.train_models().to_dict()

    if args.command == "budget":
        print(hub.ledger.summary(), file=sys.stderr)
        return hub.privacy_budget_status()

    if args.command == "history":
        df = hub.store.history_frame(segment_from_args(args).canonical_key(), args.limit)
        if args.output:
            df.to_csv(args.output, index=False)
        else:
            df.to_csv(sys.stdout, index=False)
        return None

    raise ValueError(f"Unknown command: {args.command}")


def main(argv=None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    args = parse_args(argv)

    logger = setup_logging(
        log_level=args.log_level,
        log_dir=args.log_dir
    )

    try:
        if args.config:
            logger.info(f"Loading configuration from: {args.config}")
            config = Config.from_ini(args.config)
        else:
            config = Config()

        logger.info("Validating configuration...")
        config.validate()
        print_config_summary(config, logger)

        store = InMemoryDataStore.from_json(args.data)

        with IntelligenceHub.from_config(config, store) as hub:
            result = run_command(hub, args)

        if result is not None:
            print(json.dumps(result, indent=2, default=str))
        return 0

    except IntelligenceError as e:
        logger.error(f"{e.code}: {e.message}")
        print(json.dumps(e.to_dict(), indent=2, default=str))
        return 1
    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
