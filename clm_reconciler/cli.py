"""Command-line interface for the CLM position reconciler."""
from __future__ import annotations

import argparse
import asyncio
import base64
import json
import logging
import sys
from pathlib import Path
from typing import Any

from .anomalies import summarize
from .config import AppConfig, load_config
from .logging_setup import configure_logging
from .models import CaptureSummary
from .parsers import canonical_to_dict, parse_capture, parse_observation
from .resolver import reconcile_all
from .services import EnrichmentService
from .storage import SqliteObservationStore
from .vision import AnthropicVisionExtractor

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="clm-reconciler",
        description="Reconcile scraped and vision-extracted CLM positions",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root, if present)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    analyze = sub.add_parser("analyze", help="Summarize a capture and flag anomalies")
    analyze.add_argument("capture", help="Path to a capture JSON file")

    recon = sub.add_parser("reconcile", help="Fold an observation history JSON file")
    recon.add_argument("history", help="Path to a JSON list of observations")

    ingest = sub.add_parser("ingest", help="Store a capture's positions")
    ingest.add_argument("capture", help="Path to a capture JSON file")

    enrich = sub.add_parser("enrich", help="Read a screenshot and attach its breakdown")
    enrich.add_argument("capture", help="Capture JSON the screenshot belongs to")
    enrich.add_argument("screenshot", help="Path to the PNG screenshot")

    rebuild = sub.add_parser("rebuild", help="Replay stored history into canonical rows")
    rebuild.add_argument("--protocol", default=None, help="Only this protocol")

    latest = sub.add_parser("latest", help="Show stored canonical positions")
    latest.add_argument("--protocol", default=None, help="Only this protocol")

    return parser


def _load_app_config(path: str | None) -> AppConfig:
    """Explicit paths must exist; the default config.yaml is optional."""
    try:
        return load_config(path)
    except FileNotFoundError:
        if path is not None:
            raise
        logger.debug("No config.yaml found, using defaults")
        return AppConfig()


def _read_json(path: str) -> Any:
    with open(path) as f:
        return json.load(f)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2))


def format_summary(summary: CaptureSummary) -> str:
    """Render a capture summary for the terminal."""
    lines = [
        "Capture Summary",
        "─" * 40,
        f"Protocol:   {summary.protocol}",
        f"Timestamp:  {summary.captured_at.isoformat() if summary.captured_at else '—'}",
        f"Positions:  {summary.total_positions} "
        f"(in-range: {summary.in_range}, out-of-range: {summary.out_of_range}, "
        f"unknown: {summary.range_unknown})",
        f"Total USD:  ${summary.total_value:,.2f}",
        f"Missing token breakdown: {summary.missing_breakdown}",
    ]
    if summary.top_positions:
        lines.append("")
        lines.append("Top Pairs:")
        for i, ranked in enumerate(summary.top_positions, start=1):
            lines.append(f" {i}. {ranked.pair} - ${ranked.balance:,.2f}")
    if summary.anomalies:
        lines.append("")
        lines.append("Anomalies:")
        lines.extend(f" - {a}" for a in summary.anomalies)
    return "\n".join(lines)


def _analyze(args: argparse.Namespace, config: AppConfig) -> int:
    capture = parse_capture(_read_json(args.capture))
    summary = summarize(capture, config.anomalies)
    print(format_summary(summary))
    return 1 if summary.anomalies else 0


def _reconcile(args: argparse.Namespace, config: AppConfig) -> int:
    raw = _read_json(args.history)
    if not isinstance(raw, list):
        raise ValueError("History file must contain a JSON list of observations")
    records = reconcile_all(
        [parse_observation(item) for item in raw],
        tolerance=config.reconcile.percentage_tolerance,
        aliases=config.reconcile.token_aliases,
    )
    _print_json([canonical_to_dict(r) for _, r in sorted(records.items())])
    return 0


def _open_store(config: AppConfig) -> SqliteObservationStore:
    return SqliteObservationStore(
        config.storage.database_path, aliases=config.reconcile.token_aliases
    )


def _ingest(args: argparse.Namespace, config: AppConfig) -> int:
    capture = parse_capture(_read_json(args.capture))
    with _open_store(config) as store:
        records = EnrichmentService(store, config=config).ingest_capture(capture)
    _print_json([canonical_to_dict(r) for r in records])
    return 0


async def _enrich(args: argparse.Namespace, config: AppConfig) -> int:
    if not config.vision.enabled:
        raise ValueError("Vision is disabled in configuration")
    capture = parse_capture(_read_json(args.capture))
    screenshot = base64.b64encode(Path(args.screenshot).read_bytes()).decode("ascii")

    with _open_store(config) as store:
        service = EnrichmentService(
            store, vision=AnthropicVisionExtractor(config.vision), config=config
        )
        record = await service.enrich(screenshot, capture.positions, capture.captured_at)

    if record is None:
        print("No breakdown applied")
        return 1
    _print_json(canonical_to_dict(record))
    return 0


def _rebuild(args: argparse.Namespace, config: AppConfig) -> int:
    with _open_store(config) as store:
        records = EnrichmentService(store, config=config).rebuild_all(args.protocol)
    _print_json([canonical_to_dict(r) for r in records])
    return 0


def _latest(args: argparse.Namespace, config: AppConfig) -> int:
    with _open_store(config) as store:
        records = store.list_canonical(args.protocol)
    _print_json([canonical_to_dict(r) for r in records])
    return 0


def run(args: argparse.Namespace) -> int:
    """Execute the selected command and return the exit code."""
    configure_logging(args.log_level)
    config = _load_app_config(args.config)

    if args.command == "analyze":
        return _analyze(args, config)
    if args.command == "reconcile":
        return _reconcile(args, config)
    if args.command == "ingest":
        return _ingest(args, config)
    if args.command == "enrich":
        return asyncio.run(_enrich(args, config))
    if args.command == "rebuild":
        return _rebuild(args, config)
    if args.command == "latest":
        return _latest(args, config)

    build_parser().print_help()
    return 1


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        sys.exit(run(args))
    except (FileNotFoundError, ValueError) as e:
        logger.error("%s", e)
        sys.exit(2)
