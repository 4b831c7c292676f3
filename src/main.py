# src/main.py - v1
"""CLI entry point: analyze, cleanup, stats, history, catalog commands.

Usage:
    medcache analyze NAME[:DOSAGE] [NAME[:DOSAGE] ...] [--patient REF] [--session ID]
    medcache cleanup
    medcache stats
    medcache history [--limit N]
    medcache catalog [--limit N]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from medcache.config.settings import Settings, load_settings
from medcache.logging.logger import get_logger, setup_logging
from medcache.version import __version__

logger = get_logger("cli")


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = load_settings()
    except Exception as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1

    _setup_logging(settings, args.verbose)

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="medcache",
        description=f"medcache v{__version__} - Medication interaction analysis cache",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- analyze ---
    p_analyze = subparsers.add_parser(
        "analyze", help="Analyze interactions for a medication combination",
    )
    p_analyze.add_argument(
        "medications", nargs="+", metavar="NAME[:DOSAGE]",
        help='Medications, e.g. "Sinvastatina:40mg" "Ciprofibrato:100mg"',
    )
    p_analyze.add_argument(
        "--patient", default=None, help="Patient reference for the history record",
    )
    p_analyze.add_argument(
        "--session", default=None, help="Session id (generated if omitted)",
    )
    p_analyze.set_defaults(func=_cmd_analyze)

    # --- cleanup ---
    p_cleanup = subparsers.add_parser(
        "cleanup", help="Delete cache entries older than CACHE_TTL_DAYS",
    )
    p_cleanup.set_defaults(func=_cmd_cleanup)

    # --- stats ---
    p_stats = subparsers.add_parser("stats", help="Show cache statistics")
    p_stats.set_defaults(func=_cmd_stats)

    # --- history ---
    p_history = subparsers.add_parser("history", help="Show recent consultations")
    p_history.add_argument(
        "--limit", type=int, default=20, help="Maximum records (default: 20)",
    )
    p_history.set_defaults(func=_cmd_history)

    # --- catalog ---
    p_catalog = subparsers.add_parser(
        "catalog", help="Show the most consulted medications",
    )
    p_catalog.add_argument(
        "--limit", type=int, default=20, help="Maximum entries (default: 20)",
    )
    p_catalog.set_defaults(func=_cmd_catalog)

    return parser


async def _cmd_analyze(args: argparse.Namespace, settings: Settings) -> int:
    """Analyze one medication combination."""
    from medcache.core.errors import InvalidInputError, ProviderFailureError
    from medcache.core.models import MedicationRef
    from medcache.service.factory import build_service

    medications = [MedicationRef.parse(text) for text in args.medications]
    service = build_service(settings)
    try:
        outcome = await service.get_or_compute(
            medications, patient_ref=args.patient, session_id=args.session,
        )
    except InvalidInputError as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        return 1
    except ProviderFailureError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    finally:
        await service.wait_for_background_tasks()
        service.close()

    if outcome.served_from == "cache":
        origin = f"cache ({outcome.age_in_days} days old)"
    else:
        origin = "api"
    print(f"Served from:    {origin}")
    if outcome.consultation_count is not None:
        print(f"Consultations:  {outcome.consultation_count}")
    print(f"Fingerprint:    {outcome.fingerprint[:16]}")
    print()
    print(outcome.analysis_text)
    return 0


async def _cmd_cleanup(args: argparse.Namespace, settings: Settings) -> int:
    """Remove expired cache entries."""
    from medcache.service.factory import build_service

    service = build_service(settings)
    try:
        removed = await service.cleanup_expired()
    finally:
        service.close()
    print(f"Removed {removed} expired cache entries")
    return 0


async def _cmd_stats(args: argparse.Namespace, settings: Settings) -> int:
    """Display cache statistics."""
    from medcache.service.factory import build_service

    service = build_service(settings)
    try:
        stats = await service.get_stats()
    finally:
        service.close()

    print("\nCache statistics:")
    print(f"  Combinations:    {stats.total_combinations}")
    print(f"  Consultations:   {stats.total_consultations}")
    print(f"  Avg per combo:   {stats.average_consultations_per_combination:.2f}")
    print(f"  Hit rate:        {stats.cache_hit_rate:.1f}%")
    print(f"  Tokens saved:    {stats.total_tokens_saved}")
    if stats.top_combinations:
        print("  Top combinations:")
        for top in stats.top_combinations:
            names = " + ".join(m.label for m in top.medications)
            print(f"    {top.consultation_count:>5}  {names}")
    return 0


async def _cmd_history(args: argparse.Namespace, settings: Settings) -> int:
    """Display recent consultation history."""
    from medcache.history.history_factory import create_history_store

    store = create_history_store(settings)
    try:
        records = await store.list_records(limit=args.limit)
    finally:
        store.close()

    if not records:
        print("No consultations recorded")
        return 0
    for record in records:
        patient = record.patient_ref or "-"
        print(
            f"{record.created_at:%Y-%m-%d %H:%M:%S}  {record.source:<5}  "
            f"{record.combination_id}  session={record.session_id[:8]}  patient={patient}"
        )
    return 0


async def _cmd_catalog(args: argparse.Namespace, settings: Settings) -> int:
    """Display the medication catalog, most consulted first."""
    from medcache.catalog.catalog_factory import create_catalog_store

    store = create_catalog_store(settings)
    try:
        entries = await store.list_entries(limit=args.limit)
    finally:
        store.close()

    if not entries:
        print("Catalog is empty")
        return 0
    for entry in entries:
        klass = entry.attributes.therapeutic_class or "-"
        print(
            f"{entry.consultation_count:>5}  {entry.display_name:<30}  "
            f"{entry.dosage or '-':<10}  {klass}"
        )
    return 0


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


if __name__ == "__main__":
    sys.exit(main())
