"""
Command line interface for the S3 bucket metrics recorder.
"""

import argparse
import json
import logging
import sys
from datetime import datetime, timezone

from rich.console import Console
from rich.table import Table

from .config import Settings
from .errors import ConfigurationMissing
from .models import BucketSummary, MetricsRequested, RecorderConfig, SAMPLE_BYTES, SAMPLE_OBJECTS, SUMMARY_TYPE
from .recorder import Recorder
from .storage import Storage, PERIODS


def format_bytes(b) -> str:
    """Format bytes to human readable."""
    if b is None:
        return "0 B"
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if abs(b) < 1024:
            return f"{b:.1f} {unit}"
        b /= 1024
    return f"{b:.1f} PB"


def format_timestamp(ts) -> str:
    if not ts:
        return "N/A"
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime('%Y-%m-%d %H:%M')


def _load_settings(args) -> Settings:
    try:
        return Settings.load(args.config)
    except (OSError, ValueError, ConfigurationMissing) as e:
        print(f"ERROR: Cannot load settings from {args.config}: {e}", file=sys.stderr)
        sys.exit(1)


def _make_recorder(args) -> Recorder:
    config = RecorderConfig(
        db_path=args.db,
        settings_path=args.config,
        connect_timeout=args.connect_timeout,
        read_timeout=args.read_timeout,
        max_attempts=args.max_attempts,
    )
    return Recorder(config, settings=_load_settings(args))


def cmd_record(args):
    """Run a single on-demand recording."""
    recorder = _make_recorder(args)

    try:
        summary = recorder.record(MetricsRequested())
    finally:
        recorder.close()

    if summary is None:
        print("Recording failed, see log for details", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(summary.to_dict(), indent=2))


def cmd_run(args):
    """Run the heartbeat loop until interrupted."""
    recorder = _make_recorder(args)

    try:
        recorder.run_forever(run_immediately=args.now)
    finally:
        recorder.close()


def cmd_status(args):
    """Show stored bucket summaries."""
    storage = Storage(args.db)
    console = Console()

    try:
        rows = storage.get_summaries(SUMMARY_TYPE)

        if not rows:
            console.print("No bucket summaries recorded yet.")
            return

        table = Table(title="S3 Bucket Metrics")
        table.add_column("Bucket", style="cyan", max_width=40)
        table.add_column("Provider", style="blue")
        table.add_column("Class", style="blue")
        table.add_column("Size", justify="right", style="yellow")
        table.add_column("Peak size", justify="right")
        table.add_column("Objects", justify="right", style="green")
        table.add_column("Peak objects", justify="right")
        table.add_column("Updated", justify="right", style="magenta")

        for row in rows:
            summary = BucketSummary.from_json(row['value'])
            table.add_row(
                summary.name[:40],
                summary.provider,
                summary.storage_class,
                format_bytes(summary.size_current),
                format_bytes(summary.size_peak),
                f"{summary.objects_current:,}",
                f"{summary.objects_peak:,}",
                format_timestamp(row['updated_at'])
            )

        console.print()
        console.print(table)
        console.print()

    finally:
        storage.close()


def cmd_bucket(args):
    """Show one bucket summary with its aggregated series."""
    storage = Storage(args.db)
    console = Console()

    try:
        raw = storage.get_summary(SUMMARY_TYPE, args.slug)
        if raw is None:
            print(f"Bucket '{args.slug}' not found in database")
            return

        summary = BucketSummary.from_json(raw)
        console.print(f"\nBucket: [bold]{summary.name}[/bold] ({summary.provider}, {summary.storage_class})")
        console.print("-" * 50)
        console.print(f"  Size:         {format_bytes(summary.size_current)} (peak {format_bytes(summary.size_peak)})")
        console.print(f"  Objects:      {summary.objects_current:,} (peak {summary.objects_peak:,})")

        sizes = {r['bucket']: r['value'] for r in storage.get_aggregates(SAMPLE_BYTES, args.slug, args.period)}
        objects = {r['bucket']: r['value'] for r in storage.get_aggregates(SAMPLE_OBJECTS, args.slug, args.period)}

        table = Table(title=f"History ({args.period} min buckets)")
        table.add_column("Bucket start", style="cyan")
        table.add_column("Size", justify="right", style="yellow")
        table.add_column("Objects", justify="right", style="green")

        for start in sorted(set(sizes) | set(objects)):
            size = sizes.get(start)
            count = objects.get(start)
            table.add_row(
                format_timestamp(start),
                format_bytes(size) if size is not None else "-",
                f"{int(count):,}" if count is not None else "-"
            )

        console.print(table)

    finally:
        storage.close()


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='S3 Bucket Metrics Recorder',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Record metrics once (manual trigger)
  %(prog)s --config settings.json record

  # Heartbeat loop, records at the top of every hour
  %(prog)s --config settings.json run

  # Heartbeat loop with an immediate first run
  %(prog)s --config settings.json run --now

  # Show stored summaries
  %(prog)s --db s3_metrics.duckdb status

  # Show one bucket with daily history
  %(prog)s bucket aws.my-bucket.StandardStorage --period 1440
        """
    )

    parser.add_argument('--db', default='s3_metrics.duckdb',
                        help='Database path (default: s3_metrics.duckdb)')
    parser.add_argument('--config',
                        help='Settings JSON file (default: environment only)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose logging')

    subparsers = parser.add_subparsers(dest='command', help='Command')

    def add_transport_args(p):
        p.add_argument('--connect-timeout', type=int, default=10,
                       help='Connect timeout seconds (default: 10)')
        p.add_argument('--read-timeout', type=int, default=30,
                       help='Read timeout seconds (default: 30)')
        p.add_argument('--max-attempts', type=int, default=3,
                       help='Transport attempts per API call (default: 3)')

    # Record
    record_p = subparsers.add_parser('record', help='Record metrics once')
    add_transport_args(record_p)
    record_p.set_defaults(func=cmd_record)

    # Run
    run_p = subparsers.add_parser('run', help='Run the heartbeat loop')
    run_p.add_argument('--now', action='store_true',
                       help='Record once immediately before the first heartbeat')
    add_transport_args(run_p)
    run_p.set_defaults(func=cmd_run)

    # Status
    status_p = subparsers.add_parser('status', help='Show stored bucket summaries')
    status_p.set_defaults(func=cmd_status)

    # Bucket
    bucket_p = subparsers.add_parser('bucket', help='Show one bucket and its history')
    bucket_p.add_argument('slug', help='Bucket slug, e.g. aws.my-bucket.StandardStorage')
    bucket_p.add_argument('--period', type=int, default=1440, choices=PERIODS,
                          help='Aggregation period in minutes (default: 1440)')
    bucket_p.set_defaults(func=cmd_bucket)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )
    if not args.verbose:
        # boto3/botocore are noisy at INFO
        logging.getLogger('botocore').setLevel(logging.WARNING)
        logging.getLogger('boto3').setLevel(logging.WARNING)

    if not args.command:
        parser.print_help()
        return

    args.func(args)


if __name__ == '__main__':
    main()
