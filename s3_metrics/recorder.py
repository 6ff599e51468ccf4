"""
Bucket metrics recorder.

Each run fetches the daily size and object-count series for the configured
bucket, records every datapoint into the store and replaces the bucket's
summary. Failures are logged and never propagate to the caller.
"""

import logging
import signal
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from .config import Settings
from .errors import MetricsError, ConfigurationMissing, TransportFailure
from .models import (
    BucketSummary, BucketTarget, Heartbeat, MetricsRequested, Provider, RecorderConfig,
    BYTES_METRIC, OBJECTS_METRIC, SAMPLE_BYTES, SAMPLE_OBJECTS, SUMMARY_TYPE,
)
from .normalizer import normalize, reduce, Series
from .sources import ClientFactory, CloudWatchSource, ListingSource, TRANSPORT_ERRORS
from .storage import Storage
from .trigger import should_run


def build_summary(target: BucketTarget, bytes_series: Series, objects_series: Series) -> BucketSummary:
    """Assemble a summary from the two normalized series."""
    size_current, size_peak = reduce(bytes_series)
    objects_current, objects_peak = reduce(objects_series)

    return BucketSummary(
        name=target.bucket,
        provider=target.provider.label,
        storage_class=target.storage_class,
        size_current=int(size_current),
        size_peak=int(size_peak),
        objects_current=int(objects_current),
        objects_peak=int(objects_peak),
    )


def seconds_to_next_minute(now: datetime) -> float:
    """Seconds from `now` until the start of the next wall-clock minute."""
    return 60 - now.second - now.microsecond / 1_000_000


class RecorderState:
    """Shared state for the recorder with thread-safe counters."""

    def __init__(self):
        self.running = True
        self.stats = {
            'runs': 0,
            'skipped': 0,
            'failures': 0,
            'last_run_at': None,
            'last_slug': None,
        }
        self._lock = threading.Lock()
        self._in_flight: Dict[str, threading.Lock] = {}

    def stop(self):
        """Signal the heartbeat loop to stop."""
        self.running = False

    def is_running(self) -> bool:
        return self.running

    def slot(self, slug: str) -> threading.Lock:
        """Lock guarding runs for one slug."""
        with self._lock:
            return self._in_flight.setdefault(slug, threading.Lock())

    def record_run(self, slug: str, ok: bool):
        with self._lock:
            self.stats['runs'] += 1
            if not ok:
                self.stats['failures'] += 1
            self.stats['last_run_at'] = datetime.now(timezone.utc).isoformat()
            self.stats['last_slug'] = slug

    def increment_skipped(self):
        with self._lock:
            self.stats['skipped'] += 1

    def get_stats(self) -> dict:
        with self._lock:
            return self.stats.copy()


class Recorder:
    """
    Records bucket size and object-count metrics into the store.

    Invoke `record(trigger)` for every Heartbeat or MetricsRequested
    signal, or call `run_forever()` to drive it with a heartbeat loop.
    """

    def __init__(self, config: RecorderConfig,
                 settings: Settings = None,
                 storage: Storage = None,
                 client_factory: ClientFactory = None,
                 logger: logging.Logger = None,
                 clock: Callable[[], datetime] = None):
        self.config = config
        self.settings = settings or Settings.load(config.settings_path)
        self.storage = storage or Storage(config.db_path)
        self.client_factory = client_factory or ClientFactory(config)
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.state = RecorderState()

    def record(self, trigger) -> Optional[BucketSummary]:
        """
        Run one recording cycle if the trigger passes the gate.

        Returns the written summary, or None when gated out or failed.
        """
        if not should_run(trigger):
            return None

        provider = self.settings.provider
        self.logger.info("S3 metrics recorder called (provider=%s)", provider.value)

        try:
            target = self.settings.resolve_target(provider)
        except ConfigurationMissing as e:
            self.logger.error("S3 metrics configuration error: %s", e, extra=e.context)
            self.state.record_run(None, ok=False)
            return None

        slot = self.state.slot(target.slug)
        if not slot.acquire(blocking=False):
            self.logger.warning("Recording for %s already in progress, skipping", target.slug)
            self.state.increment_skipped()
            return None

        try:
            summary = self._record_target(target)
        except MetricsError as e:
            context = {'provider': target.provider.value, 'bucket': target.bucket,
                       'namespace': target.namespace}
            context.update(e.context)
            self.logger.error(
                "S3 metrics collection failed for %s (provider=%s, bucket=%s, namespace=%s): %s",
                target.slug, context['provider'], context['bucket'], context['namespace'], e,
                extra=context
            )
            self.state.record_run(target.slug, ok=False)
            return None
        except Exception:
            self.logger.exception(
                "Unexpected error recording S3 metrics (provider=%s, bucket=%s, namespace=%s)",
                target.provider.value, target.bucket, target.namespace
            )
            self.state.record_run(target.slug, ok=False)
            return None
        finally:
            slot.release()

        self.state.record_run(target.slug, ok=True)
        return summary

    def _source(self, target: BucketTarget):
        """Pick the metric source for a target."""
        try:
            if target.provider is Provider.OCI and target.listing_fallback:
                return ListingSource(self.client_factory.s3(target), target, clock=self.clock)

            return CloudWatchSource(
                self.client_factory.cloudwatch(target), target,
                lookback_days=self.config.lookback_days,
                period_seconds=self.config.period_seconds,
                clock=self.clock,
            )
        except TRANSPORT_ERRORS + (ValueError,) as e:
            # Invalid region names surface as ValueError
            raise TransportFailure(
                f"Cannot create client: {e}",
                provider=target.provider.value, bucket=target.bucket, namespace=target.namespace
            ) from e

    def _record_metric(self, source, target: BucketTarget, metric_name: str, sample_type: str) -> Series:
        series = normalize(source.fetch_series(metric_name))
        self.logger.info("Recording %d %s datapoints for %s", len(series), metric_name, target.slug)

        for timestamp, value in series.items():
            self.storage.record_sample(sample_type, target.slug, value, timestamp)

        return series

    def _record_target(self, target: BucketTarget) -> BucketSummary:
        source = self._source(target)

        bytes_series = self._record_metric(source, target, BYTES_METRIC, SAMPLE_BYTES)
        objects_series = self._record_metric(source, target, OBJECTS_METRIC, SAMPLE_OBJECTS)

        summary = build_summary(target, bytes_series, objects_series)
        self.storage.set_summary(SUMMARY_TYPE, target.slug, summary.to_json(),
                                 timestamp=int(self.clock().timestamp()))
        self.storage.commit()

        self.logger.info("S3 metrics recorded for %s", target.slug)
        return summary

    def _signal_handler(self, signum, frame):
        """Handle interrupt signals."""
        self.logger.warning("Shutdown signal received, stopping after current run...")
        self.state.stop()

    def run_forever(self, run_immediately: bool = False,
                    sleep: Callable[[float], None] = time.sleep):
        """
        Emit one heartbeat per wall-clock minute until stopped.

        Sleeps are measured against `clock` up to the next minute boundary.
        The gate lets heartbeats through at the top of the hour only; with
        `run_immediately` a manual run happens first.
        """
        if threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGINT, self._signal_handler)
            signal.signal(signal.SIGTERM, self._signal_handler)

        self.logger.info("Heartbeat loop started (provider=%s)", self.settings.provider.value)

        if run_immediately:
            self.record(MetricsRequested())

        last_minute = None
        while self.state.is_running():
            now = self.clock()
            minute = now.replace(second=0, microsecond=0)
            if minute != last_minute:
                last_minute = minute
                self.record(Heartbeat(time=now))

            # Sleep with interrupt check
            remaining = seconds_to_next_minute(self.clock())
            while remaining > 0 and self.state.is_running():
                step = min(1.0, remaining)
                sleep(step)
                remaining -= step

        stats = self.state.get_stats()
        self.logger.info("Heartbeat loop stopped: %d runs, %d failures, %d skipped",
                         stats['runs'], stats['failures'], stats['skipped'])

    def close(self):
        """Clean up resources."""
        if self.storage:
            self.storage.close()
