"""
Metric sources: CloudWatch-compatible metrics APIs and bucket listing.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple, Callable

import boto3
import botocore.config
import botocore.exceptions

from .errors import TransportFailure
from .models import (
    BucketTarget, Datapoint, RecorderConfig,
    BYTES_METRIC, OBJECTS_METRIC, ALL_STORAGE_TYPES,
)


logger = logging.getLogger(__name__)

# Listing only looks at the first page, so results are approximate
LISTING_MAX_KEYS = 1000

TRANSPORT_ERRORS = (
    botocore.exceptions.BotoCoreError,
    botocore.exceptions.ClientError,
)


def lookback_window(now: datetime, days: int = 14) -> Tuple[datetime, datetime]:
    """(midnight UTC `days` days ago, next midnight UTC)."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    midnight = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight - timedelta(days=days), midnight + timedelta(days=1)


class ClientFactory:
    """Builds boto3 clients for a resolved bucket target."""

    def __init__(self, config: RecorderConfig = None):
        self.config = config or RecorderConfig()

    def _botocore_config(self, **extra) -> botocore.config.Config:
        return botocore.config.Config(
            connect_timeout=self.config.connect_timeout,
            read_timeout=self.config.read_timeout,
            retries={'max_attempts': self.config.max_attempts, 'mode': 'standard'},
            **extra
        )

    def _session(self, target: BucketTarget) -> boto3.session.Session:
        # Missing key/secret falls through to boto3's default credential chain
        return boto3.session.Session(
            aws_access_key_id=target.key,
            aws_secret_access_key=target.secret,
            region_name=target.region,
        )

    def cloudwatch(self, target: BucketTarget):
        return self._session(target).client(
            'cloudwatch',
            endpoint_url=target.endpoint,
            config=self._botocore_config(),
        )

    def s3(self, target: BucketTarget):
        return self._session(target).client(
            's3',
            endpoint_url=target.listing_endpoint,
            config=self._botocore_config(s3={'addressing_style': 'path'}),
        )


class CloudWatchSource:
    """Fetches daily bucket metrics via GetMetricStatistics."""

    def __init__(self, client, target: BucketTarget,
                 lookback_days: int = 14, period_seconds: int = 86400,
                 clock: Callable[[], datetime] = None):
        self.client = client
        self.target = target
        self.lookback_days = lookback_days
        self.period_seconds = period_seconds
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _dimensions(self, metric_name: str) -> List[dict]:
        storage_type = self.target.storage_class
        if metric_name == OBJECTS_METRIC:
            storage_type = ALL_STORAGE_TYPES

        return [
            {'Name': 'BucketName', 'Value': self.target.bucket},
            {'Name': 'StorageType', 'Value': storage_type},
        ]

    def fetch_series(self, metric_name: str) -> List[Datapoint]:
        """
        Get the daily averages of `metric_name` over the lookback window.

        Raises TransportFailure on any API or network error.
        """
        start_time, end_time = lookback_window(self.clock(), self.lookback_days)

        try:
            result = self.client.get_metric_statistics(
                Namespace=self.target.namespace,
                MetricName=metric_name,
                Dimensions=self._dimensions(metric_name),
                StartTime=start_time,
                EndTime=end_time,
                Period=self.period_seconds,
                Statistics=['Average'],
            )
        except TRANSPORT_ERRORS as e:
            raise TransportFailure(
                f"{metric_name} request failed: {e}",
                provider=self.target.provider.value,
                bucket=self.target.bucket,
                namespace=self.target.namespace,
            ) from e

        datapoints = []
        for raw in result.get('Datapoints', []):
            timestamp = raw['Timestamp']
            if timestamp.tzinfo is None:
                timestamp = timestamp.replace(tzinfo=timezone.utc)
            datapoints.append(Datapoint(
                timestamp=int(timestamp.timestamp()),
                value=raw.get('Average'),
            ))

        logger.debug("Fetched %d %s datapoints for %s", len(datapoints), metric_name, self.target.slug)
        return datapoints


class ListingSource:
    """
    Approximates bucket size and object count by listing objects.

    Only the first page (up to 1000 objects) is read; each metric comes back
    as a single datapoint stamped with the current time.
    """

    def __init__(self, client, target: BucketTarget,
                 clock: Callable[[], datetime] = None):
        self.client = client
        self.target = target
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._totals: Optional[Tuple[int, int]] = None

    def _list_totals(self) -> Tuple[int, int]:
        if self._totals is not None:
            return self._totals

        try:
            page = self.client.list_objects_v2(Bucket=self.target.bucket, MaxKeys=LISTING_MAX_KEYS)
        except TRANSPORT_ERRORS as e:
            raise TransportFailure(
                f"Listing bucket failed: {e}",
                provider=self.target.provider.value,
                bucket=self.target.bucket,
                namespace=self.target.namespace,
            ) from e

        total_size = 0
        total_objects = 0
        for obj in page.get('Contents', []):
            total_size += int(obj.get('Size', 0) or 0)
            total_objects += 1

        if page.get('IsTruncated'):
            logger.warning("Bucket %s has more than %d objects, listing totals are partial",
                           self.target.bucket, LISTING_MAX_KEYS)

        self._totals = (total_size, total_objects)
        return self._totals

    def fetch_series(self, metric_name: str) -> List[Datapoint]:
        total_size, total_objects = self._list_totals()
        value = total_size if metric_name == BYTES_METRIC else total_objects
        return [Datapoint(timestamp=int(self.clock().timestamp()), value=float(value))]
