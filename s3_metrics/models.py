"""
Data models for bucket metrics.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional

from .errors import SerializationFailure


BYTES_METRIC = "BucketSizeBytes"
OBJECTS_METRIC = "NumberOfObjects"

# Object counts are only published for the aggregate storage type
ALL_STORAGE_TYPES = "AllStorageTypes"

# Store types
SAMPLE_BYTES = "s3_bytes"
SAMPLE_OBJECTS = "s3_objects"
SUMMARY_TYPE = "s3_bucket"


class Provider(Enum):
    AWS = "aws"
    OCI = "oci"

    @property
    def label(self) -> str:
        return self.name

    @classmethod
    def parse(cls, value: Optional[str]) -> "Provider":
        """Map a configured selector onto a provider; anything but 'oci' is AWS."""
        if value and str(value).strip().lower() == cls.OCI.value:
            return cls.OCI
        return cls.AWS


@dataclass(frozen=True)
class Datapoint:
    """One averaged sample returned by a metrics API."""
    timestamp: int
    value: Optional[float]


@dataclass(frozen=True)
class Heartbeat:
    """Periodic tick carrying wall-clock time."""
    time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class MetricsRequested:
    """On-demand refresh request."""


@dataclass
class BucketTarget:
    """Resolved connection and bucket parameters for one provider."""
    provider: Provider
    bucket: str
    storage_class: str
    namespace: str
    region: Optional[str] = None
    key: Optional[str] = None
    secret: Optional[str] = None
    endpoint: Optional[str] = None
    listing_endpoint: Optional[str] = None
    listing_fallback: bool = False

    @property
    def slug(self) -> str:
        return make_slug(self.provider, self.bucket, self.storage_class)


def make_slug(provider: Provider, bucket: str, storage_class: str) -> str:
    """Storage key for a bucket: '{provider}.{bucket}.{storage_class}'."""
    return f"{provider.value}.{bucket}.{storage_class}"


@dataclass
class BucketSummary:
    """Latest known state of one bucket."""
    name: str
    provider: str
    storage_class: str
    size_current: int = 0
    size_peak: int = 0
    objects_current: int = 0
    objects_peak: int = 0

    def to_dict(self) -> Dict[str, Any]:
        # Key order is part of the stored format
        return {
            'name': self.name,
            'provider': self.provider,
            'storage_class': self.storage_class,
            'size_current': self.size_current,
            'size_peak': self.size_peak,
            'objects_current': self.objects_current,
            'objects_peak': self.objects_peak,
        }

    def to_json(self) -> str:
        try:
            return json.dumps(self.to_dict(), separators=(',', ':'), allow_nan=False)
        except (TypeError, ValueError) as e:
            raise SerializationFailure(
                f"Cannot serialize summary for bucket {self.name}: {e}",
                bucket=self.name, provider=self.provider
            ) from e

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BucketSummary":
        return cls(
            name=data.get('name', ''),
            provider=data.get('provider', ''),
            storage_class=data.get('storage_class', ''),
            size_current=int(data.get('size_current', 0) or 0),
            size_peak=int(data.get('size_peak', 0) or 0),
            objects_current=int(data.get('objects_current', 0) or 0),
            objects_peak=int(data.get('objects_peak', 0) or 0),
        )

    @classmethod
    def from_json(cls, raw: str) -> "BucketSummary":
        return cls.from_dict(json.loads(raw))


@dataclass
class RecorderConfig:
    """Configuration for the recorder."""
    db_path: str = "s3_metrics.duckdb"
    settings_path: Optional[str] = None

    # Metrics API window
    lookback_days: int = 14
    period_seconds: int = 86400

    # Transport
    connect_timeout: int = 10
    read_timeout: int = 30
    max_attempts: int = 3

    def __post_init__(self):
        # Ensure reasonable bounds
        self.max_attempts = max(1, self.max_attempts)
        self.lookback_days = max(1, self.lookback_days)
