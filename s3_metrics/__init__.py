"""
S3 Bucket Metrics

Records per-bucket size and object-count metrics from CloudWatch-compatible
APIs into a DuckDB metrics store.
"""

from .models import BucketSummary, Datapoint, Heartbeat, MetricsRequested, Provider, RecorderConfig
from .config import Settings
from .storage import Storage
from .recorder import Recorder
from .trigger import should_run

__version__ = "1.0.0"
__all__ = ['BucketSummary', 'Datapoint', 'Heartbeat', 'MetricsRequested', 'Provider',
           'RecorderConfig', 'Settings', 'Storage', 'Recorder', 'should_run']
