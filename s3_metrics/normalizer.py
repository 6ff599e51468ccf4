"""
Series normalization and reduction.

A series is a dict of unix timestamp -> value in ascending timestamp order.
"""

from datetime import datetime, timezone
from typing import Dict, Iterable, Optional, Tuple, Union, Any

from .models import Datapoint


Series = Dict[int, Optional[float]]


def _to_unix(value: Any) -> int:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp())
    return int(value)


def _unpack(point: Union[Datapoint, Dict[str, Any]]) -> Tuple[int, Optional[float]]:
    if isinstance(point, Datapoint):
        return point.timestamp, point.value
    # Raw CloudWatch datapoint
    return _to_unix(point['Timestamp']), point.get('Average')


def normalize(datapoints: Iterable[Union[Datapoint, Dict[str, Any]]]) -> Series:
    """
    Map each datapoint's timestamp to its value, sorted ascending.

    Duplicate timestamps collapse to the last value seen.
    """
    collected: Series = {}
    for point in datapoints:
        timestamp, value = _unpack(point)
        collected[timestamp] = value
    return {ts: collected[ts] for ts in sorted(collected)}


def reduce(series: Series) -> Tuple[float, float]:
    """
    Reduce a series to (current, peak).

    current is the last truthy value, so zero/None gaps at the end are
    skipped; peak is the maximum value. Both default to 0.
    """
    values = [v for v in series.values() if v is not None]
    peak = max(values) if values else 0

    current = 0
    for value in values:
        if value:
            current = value

    return current, peak

