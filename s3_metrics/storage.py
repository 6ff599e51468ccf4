"""
DuckDB metrics store with max-per-bucket sample aggregation.
"""

import time
from typing import List, Optional, Dict, Any

try:
    import duckdb
except ImportError:
    raise ImportError("DuckDB required: pip install duckdb")


# Aggregation periods in minutes
PERIODS = (60, 360, 1440, 10080)


def bucket_start(timestamp: int, period_minutes: int) -> int:
    """Start of the period bucket containing `timestamp`."""
    period_seconds = period_minutes * 60
    return int(timestamp) - int(timestamp) % period_seconds


class Storage:
    """Metrics store: bucketed samples plus keyed JSON values."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.conn = duckdb.connect(db_path)
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        # Samples are only kept as per-period aggregates
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS metric_aggregates (
                type VARCHAR,
                key VARCHAR,
                period INTEGER,
                bucket BIGINT,
                value DOUBLE,
                PRIMARY KEY (type, key, period, bucket)
            )
        """)

        # Latest value per key, replaced wholesale
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS metric_values (
                type VARCHAR,
                key VARCHAR,
                value VARCHAR,
                updated_at BIGINT,
                PRIMARY KEY (type, key)
            )
        """)

        self.conn.commit()

    def record_sample(self, type: str, key: str, value: float, timestamp: int):
        """
        Record a sample into every period bucket, keeping the maximum.

        Re-recording the same or a smaller value for a bucket is a no-op.
        """
        value = float(value or 0)
        for period in PERIODS:
            self.conn.execute("""
                INSERT INTO metric_aggregates VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (type, key, period, bucket)
                DO UPDATE SET value = greatest(value, excluded.value)
            """, [type, key, period, bucket_start(timestamp, period), value])

    def set_summary(self, type: str, key: str, value: str, timestamp: int = None):
        """Insert or replace the value stored under (type, key)."""
        if timestamp is None:
            timestamp = int(time.time())
        self.conn.execute("""
            INSERT OR REPLACE INTO metric_values VALUES (?, ?, ?, ?)
        """, [type, key, value, timestamp])

    def get_summary(self, type: str, key: str) -> Optional[str]:
        """Get the raw stored value for a key."""
        result = self.conn.execute("""
            SELECT value FROM metric_values WHERE type = ? AND key = ?
        """, [type, key]).fetchone()
        return result[0] if result else None

    def get_summaries(self, type: str) -> List[Dict[str, Any]]:
        """All values of one type, ordered by key."""
        rows = self.conn.execute("""
            SELECT key, value, updated_at FROM metric_values
            WHERE type = ?
            ORDER BY key
        """, [type]).fetchall()
        return [{'key': r[0], 'value': r[1], 'updated_at': r[2]} for r in rows]

    def get_aggregates(self, type: str, key: str, period: int = 1440) -> List[Dict[str, Any]]:
        """Bucketed samples for a key, oldest first."""
        rows = self.conn.execute("""
            SELECT bucket, value FROM metric_aggregates
            WHERE type = ? AND key = ? AND period = ?
            ORDER BY bucket ASC
        """, [type, key, period]).fetchall()
        return [{'bucket': r[0], 'value': r[1]} for r in rows]

    def commit(self):
        """Commit transaction."""
        self.conn.commit()

    def close(self):
        """Close connection."""
        self.conn.close()
