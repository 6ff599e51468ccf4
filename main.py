#!/usr/bin/env python3
"""
S3 Bucket Metrics - Main entry point.

Usage:
    python main.py --config settings.json record
    python main.py --config settings.json run
    python main.py --db s3_metrics.duckdb status
    python main.py --db s3_metrics.duckdb bucket aws.my-bucket.StandardStorage
"""

from s3_metrics.cli import main

if __name__ == '__main__':
    main()
