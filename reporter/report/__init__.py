from .buckets import CalendarBucket, bucket_for, bucketize, latest, total_bucket
from .composer import ReportComposer, ReportKind, escape_md

__all__ = [
    "CalendarBucket",
    "bucket_for",
    "bucketize",
    "latest",
    "total_bucket",
    "ReportComposer",
    "ReportKind",
    "escape_md",
]
