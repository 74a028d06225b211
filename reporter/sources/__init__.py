from .base import PlatformSource, build_source
from .mt5_source import Mt5Source
from .sqlite_source import SqliteHistorySource

__all__ = [
    "PlatformSource",
    "build_source",
    "Mt5Source",
    "SqliteHistorySource",
]
