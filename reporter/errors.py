from __future__ import annotations


class ReporterError(Exception):
    """Base class for reporter failures."""


class PlatformUnavailableError(ReporterError):
    """The trading terminal (or its mirror) cannot be reached."""


class HistoryUnavailableError(ReporterError):
    """The deal history could not be loaded; the previous ledger stays in place."""


class ConfigError(ReporterError):
    pass
