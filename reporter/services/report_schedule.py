from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class ReportSchedule:
    """
    Interval bookkeeping for one report kind.

    A failed delivery leaves last_sent untouched (unless advance_on_failure),
    so the report goes out on a later tick once retry_seconds have passed.
    """

    kind: str
    interval_seconds: int
    retry_seconds: int = 60
    advance_on_failure: bool = False
    last_sent: float = 0.0
    last_attempt: Optional[float] = None
    sent_count: int = 0
    failed_count: int = 0

    @property
    def enabled(self) -> bool:
        return self.interval_seconds > 0

    def reset(self, now: float) -> None:
        self.last_sent = now
        self.last_attempt = None

    def due(self, now: float) -> bool:
        if not self.enabled:
            return False
        if now - self.last_sent < self.interval_seconds:
            return False
        if self.last_attempt is not None and self.last_attempt > self.last_sent:
            return now - self.last_attempt >= self.retry_seconds
        return True

    def record(self, now: float, delivered: bool) -> None:
        self.last_attempt = now
        if delivered:
            self.sent_count += 1
            self.last_sent = now
            return
        self.failed_count += 1
        if self.advance_on_failure:
            self.last_sent = now
