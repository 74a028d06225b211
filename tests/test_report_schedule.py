from reporter.services.report_schedule import ReportSchedule


def test_not_due_before_interval_elapses():
    s = ReportSchedule(kind="summary", interval_seconds=900)
    s.reset(1000.0)
    assert not s.due(1899.0)
    assert s.due(1900.0)


def test_zero_interval_disables_schedule():
    s = ReportSchedule(kind="detailed", interval_seconds=0)
    s.reset(0.0)
    assert not s.enabled
    assert not s.due(10_000.0)


def test_successful_send_advances_last_sent():
    s = ReportSchedule(kind="summary", interval_seconds=900)
    s.reset(0.0)
    s.record(900.0, delivered=True)
    assert s.last_sent == 900.0
    assert s.sent_count == 1
    assert not s.due(1000.0)
    assert s.due(1800.0)


def test_failed_send_is_retried_after_retry_seconds():
    s = ReportSchedule(kind="summary", interval_seconds=900, retry_seconds=60)
    s.reset(0.0)
    s.record(900.0, delivered=False)

    assert s.last_sent == 0.0
    assert s.failed_count == 1
    assert not s.due(930.0)
    assert s.due(960.0)

    s.record(960.0, delivered=True)
    assert s.last_sent == 960.0
    assert not s.due(1000.0)


def test_advance_on_failure_waits_full_interval():
    s = ReportSchedule(kind="summary", interval_seconds=900, retry_seconds=60, advance_on_failure=True)
    s.reset(0.0)
    s.record(900.0, delivered=False)
    assert s.last_sent == 900.0
    assert not s.due(960.0)
    assert s.due(1800.0)
