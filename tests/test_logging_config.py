from __future__ import annotations

import logging

from logging_config import ContextualFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="services.ingestion",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Rain episode started",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_appends_known_context_keys() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    output = formatter.format(_record(device_id="roof", reading_id="r-1", unrelated="x"))

    assert output == "Rain episode started | device_id=roof reading_id=r-1"


def test_formatter_skips_empty_context() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    assert formatter.format(_record(device_id=None)) == "Rain episode started"


def test_formatter_renders_timestamps_in_utc() -> None:
    formatter = ContextualFormatter(fmt="%(asctime)sZ %(message)s", datefmt="%Y-%m-%dT%H:%M:%S")
    record = _record(status="started")
    record.created = 0.0

    assert formatter.format(record) == "1970-01-01T00:00:00Z Rain episode started | status=started"
