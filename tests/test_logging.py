import logging

from jar_stream.logging import ContextFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("jar_stream.test", logging.INFO, __file__, 1, "webhook.ignored", (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_context_is_appended_sorted() -> None:
    formatter = ContextFormatter("%(levelname)s %(message)s")

    line = formatter.format(_record(streamer_id=7, reason="No identifier"))

    assert line == "INFO webhook.ignored reason='No identifier' streamer_id=7"


def test_plain_records_are_unchanged() -> None:
    assert ContextFormatter("%(message)s").format(_record()) == "webhook.ignored"
