import logging

from logging_config import ContextualFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("services.subscriptions", logging.INFO, __file__, 1, "Subscription opened", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_appends_whitelisted_context() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    line = formatter.format(_record(subscription_id=3, limit=10, unrelated="hidden"))

    assert line == "Subscription opened | subscription_id=3 limit=10"


def test_formatter_quotes_values_with_spaces_and_skips_none() -> None:
    formatter = ContextualFormatter(fmt="%(message)s", extra_keys=["query", "doc_id"])

    line = formatter.format(_record(query="sensor order by timestamp desc", doc_id=None))

    assert line == "Subscription opened | query='sensor order by timestamp desc'"


def test_formatter_without_context_leaves_message_alone() -> None:
    formatter = ContextualFormatter(fmt="%(levelname)s %(message)s")

    assert formatter.format(_record()) == "INFO Subscription opened"
