import logging

from portfolio_dashboard.utils.logging_redaction import RedactingFilter, install_redaction_filter, redact_message


def test_redacts_bearer_token():
    assert redact_message("Authorization: Bearer abc.def-123") == "Authorization: Bearer [REDACTED]"


def test_redacts_token_key_values():
    assert redact_message("auth_token=xyz987 other=1") == "auth_token=[REDACTED] other=1"
    assert redact_message("Token: abc") == "Token=[REDACTED]"


def test_leaves_plain_messages_alone():
    assert redact_message("Loaded 3 holdings for portfolio p1") == "Loaded 3 holdings for portfolio p1"


def test_filter_formats_args_before_redacting():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "header %s", ("Bearer s3cr3t",), None)
    assert RedactingFilter().filter(record) is True
    assert record.getMessage() == "header Bearer [REDACTED]"


def test_install_is_idempotent():
    logger = logging.getLogger("portfolio_dashboard.tests.redaction")
    handler = logging.StreamHandler()
    logger.addHandler(handler)
    try:
        install_redaction_filter(logger)
        install_redaction_filter(logger)
        assert sum(isinstance(f, RedactingFilter) for f in logger.filters) == 1
        assert sum(isinstance(f, RedactingFilter) for f in handler.filters) == 1
    finally:
        logger.removeHandler(handler)
        for f in list(logger.filters):
            logger.removeFilter(f)


def test_setup_logging_quiets_transport_loggers():
    from portfolio_dashboard.core.logging import setup_logging

    setup_logging("DEBUG")

    assert logging.getLogger("httpx").level == logging.WARNING
    assert any(isinstance(f, RedactingFilter) for f in logging.getLogger().filters)
