"""Tests for structured logging helpers."""

import logging

import pytest

from src.utils.logging import (
    correlation_context,
    generate_correlation_id,
    get_correlation_id,
    get_structured_logger,
    log_timing,
    mask_sender_id,
    mask_sensitive_data,
    sanitize_message_text,
)


@pytest.mark.unit
def test_correlation_context_nests_and_resets():
    assert get_correlation_id() is None
    with correlation_context("ntf_outer") as outer:
        with correlation_context() as inner:
            assert inner.startswith("ntf_")
            assert get_correlation_id() == inner
        assert get_correlation_id() == outer
    assert get_correlation_id() is None


@pytest.mark.unit
def test_generate_correlation_id_prefix():
    cid = generate_correlation_id("cmd")
    assert cid.startswith("cmd_")
    assert len(cid) == len("cmd_") + 12


@pytest.mark.unit
def test_mask_sender_id_hashes_long_ids():
    masked = mask_sender_id("123456789012345678")
    assert masked.startswith("1234...")
    assert "123456789012345678" not in masked
    assert mask_sender_id("short") == "short"
    assert mask_sender_id(None) is None


@pytest.mark.unit
def test_mask_sensitive_data():
    text = "contact ops@example.com with token=abcdefghijklmnopqrstuvwxyz"
    masked = mask_sensitive_data(text)

    assert "ops@example.com" not in masked
    assert "[REDACTED_EMAIL]" in masked
    assert "abcdefghijklmnopqrstuvwxyz" not in masked


@pytest.mark.unit
def test_sanitize_message_text_truncates():
    assert sanitize_message_text("x" * 50, max_length=10) == "x" * 10 + "..."
    assert sanitize_message_text("") is None


@pytest.mark.unit
def test_structured_logger_attaches_fields(caplog):
    logger = get_structured_logger("tests.logging")

    with caplog.at_level(logging.INFO, logger="tests.logging"):
        with correlation_context("req_abc"):
            logger.info("Task updated", task_id="01HTASK")

    record = caplog.records[-1]
    assert record.getMessage() == "Task updated"
    assert record.task_id == "01HTASK"
    assert record.correlation_id == "req_abc"


@pytest.mark.unit
def test_log_timing_reports_duration(caplog):
    logger = get_structured_logger("tests.timing")

    with caplog.at_level(logging.DEBUG, logger="tests.timing"):
        with log_timing("apply_task_transition", logger=logger, task_id="t1"):
            pass

    completed = [r for r in caplog.records if r.getMessage() == "Completed apply_task_transition"]
    assert completed[0].task_id == "t1"
    assert completed[0].processing_time_ms >= 0

