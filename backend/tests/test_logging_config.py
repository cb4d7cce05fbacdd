"""Tests for structured pipeline logging."""

import json
import logging
import pytest

from feedstudio.core.logging_config import (
    PIPELINE_LOGGER_NAME,
    CorrelationIdFilter,
    PipelineJsonFormatter,
    correlation_id_var,
    log_pipeline_event,
)


@pytest.mark.unit
class TestPipelineLogging:
    def test_event_carries_structured_fields(self, caplog):
        with caplog.at_level(logging.INFO, logger=PIPELINE_LOGGER_NAME):
            log_pipeline_event(
                "feed.processed",
                "Feed 3 processed",
                feed_id=3,
                job_id="job_0123456789ab",
                new_items=2,
            )

        record = caplog.records[-1]
        assert record.name == PIPELINE_LOGGER_NAME
        assert record.event_type == "feed.processed"
        assert record.feed_id == 3
        assert record.job_id == "job_0123456789ab"
        assert record.new_items == 2
        assert not hasattr(record, "feed_item_id")

    def test_json_output_includes_correlation_id(self):
        record = logging.makeLogRecord(
            {
                "name": PIPELINE_LOGGER_NAME,
                "levelno": logging.WARNING,
                "levelname": "WARNING",
                "msg": "Analysis queue full",
                "event_type": "job.rejected",
            }
        )

        token = correlation_id_var.set("req-123")
        try:
            CorrelationIdFilter().filter(record)
        finally:
            correlation_id_var.reset(token)

        output = json.loads(PipelineJsonFormatter("%(message)s").format(record))

        assert output["message"] == "Analysis queue full"
        assert output["level"] == "WARNING"
        assert output["logger"] == PIPELINE_LOGGER_NAME
        assert output["correlation_id"] == "req-123"
        assert output["event_type"] == "job.rejected"
        assert output["timestamp"].endswith("Z")

    def test_missing_correlation_id(self):
        record = logging.makeLogRecord({"msg": "background work"})
        CorrelationIdFilter().filter(record)
        assert record.correlation_id == "none"
