"""Tests for structured service logging."""

import logging

from src.services.logging_utils import get_service_logger, log_operation


class TestServiceLogging:
    def test_logger_namespace(self):
        logger = get_service_logger("src.services.belt_service")
        assert logger.name == "belt_tracker.services.belt_service"

    def test_log_operation_formats_context(self, caplog):
        logger = get_service_logger("test_module")
        with caplog.at_level(logging.INFO, logger="belt_tracker.services"):
            log_operation(logger, "consume_compound", "success", compound_code="nk5", batch_count=2)

        record = caplog.records[-1]
        assert record.getMessage() == "consume_compound: success (compound_code=nk5 batch_count=2)"
        assert record.operation == "consume_compound"
        assert record.compound_code == "nk5"

    def test_conflict_retry_logged_as_warning(self, catalog, caplog, monkeypatch):
        from src.services import compound_consumption_service
        from src.services.compound_batch_service import create_compound_batch
        from src.services.compound_consumption_service import consume_compound

        create_compound_batch("nk5", "2025-03-03", 1)
        real_apply = compound_consumption_service._apply_consumption
        attempts = []

        def flaky_apply(*args, **kwargs):
            attempts.append(1)
            if len(attempts) == 1:
                return False
            return real_apply(*args, **kwargs)

        monkeypatch.setattr(compound_consumption_service, "_apply_consumption", flaky_apply)

        with caplog.at_level(logging.WARNING, logger="belt_tracker.services"):
            consume_compound("nk5", "5", "2025-03-03")

        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert any(r.outcome == "conflict_retry" for r in warnings)
