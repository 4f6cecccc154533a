"""
Tests for logger functionality.
"""

import pytest
from leakhub import logger as logger_module
from leakhub.logger import StructuredLogger, configure_logger, get_logger, reset_logger


@pytest.fixture
def file_logger(tmp_path):
    return StructuredLogger(name="leakhub-test", level="DEBUG", log_dir=tmp_path, enable_console=False)


class TestStructuredLogger:
    """Test structured logging functionality."""

    def test_starts_with_zero_counters(self, file_logger):
        """A fresh logger reports zero counts."""
        assert file_logger.logger.name == "leakhub-test"
        assert file_logger.metrics["evaluations_run"] == 0
        assert file_logger.metrics["errors_by_type"] == {}

    def test_context_written_as_json(self, file_logger, tmp_path):
        """Context fields are appended as JSON."""
        file_logger.info("Leak verified by consensus", request_id=3, verifier_ids=[4, 5])

        log_files = list(tmp_path.glob("leakhub_*.log"))
        assert len(log_files) == 1
        content = log_files[0].read_text()
        assert "Leak verified by consensus" in content
        assert '"verifier_ids": [4, 5]' in content

    def test_consensus_counters(self, file_logger):
        """Outcome counters track each evaluation result."""
        for _ in range(4):
            file_logger.record_evaluation()
        file_logger.record_decision()
        file_logger.record_decision()
        file_logger.record_verification()
        file_logger.record_discard()
        file_logger.record_error("OperationalError")
        file_logger.record_error("OperationalError")
        file_logger.record_import(12)

        metrics = file_logger.get_metrics()

        assert metrics["evaluations_run"] == 4
        assert metrics["decisions_reached"] == 2
        assert metrics["decision_rate"] == 0.5
        assert metrics["verifications_applied"] == 1
        assert metrics["decisions_discarded"] == 1
        assert metrics["errors_by_type"] == {"OperationalError": 2}
        assert metrics["leaks_imported"] == 12

    def test_get_metrics_returns_copy(self, file_logger):
        """get_metrics returns a copy callers can't mutate."""
        file_logger.record_error("Timeout")
        metrics = file_logger.get_metrics()
        metrics["errors_by_type"]["Timeout"] = 99
        assert file_logger.metrics["errors_by_type"]["Timeout"] == 1

    def test_reset_metrics(self, file_logger):
        """reset_metrics zeroes every counter."""
        file_logger.record_evaluation()
        file_logger.reset_metrics()
        assert file_logger.get_metrics()["evaluations_run"] == 0

    def test_summary_is_logged(self, file_logger, tmp_path):
        """The metrics summary reaches the log file."""
        file_logger.record_evaluation()
        file_logger.log_metrics_summary()
        content = next(tmp_path.glob("*.log")).read_text()
        assert "Consensus Engine Metrics" in content
        assert "Evaluations: 1" in content

    def test_configure_replaces_handlers(self, file_logger, tmp_path):
        """Reconfiguring swaps handlers instead of adding more."""
        file_logger.configure(level="WARNING", enable_file=False, enable_console=False)
        assert file_logger.logger.handlers == []


class TestGlobalLogger:
    """Test global logger singleton."""

    @pytest.fixture(autouse=True)
    def restore_global(self, monkeypatch):
        # Modules hold the global instance; put it back after each test
        monkeypatch.setattr(logger_module, "_global_logger", None)

    def test_get_logger_singleton(self, tmp_path):
        """get_logger returns one shared instance."""
        reset_logger()

        logger1 = get_logger(log_dir=tmp_path, enable_console=False)
        logger2 = get_logger()

        assert logger1 is logger2

    def test_configure_keeps_instance(self, tmp_path):
        """configure_logger keeps the shared instance."""
        reset_logger()
        logger = get_logger(log_dir=tmp_path, enable_console=False)

        configured = configure_logger(level="DEBUG", log_dir=tmp_path, enable_console=False)

        assert configured is logger
        assert configured.logger.level == 10

    def test_reset_logger(self, tmp_path):
        """Resetting gives a new instance."""
        reset_logger()
        logger1 = get_logger(log_dir=tmp_path, enable_console=False)
        logger1.record_evaluation()

        reset_logger()
        logger2 = get_logger(log_dir=tmp_path, enable_console=False)

        assert logger2 is not logger1
        assert logger2.metrics["evaluations_run"] == 0
