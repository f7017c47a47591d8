"""Tests for the logger module."""

import io
import json
from topicbus.logger import Logger


class TestLogger:
    """Tests for Logger."""

    def test_json_line(self):
        """Test that entries are single JSON objects with extra fields."""
        stream = io.StringIO()
        Logger("bus", level="DEBUG", stream=stream).info("Subscribed", topic="a/+")
        entry = json.loads(stream.getvalue())
        assert entry["level"] == "INFO"
        assert entry["component"] == "bus"
        assert entry["message"] == "Subscribed"
        assert entry["topic"] == "a/+"

    def test_level_threshold(self):
        """Test that entries below the level are dropped."""
        stream = io.StringIO()
        logger = Logger("bus", level="warning", stream=stream)
        logger.debug("hidden")
        logger.info("hidden")
        logger.warn("shown")
        logger.error("shown")
        lines = stream.getvalue().splitlines()
        assert [json.loads(line)["level"] for line in lines] == ["WARN", "ERROR"]

    def test_level_from_env(self, monkeypatch):
        """Test the LOG_LEVEL fallback."""
        monkeypatch.setenv("LOG_LEVEL", "error")
        assert Logger("bus").level == "ERROR"
