"""Tests for the command line tool."""

import json
import pytest
from topicbus.cli import main, parse_assignments
from topicbus.errors import ParameterError
from topicbus.pattern import Pattern


class TestCli:
    """Tests for the topicbus CLI."""

    def test_topic(self, capsys):
        """Test printing the subscribable topic."""
        main(["topic", "devices/+deviceId/config/#keys"])
        assert capsys.readouterr().out.strip() == "devices/+/config/#"

    def test_match(self, capsys):
        """Test matching a topic and printing parameters as JSON."""
        main(["--format", "json", "match", "devices/+deviceId/status", "devices/42/status"])
        result = json.loads(capsys.readouterr().out)
        assert result == {"matched": True, "params": {"deviceId": "42"}}

    def test_no_match_exits_nonzero(self, capsys):
        """Test that a non-matching topic exits with status 1."""
        with pytest.raises(SystemExit) as exc_info:
            main(["match", "devices/+deviceId/status", "devices/42/43/status"])
        assert exc_info.value.code == 1
        assert capsys.readouterr().out.startswith("Error:")

    def test_build(self, capsys):
        """Test building a topic with a multi-level value."""
        main(["build", "devices/+deviceId/config/#keys", "deviceId=7", "keys=net/ip"])
        assert capsys.readouterr().out.strip() == "devices/7/config/net/ip"

    def test_build_rejects_empty_level(self, capsys):
        """Test that an empty level in a multi-level value is an error, not dropped."""
        with pytest.raises(SystemExit) as exc_info:
            main(["build", "devices/+deviceId/config/#keys", "deviceId=7", "keys=net//ip"])
        assert exc_info.value.code == 1
        assert "empty segment" in capsys.readouterr().out

    def test_grammar_error(self, capsys):
        """Test that invalid patterns are reported."""
        with pytest.raises(SystemExit):
            main(["topic", "#all/status"])
        assert "end of the pattern" in capsys.readouterr().out

    def test_no_command(self, capsys):
        """Test that running without a command prints help."""
        with pytest.raises(SystemExit):
            main([])

    def test_parse_assignments(self):
        """Test name=value parsing."""
        pattern = Pattern("a/+x/#y")
        assert parse_assignments(pattern, ["x=1", "y=b/c"]) == {"x": "1", "y": ["b", "c"]}
        assert parse_assignments(pattern, ["y="]) == {"y": []}
        assert parse_assignments(pattern, ["y=b//c"]) == {"y": ["b", "", "c"]}
        with pytest.raises(ParameterError):
            parse_assignments(pattern, ["novalue"])
