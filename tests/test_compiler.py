"""Tests for the compiler module."""

import re
import pytest
from topicbus.compiler import (
    Token,
    TokenType,
    tokenize,
    build_regular_expression,
    build_topic,
    build_parameter_function,
    build_parameter_count,
)
from topicbus.errors import PatternError


class TestTokenize:
    """Tests for tokenize."""

    def test_token_kinds_in_source_order(self):
        """Test that every segment becomes a token of the right kind."""
        tokens = tokenize("devices/+deviceId/config/#keys")
        assert [t.type for t in tokens] == [TokenType.RAW, TokenType.SINGLE, TokenType.RAW, TokenType.MULTI]
        assert [t.name for t in tokens] == [None, "deviceId", None, "keys"]

    def test_raw_token_keeps_text(self):
        """Test that raw tokens keep the unescaped segment text."""
        token = tokenize("a.b")[0]
        assert token.text == "a.b"
        assert token.piece == re.escape("a.b") + "/"

    def test_unnamed_wildcards(self):
        """Test that bare + and # have empty names."""
        tokens = tokenize("+/#")
        assert tokens[0].name == ""
        assert tokens[1].name == ""
        assert not tokens[0].is_named
        assert tokens[0].is_wildcard

    def test_multi_not_last_fails(self):
        """Test that # before the last segment is a grammar error."""
        with pytest.raises(PatternError) as exc_info:
            tokenize("#all/status")
        assert "#all/status" in str(exc_info.value)

    @pytest.mark.parametrize("pattern", ["a/#rest/b", "#/x", "a/#/+b", "#x/#y"])
    def test_multi_anywhere_but_last_fails(self, pattern):
        """Test the grammar error for every non-final # position."""
        with pytest.raises(PatternError):
            tokenize(pattern)

    def test_sigil_only_checked_at_segment_start(self):
        """Test that + and # inside a segment are literal text."""
        tokens = tokenize("a+b/c#d")
        assert all(t.type is TokenType.RAW for t in tokens)

    def test_none_pattern_rejected(self):
        """Test that None is not a pattern."""
        with pytest.raises(PatternError):
            tokenize(None)

    def test_tokens_are_immutable(self):
        """Test that tokens cannot be changed after creation."""
        token = tokenize("a")[0]
        with pytest.raises(Exception):
            token.text = "b"


class TestBuildRegularExpression:
    """Tests for build_regular_expression."""

    def test_anchored_full_match(self):
        """Test that partial matches are rejected."""
        regex = build_regular_expression(tokenize("a/b"))
        assert regex.match("a/b")
        assert regex.match("a/b/")
        assert not regex.match("x/a/b")
        assert not regex.match("a/b/c")
        assert not regex.match("a/b\n")

    def test_raw_before_multi_requires_boundary(self):
        """Test that the segment before # still matches as a whole segment."""
        regex = build_regular_expression(tokenize("config/#keys"))
        assert regex.match("config")
        assert regex.match("config/")
        assert regex.match("config/a/b")
        assert not regex.match("configa/b")

    def test_single_matches_one_segment(self):
        """Test that + never spans a separator."""
        regex = build_regular_expression(tokenize("a/+x/c"))
        assert regex.match("a/b/c")
        assert not regex.match("a//c")
        assert not regex.match("a/b/b/c")

    def test_group_count_follows_wildcards(self):
        """Test that capture groups line up with wildcard tokens."""
        regex = build_regular_expression(tokenize("a/+/b/+x/#y"))
        assert regex.groups == 3

    def test_long_non_matching_topic_is_fast(self):
        """Test that a failing multi-level match does not backtrack badly."""
        regex = build_regular_expression(tokenize("#rest"))
        assert regex.match("a" * 5000 + "+") is None


class TestBuildTopic:
    """Tests for build_topic."""

    def test_names_are_stripped(self):
        """Test that parameter names never reach the topic."""
        assert build_topic(tokenize("devices/+deviceId/config/#keys")) == "devices/+/config/#"

    def test_raw_text_is_not_escaped(self):
        """Test that metacharacters in raw segments are rendered verbatim."""
        assert build_topic(tokenize("a.b/my-device/(x)")) == "a.b/my-device/(x)"

    def test_empty_segments_preserved(self):
        """Test that leading and trailing slashes survive."""
        assert build_topic(tokenize("/a/")) == "/a/"


class TestBuildParameterFunction:
    """Tests for build_parameter_function."""

    def _extract(self, pattern, topic):
        tokens = tokenize(pattern)
        regex = build_regular_expression(tokens)
        return build_parameter_function(tokens)(regex.match(topic))

    def test_no_match_gives_empty_mapping(self):
        """Test that a missing match yields {}."""
        fn = build_parameter_function(tokenize("a/+b"))
        assert fn(None) == {}

    def test_single_trailing_slash_removed(self):
        """Test that a single capture loses its trailing slash."""
        assert self._extract("a/+b", "a/x/") == {"b": "x"}

    def test_multi_split_into_list(self):
        """Test that # captures become lists."""
        assert self._extract("a/#rest", "a/x/y/z") == {"rest": ["x", "y", "z"]}
        assert self._extract("a/#rest", "a/x/y/") == {"rest": ["x", "y"]}
        assert self._extract("a/#rest", "a") == {"rest": []}

    def test_unnamed_wildcards_skipped(self):
        """Test that unnamed wildcards never appear in the result."""
        assert self._extract("+/+b/#", "x/y/z") == {"b": "y"}

    def test_duplicate_names_last_write_wins(self):
        """Test that a later token overwrites an earlier one of the same name."""
        assert self._extract("+id/+id", "first/second") == {"id": "second"}


class TestBuildParameterCount:
    """Tests for build_parameter_count."""

    @pytest.mark.parametrize("pattern,expected", [
        ("a/b/c", 0),
        ("+/#", 0),
        ("+a/+/b", 1),
        ("+a/+b/#c", 3),
    ])
    def test_counts_named_wildcards(self, pattern, expected):
        """Test that only named wildcards are counted."""
        assert build_parameter_count(tokenize(pattern)) == expected

    def test_token_dataclass(self):
        """Test that a hand-built raw token is never counted."""
        token = Token(TokenType.RAW, "a", "a/", "a/?")
        assert build_parameter_count([token]) == 0
