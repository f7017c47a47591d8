"""Compiled topic pattern."""

import re
from typing import Any, Dict, Mapping, Optional

from . import compiler
from .compiler import ParamValue, SEPARATOR
from .errors import ParameterError

FORBIDDEN_SEGMENT_CHARS = ("/", "+", "#")


class Pattern:
    """A compiled, immutable topic pattern.

    Compile once, then reuse for every publish (``build_topic``) and every
    incoming message (``match`` + ``get_parameters``).

        >>> p = Pattern("devices/+deviceId/status")
        >>> p.topic
        'devices/+/status'
        >>> p.get_parameters(p.match("devices/42/status"))
        {'deviceId': '42'}
    """

    __slots__ = ("_pattern", "_tokens", "_topic", "_regex", "_fn_params", "_param_count")

    def __init__(self, pattern: str):
        tokens = compiler.tokenize(pattern)

        object.__setattr__(self, "_pattern", pattern)
        object.__setattr__(self, "_tokens", tuple(tokens))
        object.__setattr__(self, "_topic", compiler.build_topic(tokens))
        object.__setattr__(self, "_regex", compiler.build_regular_expression(tokens))
        object.__setattr__(self, "_fn_params", compiler.build_parameter_function(tokens))
        object.__setattr__(self, "_param_count", compiler.build_parameter_count(tokens))

    @classmethod
    def compile(cls, pattern: str) -> "Pattern":
        return cls(pattern)

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __delattr__(self, name):
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __repr__(self):
        return f"Pattern({self._pattern!r})"

    def __eq__(self, other):
        if not isinstance(other, Pattern):
            return NotImplemented
        return self._pattern == other._pattern

    def __hash__(self):
        return hash(self._pattern)

    @property
    def topic(self) -> str:
        """MQTT subscribable topic (``+`` and ``#`` only, no names)."""
        return self._topic

    @property
    def pattern(self) -> str:
        """Original pattern string."""
        return self._pattern

    @property
    def parameter_count(self) -> int:
        """Number of named wildcards."""
        return self._param_count

    @property
    def tokens(self):
        return self._tokens

    @property
    def regex(self) -> "re.Pattern[str]":
        return self._regex

    def match(self, topic: str) -> Optional["re.Match[str]"]:
        """Match a concrete topic. Returns ``None`` when it does not match."""
        return self._regex.match(topic)

    def get_parameters(self, match: Optional["re.Match[str]"]) -> Dict[str, ParamValue]:
        """Extract named parameters from a match (``{}`` for ``None``)."""
        return self._fn_params(match)

    def match_parameters(self, topic: str) -> Optional[Dict[str, ParamValue]]:
        """Shortcut for ``get_parameters(match(topic))`` that keeps no-match as ``None``."""
        match = self.match(topic)
        if match is None:
            return None
        return self.get_parameters(match)

    def build_topic(self, params: Optional[Mapping[str, Any]] = None) -> str:
        """Render a concrete topic from parameter values.

        Single wildcards take a ``str``; multi wildcards take a list or tuple
        of ``str`` and are joined with ``/``. Raw segments pass through.
        Extraction always yields lists, so a tuple value reads back as a list.

        Raises:
            ParameterError: if a wildcard has no value, or a value has the
                wrong type or could not be matched back
        """
        params = params or {}
        segments = []
        for segment in self._pattern.split(SEPARATOR):
            if segment.startswith("+"):
                value = self._lookup(segment, params)
                segments.append(_check_segment(segment, value))
            elif segment.startswith("#"):
                value = self._lookup(segment, params)
                if isinstance(value, str) or not isinstance(value, (list, tuple)):
                    raise ParameterError(
                        f"parameter {segment[1:]!r} must be a list of strings, got {type(value).__name__}"
                    )
                segments.append(SEPARATOR.join(_check_segment(segment, item) for item in value))
            else:
                segments.append(segment)
        return SEPARATOR.join(segments)

    def _lookup(self, segment: str, params: Mapping[str, Any]) -> Any:
        name = segment[1:]
        if not name:
            raise ParameterError(
                f"unnamed wildcard {segment!r} in {self._pattern!r} cannot be rendered into a topic"
            )
        if name not in params:
            raise ParameterError(f"missing parameter {name!r} for pattern {self._pattern!r}")
        return params[name]


def _check_segment(segment: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ParameterError(
            f"parameter {segment[1:]!r} must be a string, got {type(value).__name__}"
        )
    if not value:
        raise ParameterError(f"parameter {segment[1:]!r} contains an empty segment")
    for char in FORBIDDEN_SEGMENT_CHARS:
        if char in value:
            raise ParameterError(f"parameter {segment[1:]!r} value {value!r} contains {char!r}")
    return value


def compile_pattern(pattern: str) -> Pattern:
    return Pattern(pattern)
