"""Pattern tokenizer and compiler for topic patterns.

A pattern is a topic template made of ``/`` separated segments:

* ``+name`` matches exactly one topic segment and captures it as ``name``
* ``#name`` matches zero or more trailing segments and captures them as a list
* anything else is matched literally

The name after the sigil may be empty, in which case the wildcard matches but
is not extracted.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from .errors import PatternError


SEPARATOR = "/"

SINGLE_PIECE = r"([^/#+]+/)"
SINGLE_LAST = r"([^/#+]+/?)"
MULTI_PIECE = r"((?:[^/#+]+/)*)"
MULTI_LAST = r"((?:[^/#+]+/)*[^/#+]*)"
# Optional trailing slash, but the literal must end on a segment boundary.
RAW_LAST_SUFFIX = r"(?:/|\Z)"

ParamValue = Union[str, List[str]]


class TokenType(str, Enum):
    """Kinds of pattern segments."""
    RAW = "raw"
    SINGLE = "single"
    MULTI = "multi"


@dataclass(frozen=True)
class Token:
    """Compiled form of one pattern segment."""
    type: TokenType
    text: str
    piece: str
    last: str
    name: Optional[str] = None

    @property
    def is_wildcard(self) -> bool:
        return self.type is not TokenType.RAW

    @property
    def is_named(self) -> bool:
        return self.is_wildcard and bool(self.name)


def tokenize(pattern: str) -> List[Token]:
    """Split a pattern into tokens, in source order.

    Raises:
        PatternError: if a ``#`` wildcard is not the final segment
    """
    if pattern is None:
        raise PatternError("pattern must be a string, got None")

    segments = pattern.split(SEPARATOR)
    last_index = len(segments) - 1
    return [_process_segment(segment, index == last_index, pattern)
            for index, segment in enumerate(segments)]


def _process_segment(segment: str, is_last: bool, pattern: str) -> Token:
    if segment.startswith("+"):
        return Token(TokenType.SINGLE, segment, SINGLE_PIECE, SINGLE_LAST, name=segment[1:])
    if segment.startswith("#"):
        if not is_last:
            raise PatternError(
                f"# wildcard must be at the end of the pattern ({pattern!r}, segment {segment!r})"
            )
        return Token(TokenType.MULTI, segment, MULTI_PIECE, MULTI_LAST, name=segment[1:])

    escaped = re.escape(segment)
    return Token(TokenType.RAW, segment, escaped + SEPARATOR, escaped + RAW_LAST_SUFFIX)


def build_regular_expression(tokens: List[Token]) -> "re.Pattern[str]":
    """Assemble the full-string matcher for a token list.

    The final token uses its ``last`` fragment. When the final token is a
    multi wildcard, the token before it also uses ``last`` so that
    ``config/#keys`` matches ``config`` as well as ``config/a/b``.
    """
    count = len(tokens)
    ends_with_multi = count > 0 and tokens[-1].type is TokenType.MULTI

    parts = []
    for index, token in enumerate(tokens):
        is_last = index == count - 1
        before_multi = ends_with_multi and index == count - 2
        parts.append(token.last if (is_last or before_multi) else token.piece)

    return re.compile(r"\A" + "".join(parts) + r"\Z")


def build_topic(tokens: List[Token]) -> str:
    """Render the subscribable topic, with parameter names stripped."""
    rendered = []
    for token in tokens:
        if token.type is TokenType.SINGLE:
            rendered.append("+")
        elif token.type is TokenType.MULTI:
            rendered.append("#")
        else:
            rendered.append(token.text)
    return SEPARATOR.join(rendered)


def build_parameter_function(tokens: List[Token]) -> Callable[[Optional["re.Match[str]"]], Dict[str, ParamValue]]:
    """Build the function extracting named parameters from a match.

    Capture groups line up one to one with the wildcard tokens, in order.
    Later tokens overwrite earlier ones that share a name.
    """
    capture_tokens = [token for token in tokens if token.is_wildcard]

    def get_parameters(match: Optional["re.Match[str]"]) -> Dict[str, ParamValue]:
        params: Dict[str, ParamValue] = {}
        if match is None:
            return params

        for token, capture in zip(capture_tokens, match.groups()):
            if not token.name:
                continue
            capture = capture or ""
            if token.type is TokenType.MULTI:
                values = capture.split(SEPARATOR)
                if not values[-1]:
                    values.pop()
                params[token.name] = values
            elif capture.endswith(SEPARATOR):
                params[token.name] = capture[:-1]
            else:
                params[token.name] = capture
        return params

    return get_parameters


def build_parameter_count(tokens: List[Token]) -> int:
    """Count the wildcards that carry a name."""
    return sum(1 for token in tokens if token.is_named)
