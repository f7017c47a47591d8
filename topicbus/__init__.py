"""
topicbus - MQTT topic patterns with named wildcards

Compile patterns such as ``devices/+deviceId/config/#keys`` into a
subscribable topic, a matcher extracting named parameters, and a builder
rendering concrete topics back from parameters.
"""

from .errors import (
    TopicBusError,
    PatternError,
    ParameterError,
    ParameterCountError,
    LabelError,
    BusError,
)
from .compiler import Token, TokenType
from .pattern import Pattern, compile_pattern
from .router import Message, Router
from .bus import Bus, Status

__version__ = "0.1.0"
__all__ = [
    # Patterns
    "Pattern",
    "compile_pattern",
    "Token",
    "TokenType",
    # Routing and transport
    "Router",
    "Message",
    "Bus",
    "Status",
    # Errors
    "TopicBusError",
    "PatternError",
    "ParameterError",
    "ParameterCountError",
    "LabelError",
    "BusError",
]
