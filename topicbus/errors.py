"""Exceptions raised by topicbus."""


class TopicBusError(Exception):
    """Base class for all topicbus errors."""


class PatternError(TopicBusError, ValueError):
    """Pattern grammar violation, raised at compile time."""


class ParameterError(TopicBusError, ValueError):
    """Parameters cannot be rendered into a concrete topic."""


class ParameterCountError(ParameterError):
    """Number of supplied parameters disagrees with the pattern."""

    def __init__(self, got: int, expected: int):
        self.got = got
        self.expected = expected
        super().__init__(f"wrong parameter count, got {got}, expected {expected}")


class LabelError(TopicBusError, KeyError):
    """Label is unknown or already in use."""

    def __str__(self):
        # KeyError quotes its argument
        return str(self.args[0]) if self.args else ""


class BusError(TopicBusError):
    """Transport level failure."""
