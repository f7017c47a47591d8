"""Labelled pattern registry with first-match-wins dispatch."""

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple, Union

from .compiler import ParamValue
from .errors import LabelError
from .logger import Logger
from .pattern import Pattern


@dataclass
class Message:
    """An incoming message, as handed to listeners."""
    topic: str
    payload: Union[bytes, str, None] = None
    qos: int = 0
    retain: bool = False
    label: Optional[str] = None
    params: Dict[str, ParamValue] = field(default_factory=dict)
    is_json: bool = False
    json: Any = None


Listener = Callable[[Message], Any]


class Router:
    """Ordered collection of ``(label, Pattern)`` pairs and their listeners.

    Patterns are tried in registration order; the first one matching an
    incoming topic wins, and only that label's listeners are invoked.
    """

    def __init__(self, logger: Optional[Logger] = None):
        self._entries: List[Tuple[str, Pattern]] = []
        self._listeners: Dict[str, List[Tuple[Listener, bool]]] = {}
        self.logger = logger or Logger("router")
        self.background_tasks: Set[asyncio.Task] = set()

    def __contains__(self, label: str) -> bool:
        return label in self._listeners

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Tuple[str, Pattern]]:
        return iter(list(self._entries))

    def labels(self) -> List[str]:
        return [label for label, _ in self._entries]

    def get_pattern(self, label: str) -> Pattern:
        self._require(label, "unknown label")
        for entry_label, pattern in self._entries:
            if entry_label == label:
                return pattern

    def _require(self, label: str, reason: str):
        if label not in self._listeners:
            raise LabelError(f"{reason} ({label})")

    def set_pattern(self, label: str, pattern: Union[str, Pattern]) -> "Router":
        """Register a pattern under ``label``.

        Raises:
            LabelError: if the label is already in use
            PatternError: if the pattern does not compile
        """
        if label in self._listeners:
            raise LabelError(f"label already in use ({label})")
        if not isinstance(pattern, Pattern):
            pattern = Pattern(pattern)
        self._entries.append((label, pattern))
        self._listeners[label] = []
        self.logger.debug("Pattern registered", label=label, pattern=pattern.pattern, topic=pattern.topic)
        return self

    def remove_pattern(self, label: str) -> "Router":
        """Remove a pattern and all of its listeners."""
        self._require(label, "unknown label")
        self._entries = [entry for entry in self._entries if entry[0] != label]
        del self._listeners[label]
        self.logger.debug("Pattern removed", label=label)
        return self

    def on(self, label: str, fn: Listener) -> "Router":
        """Add a listener for ``label``."""
        self._require(label, "invalid label")
        self._listeners[label].append((fn, False))
        return self

    def once(self, label: str, fn: Listener) -> "Router":
        """Add a listener that is removed after its first call."""
        self._require(label, "invalid label")
        self._listeners[label].append((fn, True))
        return self

    def remove_listener(self, label: str, fn: Listener) -> "Router":
        """Remove the first registration of ``fn`` for ``label``."""
        self._require(label, "invalid label")
        listeners = self._listeners[label]
        for index, (listener, _) in enumerate(listeners):
            if listener == fn:
                del listeners[index]
                break
        return self

    def remove_all_listeners(self, label: Optional[str] = None) -> "Router":
        """Remove the listeners of ``label``, or of every label."""
        if label is not None:
            self._require(label, "invalid label")
            self._listeners[label] = []
        else:
            for key in self._listeners:
                self._listeners[key] = []
        return self

    def listener_count(self, label: str) -> int:
        self._require(label, "invalid label")
        return len(self._listeners[label])

    def match(self, topic: str) -> Optional[Tuple[str, Pattern, Dict[str, ParamValue]]]:
        """Find the first registered pattern matching ``topic``."""
        for label, pattern in self._entries:
            match = pattern.match(topic)
            if match is not None:
                return label, pattern, pattern.get_parameters(match)
        return None

    def dispatch(self, message: Message) -> Optional[str]:
        """Route a message to the listeners of the first matching label.

        Async listeners are scheduled on the running event loop; without one
        they are closed unrun and logged as failed.

        Returns: the label that received the message, or None
        """
        found = self.match(message.topic)
        if found is None:
            self.logger.debug("No pattern matched", topic=message.topic)
            return None

        label, _, params = found
        message.label = label
        message.params = params

        listeners = self._listeners[label]
        self._listeners[label] = [entry for entry in listeners if not entry[1]]

        for fn, _ in listeners:
            result = None
            try:
                result = fn(message)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result, loop=asyncio.get_running_loop())
                    self.background_tasks.add(task)
                    task.add_done_callback(self._on_task_done)
            except Exception as e:
                if inspect.iscoroutine(result):
                    result.close()
                self.logger.error("Listener failed", label=label, topic=message.topic, error=str(e))
        return label

    def _on_task_done(self, task: asyncio.Task):
        self.background_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.error("Listener failed", error=str(task.exception()))
