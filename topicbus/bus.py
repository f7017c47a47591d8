"""MQTT bus: labelled topic patterns over a paho-mqtt client."""

import asyncio
import time
import uuid
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
from urllib.parse import urlparse

import paho.mqtt.client as mqtt

from .codec import decode_payload, encode_payload
from .config import Config
from .errors import BusError, LabelError, ParameterCountError, ParameterError
from .logger import Logger
from .metrics import PrometheusMetrics
from .pattern import Pattern
from .router import Listener, Message, Router


DEFAULT_PORTS = {"mqtt": 1883, "tcp": 1883, "mqtts": 8883, "ssl": 8883}
TLS_SCHEMES = ("mqtts", "ssl")
DEFAULT_KEEPALIVE = 60  # seconds
DEFAULT_TIMEOUT = 10  # seconds


class Status(str, Enum):
    """Connection status of a bus."""
    READY = "ready"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    OFFLINE = "offline"
    CLOSED = "closed"
    ERROR = "error"


def parse_url(url: str) -> Dict[str, Any]:
    """Parse ``mqtt://[user:pass@]host[:port]`` into connection settings."""
    parsed = urlparse(url)
    if parsed.scheme not in DEFAULT_PORTS:
        raise ValueError(f"Invalid MQTT URL scheme: {parsed.scheme!r}. Expected 'mqtt://' or 'mqtts://'.")
    return {
        "host": parsed.hostname or "localhost",
        "port": parsed.port or DEFAULT_PORTS[parsed.scheme],
        "username": parsed.username,
        "password": parsed.password,
        "tls": parsed.scheme in TLS_SCHEMES,
    }


def create_paho_client(client_id: str, reconnect: bool = True) -> mqtt.Client:
    """Default client factory."""
    return mqtt.Client(
        mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
        reconnect_on_failure=reconnect,
    )


def _is_failure(reason_code) -> bool:
    failure = getattr(reason_code, "is_failure", None)
    if failure is None:
        # MQTT 5 reason codes: 0x80 and above are failures
        return int(reason_code) >= 0x80
    return failure


def _granted(reason_codes) -> List[int]:
    return [getattr(code, "value", code) for code in reason_codes or []]


class Bus:
    """Publish/subscribe by label over MQTT.

    Every label maps to one topic pattern. Subscribing to a label subscribes
    to the pattern's wildcard topic; publishing on a label renders a concrete
    topic from parameters; incoming messages are routed to the listeners of
    the first label whose pattern matches.

    paho runs its network loop in its own thread. Every callback is handed
    back to the asyncio loop that called ``connect``.
    """

    def __init__(self, url: str, client_id: Optional[str] = None, *, keepalive: int = DEFAULT_KEEPALIVE,
                 qos: int = 0, reconnect: bool = True, timeout: float = DEFAULT_TIMEOUT,
                 client_factory: Optional[Callable[..., Any]] = None, router: Optional[Router] = None,
                 metrics: Optional[PrometheusMetrics] = None, logger: Optional[Logger] = None):
        self.url = url
        self.settings = parse_url(url)
        self.client_id = client_id or f"topicbus-{uuid.uuid4().hex[:8]}"
        self.keepalive = keepalive
        self.qos = qos
        self.reconnect = reconnect
        self.timeout = timeout
        self.client_factory = client_factory or create_paho_client
        self.logger = logger or Logger("bus")
        self.router = router or Router(logger=Logger("router", level=self.logger.level))
        self.metrics = metrics or PrometheusMetrics()

        self._status = Status.READY
        self._status_error: Optional[BaseException] = None
        self._client = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connect_future: Optional[asyncio.Future] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._subscription_topics: Dict[str, int] = {}
        self._closing = False

    @classmethod
    def create(cls, client_id: str, url: str, **opts) -> "Bus":
        return cls(url, client_id=client_id, **opts)

    @classmethod
    def from_config(cls, config: Optional[Config] = None, **opts) -> "Bus":
        """Build a bus from configuration, registering configured patterns."""
        config = config or Config()
        ok, errors = config.validate()
        if not ok:
            raise BusError(f"Configuration validation failed: {'; '.join(errors)}")

        level = config.get("logging", "level", "INFO")
        opts.setdefault("logger", Logger("bus", level=level))
        bus = cls(
            config.get("bus", "url"),
            client_id=config.get("bus", "client_id"),
            keepalive=config.get("bus", "keepalive", DEFAULT_KEEPALIVE),
            qos=config.get("bus", "qos", 0),
            **opts
        )
        for label, source in config.patterns.items():
            bus.set_pattern(label, source)
        return bus

    # Status

    @property
    def id(self) -> str:
        return self.client_id

    @property
    def status(self) -> Status:
        return self._status

    @property
    def status_error(self) -> Optional[BaseException]:
        """Last transport error, or None."""
        return self._status_error

    def is_available(self) -> bool:
        return self._client is not None

    @property
    def subscription_topics(self) -> List[str]:
        return list(self._subscription_topics)

    def _set_status(self, status: Status, error: Optional[BaseException] = None):
        self._status = status
        if error is not None:
            self._status_error = error
        self.logger.debug("Status changed", status=status.value)

    # Patterns and listeners

    def set_pattern(self, label: str, pattern: Union[str, Pattern]) -> "Bus":
        self.router.set_pattern(label, pattern)
        return self

    def remove_pattern(self, label: str) -> "Bus":
        self.router.remove_pattern(label)
        return self

    def get_pattern(self, label: str) -> Pattern:
        return self.router.get_pattern(label)

    def on(self, label: str, fn: Listener) -> "Bus":
        self.router.on(label, fn)
        return self

    def once(self, label: str, fn: Listener) -> "Bus":
        self.router.once(label, fn)
        return self

    def remove_listener(self, label: str, fn: Listener) -> "Bus":
        self.router.remove_listener(label, fn)
        return self

    def remove_all_listeners(self, label: Optional[str] = None) -> "Bus":
        self.router.remove_all_listeners(label)
        return self

    # Connection lifecycle

    async def connect(self):
        """Connect to the broker.

        Returns: the CONNACK reason code
        """
        if self.is_available():
            raise BusError("connect: bus already available")

        self._loop = asyncio.get_running_loop()
        self._connect_future = self._loop.create_future()
        self._closing = False

        client = self.client_factory(self.client_id, reconnect=self.reconnect)
        if self.settings["username"]:
            client.username_pw_set(self.settings["username"], self.settings["password"])
        if self.settings["tls"]:
            client.tls_set()

        client.on_connect = self._on_connect
        client.on_connect_fail = self._on_connect_fail
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        client.on_subscribe = self._on_ack
        client.on_unsubscribe = self._on_ack
        client.on_publish = self._on_publish

        self._client = client
        self._set_status(Status.CONNECTING)
        self.logger.info("Connecting", host=self.settings["host"], port=self.settings["port"],
                         client_id=self.client_id)

        try:
            client.connect_async(self.settings["host"], self.settings["port"], self.keepalive)
            client.loop_start()
            return await asyncio.wait_for(self._connect_future, self.timeout)
        except asyncio.TimeoutError:
            await self._teardown()
            error = BusError(f"connect: timed out after {self.timeout}s")
            self._set_status(Status.ERROR, error)
            raise error from None
        except BaseException:
            await self._teardown()
            raise
        finally:
            self._connect_future = None

    async def end(self):
        """Close the connection with the broker."""
        if not self.is_available():
            raise BusError("bus not available")

        self._closing = True
        self._client.disconnect()
        await self._teardown()
        self._subscription_topics = {}
        self.metrics.update_subscriptions(0)
        self._set_status(Status.CLOSED)
        self.logger.info("Connection closed", client_id=self.client_id)

    async def _teardown(self):
        client, self._client = self._client, None
        if client is None:
            return
        await asyncio.get_running_loop().run_in_executor(None, client.loop_stop)
        for future in self._pending.values():
            if not future.done():
                future.set_exception(BusError("bus not available"))
        self._pending.clear()

    # Subscriptions

    def _require_available(self, label: str) -> Pattern:
        if not self.is_available():
            raise BusError("bus not available")
        if label not in self.router:
            raise LabelError(f"unknown label ({label})")
        return self.router.get_pattern(label)

    async def subscribe(self, label: str, qos: Optional[int] = None) -> List[int]:
        """Subscribe to the topic of the pattern identified by ``label``.

        Returns: granted QoS / reason codes from the SUBACK
        """
        pattern = self._require_available(label)
        topic = pattern.topic
        if topic in self._subscription_topics:
            raise BusError(f"already subscribed to topic ({topic})")

        qos = self.qos if qos is None else qos
        result, mid = self._client.subscribe(topic, qos)
        self._check_result(result, "subscribe")
        granted = await self._wait_for(mid)

        self._subscription_topics[topic] = qos
        self.metrics.update_subscriptions(len(self._subscription_topics))
        self.logger.info("Subscribed", label=label, topic=topic, qos=qos)
        return _granted(granted)

    async def unsubscribe(self, label: str, remove_listeners: bool = False):
        """Unsubscribe from the topic identified by ``label``."""
        pattern = self._require_available(label)
        topic = pattern.topic
        if topic not in self._subscription_topics:
            raise BusError(f"not subscribed to topic ({topic})")

        result, mid = self._client.unsubscribe(topic)
        self._check_result(result, "unsubscribe")
        await self._wait_for(mid)

        del self._subscription_topics[topic]
        self.metrics.update_subscriptions(len(self._subscription_topics))
        if remove_listeners:
            self.remove_all_listeners(label)
        self.logger.info("Unsubscribed", label=label, topic=topic)

    # Publishing

    async def publish(self, label: str, params: Optional[Mapping[str, Any]], payload: Any,
                      qos: Optional[int] = None, retain: bool = False) -> str:
        """Publish ``payload`` on the topic built from ``params``.

        ``params`` must hold exactly ``parameter_count`` entries. The count is
        per wildcard, so a pattern that repeats a name (``+id/x/+id``) cannot
        be published through the bus; use ``Pattern.build_topic`` for those.

        Returns: the concrete topic published to
        """
        pattern = self._require_available(label)
        params = params or {}

        try:
            if len(params) != pattern.parameter_count:
                raise ParameterCountError(len(params), pattern.parameter_count)
            topic = pattern.build_topic(params)
        except ParameterError as e:
            self.metrics.record_publish_failure(label)
            self.logger.warn("Publish rejected", label=label, error=str(e))
            raise

        qos = self.qos if qos is None else qos
        info = self._client.publish(topic, encode_payload(payload), qos, retain)
        try:
            self._check_result(info.rc, "publish")
            await self._wait_for(info.mid)
        except BusError:
            self.metrics.record_publish_failure(label)
            raise

        self.metrics.record_publish(label)
        self.logger.debug("Published", label=label, topic=topic, qos=qos, retain=retain)
        return topic

    # Acknowledgement plumbing

    def _check_result(self, result, operation: str):
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise BusError(f"{operation} failed: {mqtt.error_string(result)}")

    async def _wait_for(self, mid: int):
        future = self._loop.create_future()
        self._pending[mid] = future
        try:
            return await asyncio.wait_for(future, self.timeout)
        except asyncio.TimeoutError:
            raise BusError(f"no acknowledgement for message {mid} after {self.timeout}s") from None
        finally:
            self._pending.pop(mid, None)

    def _call_in_loop(self, fn, *args):
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(fn, *args)

    def _settle(self, mid: int, result=None, error: Optional[BaseException] = None):
        future = self._pending.get(mid)
        if future is None or future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    # paho callbacks, called from the network thread

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        self._call_in_loop(self._handle_connect, reason_code)

    def _on_connect_fail(self, client, userdata):
        self._call_in_loop(self._handle_connect_fail)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._call_in_loop(self._handle_disconnect, reason_code)

    def _on_ack(self, client, userdata, mid, reason_codes, properties=None):
        failures = [code for code in reason_codes or [] if _is_failure(code)]
        if failures:
            error = BusError(f"broker rejected request: {', '.join(str(code) for code in failures)}")
            self._call_in_loop(self._settle, mid, None, error)
        else:
            self._call_in_loop(self._settle, mid, reason_codes)

    def _on_publish(self, client, userdata, mid, reason_code=None, properties=None):
        if reason_code is not None and _is_failure(reason_code):
            self._call_in_loop(self._settle, mid, None, BusError(f"publish rejected: {reason_code}"))
        else:
            self._call_in_loop(self._settle, mid, mid)

    def _on_message(self, client, userdata, msg):
        message = Message(topic=msg.topic, payload=msg.payload, qos=msg.qos, retain=bool(msg.retain))
        self._call_in_loop(self._handle_message, message)

    # Loop-side handlers

    def _handle_connect(self, reason_code):
        future = self._connect_future
        if _is_failure(reason_code):
            error = BusError(f"connection refused: {reason_code}")
            self._set_status(Status.ERROR, error)
            self.logger.error("Connection refused", reason=str(reason_code))
            if future is not None and not future.done():
                future.set_exception(error)
            return

        self._set_status(Status.CONNECTED)
        if future is not None and not future.done():
            self.logger.info("Connected", client_id=self.client_id)
            future.set_result(reason_code)
        elif self._client is not None:
            self.logger.info("Reconnected", client_id=self.client_id, topics=len(self._subscription_topics))
            for topic, qos in self._subscription_topics.items():
                self._client.subscribe(topic, qos)

    def _handle_connect_fail(self):
        error = BusError(f"could not connect to {self.settings['host']}:{self.settings['port']}")
        self._set_status(Status.ERROR, error)
        self.logger.error("Connection failed", host=self.settings["host"], port=self.settings["port"])
        future = self._connect_future
        if future is not None and not future.done():
            future.set_exception(error)

    def _handle_disconnect(self, reason_code):
        if self._closing:
            self._set_status(Status.CLOSED)
            return
        self._set_status(Status.RECONNECTING if self.reconnect else Status.OFFLINE)
        self.logger.warn("Connection lost", reason=str(reason_code), reconnecting=self.reconnect)

    def _handle_message(self, message: Message):
        started = time.perf_counter()
        message.is_json, message.json = decode_payload(message.payload)
        label = self.router.dispatch(message)
        self.metrics.record_received(label, time.perf_counter() - started)
