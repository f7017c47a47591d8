"""Prometheus metrics export for topicbus."""

from prometheus_client import Counter, Gauge, Histogram, start_http_server


# Module-level metrics, registered once per process
_metrics_initialized = False
_messages_received = None
_messages_matched = None
_messages_unmatched = None
_messages_published = None
_publish_failures = None
_subscriptions = None
_dispatch_time = None


def _init_metrics():
    """Initialize metrics only once."""
    global _metrics_initialized, _messages_received, _messages_matched, _messages_unmatched
    global _messages_published, _publish_failures, _subscriptions, _dispatch_time

    if _metrics_initialized:
        return

    _messages_received = Counter('topicbus_messages_received_total', 'Total messages received')
    _messages_matched = Counter('topicbus_messages_matched_total', 'Messages dispatched to a label', ['label'])
    _messages_unmatched = Counter('topicbus_messages_unmatched_total', 'Messages matching no pattern')
    _messages_published = Counter('topicbus_messages_published_total', 'Messages published', ['label'])
    _publish_failures = Counter('topicbus_publish_failures_total', 'Rejected or failed publishes', ['label'])

    _subscriptions = Gauge('topicbus_subscriptions', 'Active topic subscriptions')
    _dispatch_time = Histogram('topicbus_dispatch_seconds', 'Time spent matching and dispatching a message',
                               buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1])

    _metrics_initialized = True


class PrometheusMetrics:
    """Prometheus metrics collector."""

    _server_started = False

    def __init__(self, port: int = 9090):
        self.port = port
        _init_metrics()

        self.messages_received = _messages_received
        self.messages_matched = _messages_matched
        self.messages_unmatched = _messages_unmatched
        self.messages_published = _messages_published
        self.publish_failures = _publish_failures
        self.subscriptions = _subscriptions
        self.dispatch_time = _dispatch_time

    def start(self):
        """Start Prometheus metrics server."""
        if not PrometheusMetrics._server_started:
            start_http_server(self.port)
            PrometheusMetrics._server_started = True

    def record_received(self, label=None, duration: float = 0.0):
        """Record an incoming message and where it went."""
        self.messages_received.inc()
        self.dispatch_time.observe(duration)
        if label is None:
            self.messages_unmatched.inc()
        else:
            self.messages_matched.labels(label=label).inc()

    def record_publish(self, label: str):
        """Record a successful publish."""
        self.messages_published.labels(label=label).inc()

    def record_publish_failure(self, label: str):
        """Record a rejected or failed publish."""
        self.publish_failures.labels(label=label).inc()

    def update_subscriptions(self, count: int):
        """Update active subscriptions metric."""
        self.subscriptions.set(count)
