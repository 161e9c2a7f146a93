"""Prometheus counters for reconciliation outcomes."""
import logging
from typing import Optional, Tuple

from prometheus_client import REGISTRY, CollectorRegistry, Counter, start_http_server

logger = logging.getLogger(__name__)


def parse_listen(listen: str) -> Tuple[str, int]:
    """
    Split a "host:port" listen address.

    An empty host (":9090") binds all interfaces.

    Raises:
        ValueError: If the port is missing, not a number or out of range
    """
    host, sep, port = listen.rpartition(":")
    if not sep or not port.isdigit() or int(port) > 65535:
        raise ValueError(f"invalid listen address: {listen!r}")
    return host or "0.0.0.0", int(port)


class SyncMetrics:
    """Success and error counters, one increment per iteration."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else REGISTRY
        self.success_count = Counter(
            "tls_secret_sync_success_count",
            "The successfully sync count",
            registry=self.registry,
        )
        self.error_count = Counter(
            "tls_secret_sync_error_count",
            "The error count",
            registry=self.registry,
        )

    def record(self, success: bool) -> None:
        if success:
            self.success_count.inc()
        else:
            self.error_count.inc()

    def serve(self, listen: str) -> None:
        """Expose /metrics on a background thread."""
        host, port = parse_listen(listen)
        start_http_server(port, addr=host, registry=self.registry)
        logger.info(f"Metrics server listening on {host}:{port}")
