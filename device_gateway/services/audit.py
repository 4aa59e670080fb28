"""Audit events and operation metrics.

Every state-changing or authentication-related operation emits one
structured audit event and updates Prometheus counters and latency
histograms. Recording is best-effort: a failing sink is logged and the
calling operation continues.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Histogram
from pydantic import BaseModel, Field

from device_gateway.core.errors import DeviceGatewayError
from device_gateway.core.models.access import utcnow
from device_gateway.security.redaction import redact

logger = logging.getLogger(__name__)

LATENCY_BUCKETS = [0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, float("inf")]


class AuditCategory(str, Enum):
    AUTHENTICATION = "authentication"
    DEVICE_CONTROL = "device_control"
    SECURITY = "security"
    CONFIGURATION = "configuration"


class AuditOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"
    WARNING = "warning"


class AuditEvent(BaseModel):
    """One structured audit entry.

    Attributes:
        event_id: Unique event identifier
        timestamp: When the event was recorded
        category: Event category
        action: Operation name (e.g., 'unlock', 'token_refresh')
        outcome: Result of the operation
        metadata: Sanitized context (device id, latency, error)
    """

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = Field(default_factory=utcnow)
    category: AuditCategory
    action: str
    outcome: AuditOutcome
    metadata: dict[str, Any] = Field(default_factory=dict)


def sanitize_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    """Redact secrets from metadata values and flatten errors."""
    clean: dict[str, Any] = {}
    for key, value in metadata.items():
        if isinstance(value, DeviceGatewayError):
            clean[key] = value.user_message
        elif isinstance(value, BaseException):
            clean[key] = redact(f"{type(value).__name__}: {value}")
        elif isinstance(value, Enum):
            clean[key] = value.value
        elif isinstance(value, str):
            clean[key] = redact(value)
        else:
            clean[key] = value
    return clean


class MetricsRecorder:
    """Prometheus counters and histograms for gateway operations.

    Each recorder owns its CollectorRegistry unless one is passed in, so
    several recorders (e.g., one per test) never collide.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.operations = Counter(
            "device_gateway_operations_total",
            "Audited operations by category, action and outcome",
            ["category", "action", "outcome"],
            registry=self.registry,
        )
        self.latency = Histogram(
            "device_gateway_operation_latency_seconds",
            "Operation latency in seconds",
            ["operation"],
            buckets=LATENCY_BUCKETS,
            registry=self.registry,
        )

    def count(self, category: str, action: str, outcome: str) -> None:
        self.operations.labels(category=category, action=action, outcome=outcome).inc()

    def observe_latency(self, operation: str, seconds: float) -> None:
        self.latency.labels(operation=operation).observe(seconds)


class AuditLogger:
    """Audit and metrics sink injected into gateway components.

    Events go to a dedicated logger as structured records and into a
    bounded in-memory buffer of recent events.

    Attributes:
        metrics: Metrics recorder updated alongside each event
    """

    def __init__(
        self,
        metrics: MetricsRecorder | None = None,
        event_logger: logging.Logger | None = None,
        buffer_size: int = 1000,
    ) -> None:
        self.metrics = metrics or MetricsRecorder()
        self._event_logger = event_logger or logging.getLogger("device_gateway.audit")
        self._recent: deque[AuditEvent] = deque(maxlen=buffer_size)

    @property
    def recent_events(self) -> list[AuditEvent]:
        return list(self._recent)

    def record(
        self,
        category: AuditCategory,
        action: str,
        outcome: AuditOutcome,
        **metadata: Any,
    ) -> AuditEvent | None:
        """Record one audit event.

        Args:
            category: Event category
            action: Operation name
            outcome: Operation outcome
            **metadata: Context values; secrets are redacted

        Returns:
            The recorded event, or None if the sink failed
        """
        try:
            event = AuditEvent(
                category=category,
                action=action,
                outcome=outcome,
                metadata=sanitize_metadata(metadata),
            )
            level = logging.INFO if outcome != AuditOutcome.FAILED else logging.WARNING
            self._event_logger.log(
                level,
                f"{category.value}.{action}: {outcome.value}",
                extra={
                    "audit_event_id": event.event_id,
                    "audit_category": category.value,
                    "audit_action": action,
                    "audit_outcome": outcome.value,
                    "audit_metadata": event.metadata,
                },
            )
            self._recent.append(event)
            self.metrics.count(category.value, action, outcome.value)
            return event
        except Exception as e:
            logger.error(f"Audit sink failure for {action}: {e}")
            return None

    def observe_latency(self, operation: str, seconds: float) -> None:
        try:
            self.metrics.observe_latency(operation, seconds)
        except Exception as e:
            logger.error(f"Metrics sink failure for {operation}: {e}")

    @contextmanager
    def timed(self, operation: str) -> Iterator[None]:
        """Record the block's latency under `operation`, even on error."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.observe_latency(operation, time.perf_counter() - start)
