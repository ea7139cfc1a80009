"""
Notification bus -- in-process fan-out of invoice events.

Responsibility:
    Deliver ``InvoiceEvent`` messages (upload, transition, risk outcome)
    to registered subscribers after the originating transaction commits.

Architecture position:
    Services -- consumed by InvoiceWorkflow.  Delivery channels (push,
    e-mail, in-app) are subscribers; the bus knows nothing about them.

Invariants enforced:
    - Events are published only for committed state; a rolled-back
      transaction publishes nothing.
    - A failing subscriber never affects the publisher or other
      subscribers.

Failure modes:
    - Subscriber exceptions are logged with traceback and dropped.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from payables_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class InvoiceEventType(str, Enum):
    INVOICE_UPLOADED = "invoice_uploaded"
    INVOICE_TRANSITIONED = "invoice_transitioned"
    RISK_ASSESSED = "risk_assessed"


@dataclass(frozen=True)
class InvoiceEvent:
    """Something that happened to an invoice."""

    event_type: InvoiceEventType
    invoice_id: UUID
    occurred_at: datetime
    actor_id: UUID | None = None
    payload: dict[str, Any] = field(default_factory=dict)


Subscriber = Callable[[InvoiceEvent], None]


class NotificationBus:
    """Synchronous publish/subscribe for invoice events.

    Safe to use from the risk-scoring worker threads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[tuple[Subscriber, frozenset[InvoiceEventType] | None]] = []

    def subscribe(
        self,
        subscriber: Subscriber,
        event_types: Iterable[InvoiceEventType] | None = None,
    ) -> Callable[[], None]:
        """Register ``subscriber``; returns a callable that unregisters it.

        ``event_types=None`` subscribes to every event type.
        """
        entry = (subscriber, frozenset(event_types) if event_types is not None else None)
        with self._lock:
            self._subscribers.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def publish(self, event: InvoiceEvent) -> int:
        """Deliver ``event``; returns how many subscribers received it cleanly."""
        with self._lock:
            targets = [
                s for s, types in self._subscribers
                if types is None or event.event_type in types
            ]

        delivered = 0
        for subscriber in targets:
            try:
                subscriber(event)
            except Exception:
                logger.exception(
                    "notification_subscriber_failed",
                    extra={
                        "event_type": event.event_type.value,
                        "invoice_id": str(event.invoice_id),
                        "subscriber": getattr(subscriber, "__qualname__", repr(subscriber)),
                    },
                )
                continue
            delivered += 1

        logger.debug(
            "notification_published",
            extra={
                "event_type": event.event_type.value,
                "invoice_id": str(event.invoice_id),
                "subscribers": len(targets),
                "delivered": delivered,
            },
        )
        return delivered
