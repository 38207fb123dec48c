"""
payproof/core/events.py

State-change notifications.

Every administrative change and every accepted payment produces one
VerifierEvent. Events are delivered synchronously, after the change has
been committed, to every subscribed listener, and kept in an in-memory
history for inspection.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List

from payproof.core.time import utc_timestamp

logger = logging.getLogger(__name__)


class EventType(Enum):
    PROVIDER_HASH_ADDED = "provider_hash_added"
    PROVIDER_HASH_REMOVED = "provider_hash_removed"
    CURRENCY_ADDED = "currency_added"
    CURRENCY_REMOVED = "currency_removed"
    TIMESTAMP_BUFFER_SET = "timestamp_buffer_set"
    MIN_WITNESS_SIGNATURES_UPDATED = "min_witness_signatures_updated"
    PAYMENT_VERIFIED = "payment_verified"
    NULLIFIER_ADDED = "nullifier_added"
    WRITE_PERMISSION_ADDED = "write_permission_added"
    WRITE_PERMISSION_REMOVED = "write_permission_removed"
    PAYMENT_METHOD_VERIFIER_SET = "payment_method_verifier_set"
    PAYMENT_METHOD_VERIFIER_REMOVED = "payment_method_verifier_removed"


@dataclass
class VerifierEvent:
    event_type: EventType
    source: str
    args: Dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "timestamp": self.timestamp,
            "event_type": self.event_type.value,
            "source": self.source,
            "args": self.args,
        }


Listener = Callable[[VerifierEvent], None]


class EventBus:
    """
    Fan-out of VerifierEvents to listeners.

    A listener that raises is logged and skipped; the change that produced
    the event has already been committed and is not undone.
    """

    def __init__(self, source: str):
        self.source = source
        self._listeners: List[Listener] = []
        self._history: List[VerifierEvent] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.remove(listener)

    def emit(self, event_type: EventType, **args) -> VerifierEvent:
        event = VerifierEvent(event_type=event_type, source=self.source, args=args)
        with self._lock:
            self._history.append(event)
            listeners = list(self._listeners)

        logger.info("%s: %s %s", self.source, event_type.value, args)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed for %s", event_type.value)
        return event

    @property
    def history(self) -> List[VerifierEvent]:
        with self._lock:
            return list(self._history)

    def of_type(self, event_type: EventType) -> List[VerifierEvent]:
        return [e for e in self.history if e.event_type is event_type]
