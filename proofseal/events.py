"""
Typed event bus.

Components that change protocol state publish events; interested parties
subscribe by event type. A bus is owned by whoever composes the client
and is passed in explicitly; there is no global instance.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentSealed:
    owner: str
    blob_id: str
    policy_id: str


@dataclass(frozen=True)
class ProofSubmitted:
    owner: str
    digest: str


@dataclass(frozen=True)
class ProofMinted:
    owner: str
    digest: str
    record_id: str


@dataclass(frozen=True)
class AccessGranted:
    record_id: str
    viewer: str
    duration_epochs: int
    digest: str


@dataclass(frozen=True)
class AccessRevoked:
    record_id: str
    viewer: str
    digest: str


class EventBus:
    """
    Synchronous publish/subscribe keyed by event class.

    A failing subscriber is logged and does not stop delivery to the
    others: by the time an event is published the ledger write it
    describes has already landed.
    """

    def __init__(self):
        self._handlers = defaultdict(list)

    def subscribe(self, event_type: type, handler):
        """Register handler for event_type. Returns an unsubscribe callable."""
        self._handlers[event_type].append(handler)

        def unsubscribe():
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)

        return unsubscribe

    def publish(self, event) -> int:
        """Deliver event to its subscribers. Returns how many succeeded."""
        delivered = 0
        for handler in list(self._handlers[type(event)]):
            try:
                handler(event)
                delivered += 1
            except Exception:
                logger.exception("subscriber %r failed on %s", handler, type(event).__name__)
        return delivered
