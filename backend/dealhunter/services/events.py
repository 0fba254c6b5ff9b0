"""In-process publication events for downstream subscribers.

Notification delivery lives outside this service; subscribers register a
handler and receive a DealPublished for every approved deal.
"""

import inspect
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Awaitable, Callable, List, Optional, Union

import structlog

from dealhunter.models.deal import Deal

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DealPublished:
    """Emitted once per newly published deal."""

    id: str
    title: str
    price: Decimal
    discount_percentage: Decimal
    image_url: Optional[str] = None

    @classmethod
    def from_deal(cls, deal: Deal) -> "DealPublished":
        return cls(
            id=str(deal.id),
            title=deal.title,
            price=deal.price,
            discount_percentage=deal.discount_percentage,
            image_url=deal.image_url,
        )

    def to_dict(self) -> dict:
        """External payload with camelCase keys; money as JSON numbers."""
        return {
            "id": self.id,
            "title": self.title,
            "price": float(self.price),
            "discountPercentage": float(self.discount_percentage),
            "imageUrl": self.image_url,
        }


EventHandler = Callable[[DealPublished], Union[None, Awaitable[None]]]


class DealEventBus:
    """Fan-out of DealPublished events to registered handlers.

    A failing handler is logged and never propagates to the publisher.
    """

    def __init__(self):
        self._handlers: List[EventHandler] = []
        self.logger = logger.bind(service="deal_event_bus")

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def publish(self, event: DealPublished) -> int:
        """Deliver an event to every handler.

        Returns:
            Number of handlers that completed without error
        """
        delivered = 0
        for handler in list(self._handlers):
            try:
                result: Any = handler(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                self.logger.error(
                    "deal_event_handler_failed",
                    deal_id=event.id,
                    handler=getattr(handler, "__name__", repr(handler)),
                    error=str(e),
                )
        self.logger.info("deal_published_event", deal_id=event.id, delivered=delivered)
        return delivered


_event_bus: Optional[DealEventBus] = None


def get_event_bus() -> DealEventBus:
    """Get the process-wide event bus."""
    global _event_bus
    if _event_bus is None:
        _event_bus = DealEventBus()
    return _event_bus
