"""Per-instance publish/subscribe channels."""

from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

T = TypeVar("T")

Handler = Callable[[T], Awaitable[Any]]


class Subscription(Generic[T]):
    """Handle returned by ``Topic.subscribe``; cancel it to stop delivery."""

    def __init__(self, topic: "Topic[T]", handler: Handler):
        self.topic = topic
        self.handler = handler

    @property
    def active(self) -> bool:
        return self in self.topic._subscriptions

    def cancel(self) -> None:
        self.topic._remove(self)


class Topic(Generic[T]):
    """
    Ordered list of async handlers for one event stream.

    ``publish`` awaits each handler in subscription order. A failing handler
    is logged and the remaining handlers still run.
    """

    def __init__(self, name: str):
        self.name = name
        self._subscriptions: list[Subscription[T]] = []

    def subscribe(self, handler: Handler) -> Subscription[T]:
        # Bound methods compare equal but are rebuilt on every attribute access
        existing = self._find(handler)
        if existing is not None:
            return existing
        subscription = Subscription(self, handler)
        self._subscriptions.append(subscription)
        return subscription

    def _find(self, handler: Handler) -> Optional[Subscription[T]]:
        for subscription in self._subscriptions:
            if subscription.handler == handler:
                return subscription
        return None

    def _remove(self, subscription: Subscription[T]) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def __len__(self) -> int:
        return len(self._subscriptions)

    async def publish(self, event: T) -> None:
        for subscription in list(self._subscriptions):
            try:
                await subscription.handler(event)
            except Exception as e:
                logger.error(
                    "Topic handler failed",
                    topic=self.name,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True
                )
