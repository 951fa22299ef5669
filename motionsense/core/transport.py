"""Transport adapter interface for MotionSense."""

from __future__ import annotations

import abc
from typing import Callable, Optional

from ..models.broker_config import BrokerConfig

MessageHandler = Callable[[str, bytes], None]
ConnectedCallback = Callable[[], None]


class TransportAdapter(abc.ABC):
    """A publish/subscribe source of raw sensor messages.

    Implementations deliver messages to the registered handler on the
    asyncio event loop, one at a time and in arrival order.
    """

    simulated: bool = False

    def __init__(self) -> None:
        self._handler: Optional[MessageHandler] = None

    @abc.abstractmethod
    def configure(self, config: Optional[BrokerConfig]) -> None:
        """Store configuration for the next connect."""

    @abc.abstractmethod
    async def connect(self, on_connected: Optional[ConnectedCallback] = None) -> None:
        """Open the transport and start delivering messages.

        ``on_connected`` fires once the session is established and before
        the topic subscription is requested.
        """

    @abc.abstractmethod
    async def publish(self, topic: str, payload: bytes) -> None:
        """Publish a payload, best effort."""

    @abc.abstractmethod
    async def disconnect(self) -> None:
        """Close the transport. Calling it when already closed is a no-op."""

    @property
    @abc.abstractmethod
    def is_connected(self) -> bool:
        """Whether the transport currently delivers messages."""

    def on_message(self, handler: Optional[MessageHandler]) -> None:
        """Register the raw-message handler, replacing any previous one."""
        self._handler = handler
