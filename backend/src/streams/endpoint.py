import asyncio
import logging
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional

from models import BroadcastHub, Subscriber
from utilities import HEARTBEAT_INTERVAL, format_comment, format_event

logger = logging.getLogger(__name__)


class StreamState(str, Enum):
    CREATED = "created"
    SUBSCRIBED = "subscribed"
    CLOSED = "closed"


class StreamClosedError(RuntimeError):
    pass


class StreamEndpoint:
    """
    Binds one client connection to one hub subscription.

    ``events()`` drives a Server-Sent Events response; ``pump()`` drives any
    transport with an async ``write(text)``. Both unsubscribe on every way
    out: client disconnect, failed write or cancellation.
    """

    def __init__(self, hub: BroadcastHub, heartbeat_interval: float = HEARTBEAT_INTERVAL):
        self.hub = hub
        self.heartbeat_interval = heartbeat_interval
        self.state = StreamState.CREATED
        self.subscriber: Optional[Subscriber] = None

    def open(self) -> Subscriber:
        if self.state is StreamState.CLOSED:
            raise StreamClosedError("stream endpoint is closed")
        if self.subscriber is None:
            self.subscriber = self.hub.subscribe()
            self.state = StreamState.SUBSCRIBED
        return self.subscriber

    def close(self) -> None:
        if self.state is StreamState.CLOSED:
            return
        if self.subscriber is not None:
            self.hub.unsubscribe(self.subscriber)
        self.state = StreamState.CLOSED

    async def _next(self, sub: Subscriber) -> Optional[str]:
        # None means the heartbeat interval elapsed with nothing to send
        if not self.heartbeat_interval:
            return await sub.queue.get()
        try:
            return await asyncio.wait_for(sub.queue.get(), timeout=self.heartbeat_interval)
        except asyncio.TimeoutError:
            return None

    async def events(self) -> AsyncIterator[str]:
        try:
            sub = self.open()
            while True:
                message = await self._next(sub)
                if message is None:
                    yield format_comment("ping")
                else:
                    yield format_event(message)
        finally:
            # generator closed by the server: client gone or write failed
            logger.info("stream %s closed", self.subscriber.token if self.subscriber else "-")
            self.close()

    async def pump(self, write: Callable[[str], Awaitable[None]]) -> None:
        """
        Write each message with ``write`` until the connection fails or the
        task is cancelled.
        """
        try:
            sub = self.open()
            while True:
                message = await sub.queue.get()
                try:
                    await write(message)
                except Exception:
                    # (broken pipe / closed) -> stop
                    logger.info("write to stream %s failed, closing", sub.token)
                    break
        finally:
            self.close()
