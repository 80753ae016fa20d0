import asyncio
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterator, Optional

from utilities import SUBSCRIBER_QUEUE_SIZE

logger = logging.getLogger(__name__)


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


# ------------ In-memory structures ------------
class Subscriber:
    ''' One registered listener: identity token plus its delivery queue.'''

    def __init__(self, maxsize: int = SUBSCRIBER_QUEUE_SIZE):

        # initialize fields
        self.token = uuid.uuid4().hex

        # per subscriber message buffer
        # publisher should never wait for a slow subscriber
        # if the queue is full the message is dropped for this subscriber only
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

        # loop that drains the queue; None when subscribed outside a loop
        self.loop = _running_loop()
        self.closed = False

        # stats
        self.delivered = 0
        self.dropped = 0

    def offer(self, message: str) -> bool:
        """
        Hand ``message`` to this subscriber without blocking.

        From a thread other than the owning loop's the put is scheduled on
        that loop, and True only means the hand-off was made.
        """
        if self.closed:
            return False
        if self.loop is None or self.loop is _running_loop():
            return self._put(message)
        try:
            self.loop.call_soon_threadsafe(self._put, message)
        except RuntimeError:
            # owning loop already closed
            return False
        return True

    def _put(self, message: str) -> bool:
        if self.closed:
            return False
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.debug("subscriber %s queue full, message dropped", self.token)
            return False
        self.delivered += 1
        return True


class BroadcastHub:
    ''' Registry of live subscribers and fan-out of published messages.'''

    def __init__(self, queue_size: int = SUBSCRIBER_QUEUE_SIZE):
        self.queue_size = queue_size
        self.subscribers: Dict[str, Subscriber] = {}
        self.lock = threading.Lock()
        # stats
        self.started_at = datetime.now(timezone.utc)
        self.messages_published = 0
        self._retired_dropped = 0

    def subscribe(self) -> Subscriber:
        sub = Subscriber(self.queue_size)
        with self.lock:
            self.subscribers[sub.token] = sub
        logger.debug("subscribed %s", sub.token)
        return sub

    def unsubscribe(self, sub: Subscriber) -> bool:
        # locking before critical section
        with self.lock:
            removed = self.subscribers.pop(sub.token, None)
            sub.closed = True
            if removed is not None:
                self._retired_dropped += removed.dropped
        if removed is not None:
            logger.debug("unsubscribed %s", sub.token)
        return removed is not None

    @contextmanager
    def subscription(self) -> Iterator[Subscriber]:
        sub = self.subscribe()
        try:
            yield sub
        finally:
            self.unsubscribe(sub)

    def publish(self, message: str) -> int:
        """
        Offer ``message`` to every current subscriber and return how many
        accepted it.

        Fan-out happens under the registry lock so a concurrent subscribe or
        unsubscribe sees the publish either entirely before or after it. The
        puts never block; a full queue loses this one message. Subscribers
        owned by another thread's loop count as soon as the put is scheduled.
        """
        delivered = 0
        with self.lock:
            self.messages_published += 1
            for sub in self.subscribers.values():
                if sub.offer(message):
                    delivered += 1
        return delivered

    @property
    def subscriber_count(self) -> int:
        with self.lock:
            return len(self.subscribers)

    @property
    def messages_dropped(self) -> int:
        with self.lock:
            return self._retired_dropped + sum(s.dropped for s in self.subscribers.values())
