"""
The relay loop: Yammer feeds in, Slack threads out.

One producer polls each configured feed for messages newer than the
feed's watermark and puts them, oldest first, on a bounded queue. One
consumer takes batches off the queue, resolves each message's Slack
thread and posts the message under it. The producer waits for the queue
to drain before it saves the watermarks and sleeps until the next cycle.

Watermarks only move over the unbroken run of successfully relayed
messages at the start of a batch. A message that fails to post keeps the
watermark where it is, so the next cycle (or the next start) retries it.
Messages after it that did go through are remembered by id and not
posted again while the watermark catches up.
"""

import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, Sequence

from .error_handling import (
    AuthenticationError,
    CommunicationError,
    DataError,
    RateLimitError,
    RetryConfig,
)
from .models import Feed, Message, Reference, find_reference
from .monitoring import get_logger
from .resolver import Destination, ThreadChannelResolver, display_name
from .state import WatermarkTracker

logger = get_logger(__name__, "relay")

DEFAULT_FEEDS = ("received", "private")
DEFAULT_SLEEP = 60.0
DEFAULT_QUEUE_SIZE = 16

_SHUTDOWN = object()


class FeedSource(Protocol):
    """The Yammer call the loop needs."""

    def get_feed(self, feed: str, newer_than: int = 0, limit: int = 0) -> Feed: ...


@dataclass
class Batch:
    """New messages of one feed, oldest first."""

    feed: str
    messages: list[Message]
    references: list[Reference]


@dataclass
class CycleStats:
    """What one cycle did."""

    fetched: int = 0
    relayed: int = 0
    skipped: int = 0
    failed: int = 0
    aborted: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.aborted and not self.failed and not self.errors


class RelayLoop:
    """Polls Yammer feeds and relays new messages into Slack threads."""

    def __init__(
        self,
        source: FeedSource,
        resolver: ThreadChannelResolver,
        destination: Destination,
        watermarks: WatermarkTracker,
        feeds: Sequence[str] = DEFAULT_FEEDS,
        sleep: float = DEFAULT_SLEEP,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        retry_config: Optional[RetryConfig] = None,
        reauthorize: Optional[Callable[[], None]] = None,
    ):
        """
        Initialize relay loop.

        Args:
            source: Yammer client
            resolver: Thread to channel resolver
            destination: Slack client
            watermarks: Per-feed watermarks
            feeds: Feed names to poll
            sleep: Seconds between cycles
            queue_size: Maximum batches waiting for the consumer
            retry_config: Backoff after failing cycles
            reauthorize: Called before a cycle that follows an
                authentication failure; runs the interactive handshake
        """
        self.source = source
        self.resolver = resolver
        self.destination = destination
        self.watermarks = watermarks
        self.feeds = tuple(feeds)
        self.sleep = sleep
        self.retry_config = retry_config or RetryConfig()
        self.reauthorize = reauthorize

        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._consumer: Optional[threading.Thread] = None
        self._stats = CycleStats()
        self._fatal: Optional[Exception] = None
        self._needs_auth = False
        self._failures = 0
        # Ids handled above each feed's watermark
        self._seen: dict[str, set[int]] = {}

    def fetch(self, feed: str) -> Batch:
        """
        Fetch the messages of ``feed`` newer than its watermark.

        Raises:
            NetworkError: If the feed cannot be fetched; the watermark is
                untouched
            AuthenticationError: If Yammer credentials are unusable
        """
        mark = self.watermarks.get(feed)
        page = self.source.get_feed(feed, newer_than=mark)
        messages = sorted((m for m in page.messages if m.id > mark), key=lambda m: m.id)
        logger.debug("Feed fetched", feed=feed, since=mark, count=len(messages))
        return Batch(feed=feed, messages=messages, references=page.references)

    def relay_message(self, message: Message, references: list[Reference]) -> bool:
        """
        Relay one message into its Slack thread.

        The thread starter itself is not posted again; resolving its
        thread already posted it as the opening message.

        Returns:
            False if there was nothing to post

        Raises:
            CommunicationError: If resolving or posting fails
        """
        if not message.body.strip():
            return False

        thread = self.resolver.resolve(message, references)
        if message.id == message.thread_id and not message.replied_to_id:
            return False

        sender = find_reference(references, message.sender_id, "user")
        try:
            self.destination.post_message(
                thread.channel_id,
                message.body,
                username=display_name(sender),
                icon_url=sender.mugshot_url,
                thread_ts=thread.ts,
            )
        except CommunicationError:
            # The channel may have been archived or left since it was checked
            self.resolver.forget(thread.channel_id)
            raise
        logger.info(
            "Message relayed",
            message_id=message.id,
            channel=thread.channel_name,
            sender=sender.full_name,
        )
        return True

    def process(self, batch: Batch, stats: CycleStats) -> None:
        """
        Relay a batch in order, advancing its feed's watermark.

        Messages whose thread failed earlier in the batch are held back
        so replies keep their order. Messages handled above a held
        watermark are remembered and not relayed again.

        Raises:
            AuthenticationError: Aborts the rest of the batch
            CommunicationError: If the error is not recoverable
        """
        seen = self._seen.setdefault(batch.feed, set())
        advancing = True
        failed_threads: set[int] = set()
        for message in batch.messages:
            if message.id in seen:
                if advancing:
                    self.watermarks.advance(batch.feed, message.id)
                continue
            if message.thread_id in failed_threads:
                stats.failed += 1
                advancing = False
                continue
            try:
                if self.relay_message(message, batch.references):
                    stats.relayed += 1
                else:
                    stats.skipped += 1
            except AuthenticationError:
                raise
            except DataError as e:
                # Retrying cannot fix missing data; drop the message
                logger.error(
                    "Message dropped", feed=batch.feed, message_id=message.id, error=e
                )
                stats.skipped += 1
            except CommunicationError as e:
                if not e.recoverable:
                    raise
                logger.warning(
                    "Message not relayed",
                    feed=batch.feed,
                    message_id=message.id,
                    thread_id=message.thread_id,
                    error=e,
                )
                stats.failed += 1
                stats.errors.append(str(e))
                failed_threads.add(message.thread_id)
                advancing = False
                continue

            if advancing:
                self.watermarks.advance(batch.feed, message.id)
            else:
                seen.add(message.id)

        mark = self.watermarks.get(batch.feed)
        seen.difference_update([i for i in seen if i <= mark])

    def run_cycle(self) -> CycleStats:
        """
        Run one poll-and-relay cycle in the calling thread.

        Returns:
            Statistics of the cycle

        Raises:
            CommunicationError: If an unrecoverable error occurs
        """
        stats = CycleStats()
        if not self._prepare(stats):
            return stats
        for feed in self.feeds:
            batch = self._fetch_safely(feed, stats)
            if batch is None:
                if stats.aborted:
                    break
                continue
            try:
                self.process(batch, stats)
            except AuthenticationError as e:
                self._abort(stats, e)
                break
        self.watermarks.save()
        self._finish(stats)
        return stats

    def run(self, loops: int = 0) -> None:
        """
        Run cycles with a consumer thread until ``loops`` cycles are done.

        Args:
            loops: Number of cycles; 0 runs until interrupted

        Raises:
            CommunicationError: If an unrecoverable error occurs
        """
        self._start_consumer()
        cycle = 0
        try:
            while loops <= 0 or cycle < loops:
                cycle += 1
                self._produce()
                if loops > 0 and cycle >= loops:
                    break
                time.sleep(self._delay())
        finally:
            self._stop_consumer()

    def _produce(self) -> CycleStats:
        """One cycle with batches handed to the consumer thread."""
        stats = CycleStats()
        self._stats = stats
        if not self._prepare(stats):
            return stats
        for feed in self.feeds:
            batch = self._fetch_safely(feed, stats)
            if batch is None:
                if stats.aborted:
                    break
                continue
            self._queue.put(batch)
        self._queue.join()
        if self._fatal is not None:
            raise self._fatal
        self.watermarks.save()
        self._finish(stats)
        return stats

    def _consume(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _SHUTDOWN:
                    return
                stats = self._stats
                if stats.aborted or self._fatal is not None:
                    continue
                try:
                    self.process(item, stats)
                except AuthenticationError as e:
                    self._abort(stats, e)
                except Exception as e:  # re-raised by the producer
                    self._fatal = e
            finally:
                self._queue.task_done()

    def _start_consumer(self) -> None:
        self._fatal = None
        self._consumer = threading.Thread(
            target=self._consume, name="relay-consumer", daemon=True
        )
        self._consumer.start()

    def _stop_consumer(self) -> None:
        if self._consumer is None:
            return
        self._queue.put(_SHUTDOWN)
        self._consumer.join()
        self._consumer = None

    def _prepare(self, stats: CycleStats) -> bool:
        """Rerun authorization after an authentication failure."""
        if not self._needs_auth or self.reauthorize is None:
            return True
        try:
            self.reauthorize()
        except AuthenticationError as e:
            self._abort(stats, e)
            return False
        self._needs_auth = False
        return True

    def _fetch_safely(self, feed: str, stats: CycleStats) -> Optional[Batch]:
        try:
            batch = self.fetch(feed)
        except AuthenticationError as e:
            self._abort(stats, e)
            return None
        except RateLimitError as e:
            logger.warning("Feed rate limited", feed=feed, retry_after=e.retry_after)
            stats.errors.append(str(e))
            return None
        except CommunicationError as e:
            if not e.recoverable:
                raise
            logger.warning("Feed fetch failed", feed=feed, error=e)
            stats.errors.append(str(e))
            return None
        stats.fetched += len(batch.messages)
        return batch

    def _abort(self, stats: CycleStats, error: AuthenticationError) -> None:
        logger.error("Cycle aborted", error=error)
        stats.aborted = True
        stats.errors.append(str(error))
        self._needs_auth = True

    def _finish(self, stats: CycleStats) -> None:
        if stats.clean:
            self._failures = 0
        else:
            self._failures += 1
        logger.info(
            "Cycle finished",
            fetched=stats.fetched,
            relayed=stats.relayed,
            skipped=stats.skipped,
            failed=stats.failed,
            watermarks=self.watermarks.to_dict(),
        )

    def _delay(self) -> float:
        """Regular sleep after a clean cycle, backoff after a failing one."""
        if self._failures == 0:
            return self.sleep
        return max(self.sleep, self.retry_config.delay_for(self._failures - 1))
