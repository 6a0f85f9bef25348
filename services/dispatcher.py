"""Fan-out of push notifications to the subscriber registry."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait as wait_for_futures
from functools import lru_cache
from threading import Lock
from typing import Any, Optional, Set

from models.records import PushMessage
from services.push import DeliveryOutcome, PushTransport, WebPushTransport
from services.subscribers import SubscriberRegistry
from settings import get_settings

logger = logging.getLogger(__name__)


def _describe(subscriber: Any) -> str:
    endpoint = subscriber.get("endpoint") if isinstance(subscriber, dict) else None
    if isinstance(endpoint, str):
        return endpoint
    return repr(subscriber)[:80]


class NotificationDispatcher:
    """Delivers one message to every subscriber on a bounded worker pool.

    Each subscriber is its own fault domain: a failed delivery never affects
    the others. Subscribers the transport reports as gone are pruned from the
    registry.
    """

    def __init__(
        self,
        registry: SubscriberRegistry,
        transport: PushTransport,
        workers: int = 4,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="push")
        self._futures: Set[Future[DeliveryOutcome]] = set()
        self._futures_lock = Lock()

    def dispatch(self, message: PushMessage) -> list[Future[DeliveryOutcome]]:
        """Schedule delivery to a snapshot of the registry and return immediately."""
        subscribers = self.registry.snapshot()
        logger.info(
            "Dispatching rain alert",
            extra={"subscriber_count": len(subscribers)},
        )
        futures: list[Future[DeliveryOutcome]] = []
        for subscriber in subscribers:
            future = self.executor.submit(self._deliver, subscriber, message)
            with self._futures_lock:
                self._futures.add(future)
            future.add_done_callback(self._clear_future)
            futures.append(future)
        return futures

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight deliveries; returns False if some are still pending."""
        with self._futures_lock:
            pending = set(self._futures)
        if not pending:
            return True
        _, not_done = wait_for_futures(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting deliveries, optionally letting queued ones finish."""
        self.executor.shutdown(wait=wait, cancel_futures=not wait)

    def _clear_future(self, future: Future[DeliveryOutcome]) -> None:
        with self._futures_lock:
            self._futures.discard(future)

    def _deliver(self, subscriber: Any, message: PushMessage) -> DeliveryOutcome:
        endpoint = _describe(subscriber)
        try:
            outcome = self.transport.send(subscriber, message)
        except Exception:
            logger.exception(
                "Push delivery raised; keeping subscriber",
                extra={"subscriber": endpoint},
            )
            return DeliveryOutcome.failed

        if outcome is DeliveryOutcome.gone:
            self.registry.remove(subscriber)
            logger.info(
                "Removed stale push subscriber",
                extra={"subscriber": endpoint, "outcome": outcome.value},
            )
        elif outcome is DeliveryOutcome.failed:
            logger.warning(
                "Push delivery failed; subscriber kept",
                extra={"subscriber": endpoint, "outcome": outcome.value},
            )
        return outcome


@lru_cache
def build_default_registry() -> SubscriberRegistry:
    return SubscriberRegistry()


@lru_cache
def build_default_dispatcher(workers: Optional[int] = None) -> NotificationDispatcher:
    """Factory that wires the dispatcher to Web Push using configured credentials."""
    settings = get_settings()
    transport = WebPushTransport(
        vapid_private_key=settings.vapid_private_key,
        vapid_contact=settings.vapid_contact,
    )
    worker_count = workers or settings.notifier_workers
    return NotificationDispatcher(
        registry=build_default_registry(),
        transport=transport,
        workers=worker_count,
    )
