"""Web Push delivery for rain alerts."""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Mapping, Optional, Protocol

from pywebpush import WebPushException, webpush

from models.records import PushMessage

logger = logging.getLogger(__name__)

# Push services answer 404/410 once a subscription has expired or was revoked.
GONE_STATUS_CODES = frozenset({404, 410})


class DeliveryOutcome(str, Enum):
    delivered = "delivered"
    gone = "gone"
    failed = "failed"


class PushTransport(Protocol):
    def send(self, subscriber: Any, message: PushMessage) -> DeliveryOutcome:
        ...


def is_web_push_subscription(subscriber: Any) -> bool:
    if not isinstance(subscriber, Mapping):
        return False
    endpoint = subscriber.get("endpoint")
    keys = subscriber.get("keys")
    if not isinstance(endpoint, str) or not endpoint:
        return False
    if not isinstance(keys, Mapping):
        return False
    return isinstance(keys.get("p256dh"), str) and isinstance(keys.get("auth"), str)


class WebPushTransport:
    """Sends push messages through the browser push services using VAPID."""

    def __init__(
        self,
        vapid_private_key: Optional[str],
        vapid_contact: str,
        ttl: int = 3600,
    ) -> None:
        self.vapid_private_key = vapid_private_key
        self.vapid_contact = vapid_contact
        self.ttl = ttl

    def send(self, subscriber: Any, message: PushMessage) -> DeliveryOutcome:
        if not is_web_push_subscription(subscriber):
            return DeliveryOutcome.gone
        if not self.vapid_private_key:
            logger.warning(
                "Push credentials are not configured; skipping delivery",
                extra={"reason": "missing VAPID_PRIVATE_KEY"},
            )
            return DeliveryOutcome.failed

        try:
            webpush(
                subscription_info=dict(subscriber),
                data=json.dumps(message.as_payload()),
                vapid_private_key=self.vapid_private_key,
                # pywebpush fills in aud/exp on the claims dict, so pass a fresh one.
                vapid_claims={"sub": self.vapid_contact},
                ttl=self.ttl,
            )
        except WebPushException as exc:
            status = getattr(exc.response, "status_code", None)
            if status in GONE_STATUS_CODES:
                return DeliveryOutcome.gone
            logger.warning(
                "Push service rejected delivery",
                extra={"status": status, "reason": str(exc)},
            )
            return DeliveryOutcome.failed
        return DeliveryOutcome.delivered
