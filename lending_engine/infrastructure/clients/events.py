"""Outbound servicing events for notification and CRM collaborators"""

import httpx
import asyncio
import logging
import uuid
from typing import Dict, Any, List
from lending_engine.config import settings
from lending_engine.infrastructure.observability.metrics import event_webhook_latency_histogram, event_webhook_failure_counter
from lending_engine.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

EVENT_ID_HEADER = "X-Event-Id"


def envelope(event: Dict[str, Any]) -> Dict[str, Any]:
    """Stamp an event with the id receivers dedupe redeliveries on"""
    return {"event_id": str(uuid.uuid4()), "occurred_at": utcnow().isoformat(), **event}


class EventClient:
    """
    Publishes servicing events (PAYMENT_COMPLETED, PAYMENT_FAILED,
    PAYOFF_INITIATED, LOAN_PAID_OFF, LOAN_DEFAULTED).

    An event keeps the same event_id on every redelivery. Network errors and
    5xx responses are redelivered after backoff_base * 2^n seconds; a 4xx
    means the receiver refused the payload and it is dropped.
    """

    def __init__(self, webhook_url: str | None = None):
        self.webhook_url = webhook_url or settings.events_webhook_url
        self.max_retries = settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base

    async def _deliver(self, client: httpx.AsyncClient, event: Dict[str, Any]) -> bool:
        error = "no delivery attempted"
        for attempt in range(self.max_retries):
            if attempt:
                await asyncio.sleep(self.backoff_base * 2 ** (attempt - 1))
            try:
                with event_webhook_latency_histogram.time():
                    response = await client.post(
                        self.webhook_url,
                        json=event,
                        headers={EVENT_ID_HEADER: event["event_id"]},
                        timeout=settings.http_timeout_seconds,
                    )
            except httpx.RequestError as e:
                error = str(e) or type(e).__name__
                event_webhook_failure_counter.inc()
                continue

            if response.status_code < 400:
                return True

            event_webhook_failure_counter.inc()
            if response.status_code < 500:
                logger.error(
                    f"Event {event.get('event')} refused by receiver: HTTP {response.status_code}",
                    extra={"event_id": event["event_id"]},
                )
                return False
            error = f"HTTP {response.status_code}"

        logger.error(
            f"Event {event.get('event')} undelivered after {self.max_retries} attempts: {error}",
            extra={"event_id": event["event_id"]},
        )
        return False

    async def publish(self, events: List[Dict[str, Any]]) -> int:
        """Deliver events in order; returns how many were accepted. An undelivered event never blocks the rest."""
        delivered = 0
        async with httpx.AsyncClient() as client:
            for event in events:
                if await self._deliver(client, envelope(event)):
                    delivered += 1
        return delivered
