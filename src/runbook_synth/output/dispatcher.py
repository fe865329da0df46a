"""
Checklist dispatch with filtering and retry

Delivers a checklist to every enabled destination whose filter matches,
concurrently, retrying transient failures with a fixed delay.
"""

import asyncio
import logging
from typing import Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from ..config import WebhookConfig
from ..errors import ExternalServiceError
from ..models import DynamicChecklist, WebhookResult
from ..observability.metrics import get_metrics
from ..observability.tracer import add_event, set_attribute, trace_async, trace_operation
from .destinations import WebhookDestination, create_destination

logger = logging.getLogger(__name__)


# Unexpected exceptions and permanent failures are never retried.
def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, ExternalServiceError) and error.retryable


class DispatchEngine:
    """
    Fans a checklist out to its destinations

    dispatch() waits for every destination and never raises for a failed
    delivery; each failure is reported as an unsuccessful WebhookResult.
    """

    def __init__(self, destinations: list[WebhookDestination]):
        self.destinations = list(destinations)
        logger.info(f"DispatchEngine initialized with {len(self.destinations)} destination(s)")

    @classmethod
    def from_configs(
        cls,
        configs: list[WebhookConfig],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "DispatchEngine":
        return cls([create_destination(config, transport=transport) for config in configs])

    def matching_destinations(self, checklist: DynamicChecklist) -> list[WebhookDestination]:
        return [
            destination
            for destination in self.destinations
            if destination.config.enabled
            and destination.config.filter.matches(checklist.severity, checklist.labels)
        ]

    @trace_async("dispatch.dispatch")
    async def dispatch(self, checklist: DynamicChecklist) -> list[WebhookResult]:
        """Deliver to all matching destinations; results keep destination order"""
        matching = self.matching_destinations(checklist)
        set_attribute("dispatch.destinations", len(matching))
        if not matching:
            logger.debug(f"No matching destinations for checklist {checklist.alert_id}")
            return []

        results = await asyncio.gather(
            *(self._deliver(destination, checklist) for destination in matching)
        )

        failed = sum(1 for result in results if not result.success)
        logger.info(
            f"Dispatched checklist {checklist.alert_id} to {len(results)} destination(s), "
            f"{failed} failed"
        )
        return list(results)

    def dispatch_sync(self, checklist: DynamicChecklist) -> list[WebhookResult]:
        """Blocking wrapper around dispatch() for code outside an event loop"""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self.dispatch(checklist))
        raise RuntimeError(
            "dispatch_sync() cannot run inside an active event loop; await dispatch() instead"
        )

    async def _deliver(
        self, destination: WebhookDestination, checklist: DynamicChecklist
    ) -> WebhookResult:
        config = destination.config
        max_attempts = config.retry_count + 1
        metrics = get_metrics()

        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            logger.info(
                f"Retrying {destination.name} (attempt {retry_state.attempt_number + 1}/{max_attempts}) "
                f"after {config.retry_delay_ms}ms: {error}"
            )
            add_event("delivery_retry", {"attempt": retry_state.attempt_number, "error": str(error)})
            if metrics:
                metrics.record_webhook_retry(destination.name)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_fixed(config.retry_delay_ms / 1000.0),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep,
            sleep=asyncio.sleep,
            reraise=True,
        )

        with trace_operation("dispatch.deliver", {"destination.name": destination.name}):
            attempts = 0
            try:
                async for attempt in retrying:
                    with attempt:
                        attempts = attempt.retry_state.attempt_number
                        status_code = await destination.send(checklist)
                result = WebhookResult.ok(destination.name, status_code, attempts=attempts)
            except ExternalServiceError as e:
                if e.retryable:
                    logger.warning(
                        f"Max retries exhausted for {destination.name} after {attempts} attempt(s): {e}"
                    )
                else:
                    logger.warning(f"Not retrying {destination.name}: {e}")
                result = WebhookResult.failure(
                    destination.name, str(e), status_code=e.status_code or 0, attempts=attempts
                )
            except Exception as e:
                logger.error(f"Unexpected error sending to {destination.name}: {e}", exc_info=True)
                result = WebhookResult.failure(
                    destination.name, f"Unexpected error: {e}", attempts=attempts
                )

            set_attribute("delivery.success", result.success)
            set_attribute("delivery.attempts", attempts)
            if metrics:
                metrics.record_webhook_delivery(destination.name, result.success)
            return result
