"""
Automation External Service Integrations
=========================================

Outbound calls produced by automation rules:
- Chat webhook notifications (Block Kit payloads)
- Tenant-configured HTTP webhooks
- A bounded queue + worker that runs both off the mutation path
"""

import asyncio
import time
from typing import Any, Dict, Optional
from uuid import UUID

import httpx

from psa_engine.automation.application.dto import SideEffectRequest
from psa_engine.automation.application.services import INotifier, ISideEffectSink, IWebhookInvoker
from psa_engine.automation.domain import WebhookAction
from psa_engine.config import settings
from psa_engine.core import ExternalServiceException, NotificationException, WebhookException
from psa_engine.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class NotificationClient(INotifier):
    """
    Chat webhook client with circuit breaker and retry logic.

    Posts Block Kit messages to the configured incoming webhook with
    exponential backoff. Returns False instead of raising; notifications
    are best effort.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        channel: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: int = 3,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._webhook_url = webhook_url if webhook_url is not None else settings.notification_webhook_url
        self._channel = channel or settings.notification_channel
        self._timeout = timeout or settings.notification_timeout_seconds
        self._max_retries = max_retries
        self._circuit_breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    def build_message(self, ticket_id: UUID, params: Dict[str, Any]) -> Dict[str, Any]:
        """Build a Block Kit message from template parameters."""
        header = params.get("message") or f"Automation: {params.get('rule_name', 'rule matched')}"
        ticket_label = params.get("ticket_number") or str(ticket_id)

        fields = [
            {"type": "mrkdwn", "text": f"*Ticket:*\n{ticket_label}"},
            {"type": "mrkdwn", "text": f"*Priority:*\n{str(params.get('priority', '-')).title()}"},
            {"type": "mrkdwn", "text": f"*Status:*\n{params.get('status', '-')}"},
            {"type": "mrkdwn", "text": f"*Trigger:*\n{params.get('trigger', '-')}"},
        ]
        if params.get("resolution_due"):
            fields.append({"type": "mrkdwn", "text": f"*Resolution due:*\n{params['resolution_due']}"})

        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": header[:150], "emoji": True}
            },
            {"type": "section", "fields": fields},
        ]
        if params.get("title"):
            blocks.append({
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": params["title"]}]
            })

        message = {"channel": self._channel, "blocks": blocks, "text": header}
        if params.get("recipients"):
            message["recipients"] = list(params["recipients"])
        return message

    async def notify(self, ticket_id: UUID, template_params: Dict[str, Any]) -> bool:
        """
        Send a notification.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self._webhook_url:
            logger.debug("Notification webhook URL not configured, skipping notification")
            return False

        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping notification",
                extra={"ticket_id": str(ticket_id)}
            )
            return False

        message = self.build_message(ticket_id, template_params)

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=message)

                if response.status_code == 200:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Notification sent",
                        extra={"ticket_id": str(ticket_id), "template": template_params.get("template")}
                    )
                    return True

                logger.warning(
                    "Notification webhook returned non-200",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )
            except httpx.HTTPError as e:
                logger.error(
                    "Notification failed",
                    extra={"error": str(e), "attempt": attempt + 1, "ticket_id": str(ticket_id)}
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(2 ** attempt)

        self._circuit_breaker.record_failure()
        return False

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class WebhookClient(IWebhookInvoker):
    """
    HTTP client for tenant-configured automation webhooks.

    Retries transport errors and 5xx responses with exponential backoff;
    4xx responses are returned as-is.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base: float = 1.0,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._timeout = timeout or settings.webhook_timeout_seconds
        self._max_retries = max_retries or settings.webhook_max_retries
        self._backoff_base = backoff_base
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def invoke(
        self,
        url: str,
        payload: Dict[str, Any],
        method: str = "POST",
        headers: Optional[Dict[str, str]] = None
    ) -> int:
        """
        Call a webhook.

        Raises:
            WebhookException: every attempt failed
        """
        last_error: Optional[str] = None

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.request(method, url, json=payload, headers=headers or {})
                if response.status_code < 500:
                    logger.info(
                        "Webhook invoked",
                        extra={"url": url, "method": method, "status_code": response.status_code}
                    )
                    return response.status_code
                last_error = f"HTTP {response.status_code}"
            except httpx.HTTPError as e:
                last_error = str(e)

            logger.warning(
                "Webhook attempt failed",
                extra={"url": url, "attempt": attempt + 1, "error": last_error}
            )
            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._backoff_base * (2 ** attempt))

        raise WebhookException(
            f"Webhook call failed after {self._max_retries} attempts",
            {"url": url, "error": last_error}
        )

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class SideEffectDispatcher(ISideEffectSink):
    """
    Runs notifications and webhooks off the mutation path.

    enqueue() never blocks: when the queue is full the effect is dropped and
    logged. A single worker task drains the queue; failures are logged and
    never reach the rule engine.
    """

    def __init__(
        self,
        notifier: INotifier,
        webhook_invoker: IWebhookInvoker,
        max_queue_size: Optional[int] = None
    ):
        self._notifier = notifier
        self._webhook_invoker = webhook_invoker
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size or settings.side_effect_queue_size)
        self._worker: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def enqueue(self, effect: SideEffectRequest) -> bool:
        try:
            self._queue.put_nowait(effect)
        except asyncio.QueueFull:
            logger.warning(
                "Side-effect queue full, dropping effect",
                extra={
                    "kind": effect.kind,
                    "rule_id": str(effect.rule_id),
                    "ticket_id": str(effect.ticket_id),
                }
            )
            return False
        return True

    async def dispatch(self, effect: SideEffectRequest) -> None:
        """Perform one effect. An undelivered notification raises NotificationException."""
        if effect.kind == "notification":
            delivered = await self._notifier.notify(effect.ticket_id, effect.template_params())
            if not delivered:
                raise NotificationException(
                    "Notification not delivered",
                    {"ticket_id": str(effect.ticket_id), "rule_id": str(effect.rule_id)}
                )
            return

        action = effect.action
        if not isinstance(action, WebhookAction):
            raise ValueError(f"webhook effect carries {type(action).__name__}")
        await self._webhook_invoker.invoke(
            action.url,
            effect.webhook_body(),
            method=action.method,
            headers=dict(action.headers),
        )

    async def _run(self) -> None:
        while True:
            effect = await self._queue.get()
            try:
                await self.dispatch(effect)
            except ExternalServiceException as e:
                logger.error(
                    "Side effect failed",
                    extra={"kind": effect.kind, "rule_id": str(effect.rule_id), "error": e.message}
                )
            except Exception:
                logger.exception(
                    "Side effect raised unexpectedly",
                    extra={"kind": effect.kind, "rule_id": str(effect.rule_id)}
                )
            finally:
                self._queue.task_done()

    async def start(self) -> None:
        if self.is_running:
            logger.warning("Side-effect dispatcher already running")
            return
        self._worker = asyncio.create_task(self._run(), name="side-effect-dispatcher")
        logger.info("Side-effect dispatcher started")

    async def drain(self, timeout: float = 10.0) -> bool:
        """Wait until queued effects are processed. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning("Side-effect queue not drained before timeout", extra={"pending": self.pending})
            return False

    async def stop(self, drain_timeout: float = 10.0) -> None:
        """Drain (bounded by drain_timeout) and stop the worker."""
        if self._worker is None:
            return
        if not self._worker.done():
            await self.drain(drain_timeout)
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
        logger.info("Side-effect dispatcher stopped")
