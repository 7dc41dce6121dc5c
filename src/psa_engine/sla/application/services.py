"""
SLA Application Services
=========================

Periodic SLA evaluation: classify every open ticket and raise the SLA
automation triggers for it.

Sweeps are driven by SLAScheduler and are at-least-once: a ticket that stays
in warning or breached is re-triggered on every sweep, and rules are expected
to be idempotent (state machine no-ops persist nothing).
"""

from datetime import datetime
from typing import Callable, Optional, Tuple
from uuid import UUID

from psa_engine.config import AutomationTrigger, SLAStatus, settings
from psa_engine.shared.infrastructure.logging import get_logger, log_latency
from psa_engine.sla.application.dto import SLASweepResult, TicketEvaluationFailure
from psa_engine.sla.domain import SLACalculator
from psa_engine.tickets.application.services import (
    IAutomationRunner,
    ITenantConfigProvider,
    ITicketRepository,
)
from psa_engine.tickets.domain import Ticket, utc_now

logger = get_logger(__name__)


class SLAEvaluationService:
    """
    Background sweep raising on_schedule, on_sla_warning and on_sla_breach.

    Every open ticket receives an on_schedule pass; tickets whose resolution
    clock is in warning or breached additionally receive the matching SLA
    pass. A failure on one ticket is logged and the sweep moves on.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        config_provider: ITenantConfigProvider,
        automation: IAutomationRunner,
        clock: Optional[Callable] = None,
        warning_threshold: Optional[float] = None,
        batch_size: int = 500
    ):
        self._ticket_repo = ticket_repository
        self._config_provider = config_provider
        self._automation = automation
        self._clock = clock or utc_now
        self._warning_threshold = warning_threshold or settings.sla_warning_threshold
        self._batch_size = max(1, batch_size)

    def classify(self, ticket: Ticket) -> SLAStatus:
        """Resolution-clock status of a ticket as of now."""
        return SLACalculator.calculate_status(
            ticket.created_at,
            ticket.resolution_due,
            self._clock(),
            ticket.resolved_at,
            self._warning_threshold,
        )

    async def evaluate_tenant(self, tenant_id: UUID) -> SLASweepResult:
        """
        Sweep all open tickets of one tenant.

        Open tickets are read in pages of batch_size, keyed on
        (created_at, id), until a short page comes back.
        """
        result = SLASweepResult(tenant_id=tenant_id, started_at=self._clock())

        with log_latency(logger, "sla_sweep_tenant", tenant_id=str(tenant_id)):
            after: Optional[Tuple[datetime, UUID]] = None
            while True:
                tickets = await self._ticket_repo.list_open_tickets(
                    tenant_id, limit=self._batch_size, after=after
                )

                for ticket in tickets:
                    result.tickets_evaluated += 1
                    try:
                        await self._evaluate_ticket(ticket, result)
                    except Exception as e:
                        logger.exception(
                            "SLA evaluation failed for ticket",
                            extra={"tenant_id": str(tenant_id), "ticket_id": str(ticket.id)}
                        )
                        result.failures.append(TicketEvaluationFailure(ticket_id=ticket.id, error=str(e)))

                if len(tickets) < self._batch_size:
                    break
                after = (tickets[-1].created_at, tickets[-1].id)

        result.finished_at = self._clock()
        return result

    async def _evaluate_ticket(self, ticket: Ticket, result: SLASweepResult) -> None:
        await self._automation.process(AutomationTrigger.SCHEDULED, ticket.tenant_id, ticket.id)
        result.passes_run += 1

        # Scheduled rules may have closed, resolved or re-prioritized the ticket
        current = await self._ticket_repo.get_ticket(ticket.tenant_id, ticket.id)
        if current is None or current.is_closed:
            return

        status = self.classify(current)
        if status == SLAStatus.WARNING:
            trigger = AutomationTrigger.SLA_WARNING
            result.warnings += 1
        elif status == SLAStatus.BREACHED:
            trigger = AutomationTrigger.SLA_BREACH
            result.breaches += 1
        else:
            return

        logger.info(
            "SLA trigger raised",
            extra={
                "tenant_id": str(current.tenant_id),
                "ticket_id": str(current.id),
                "sla_status": status.value,
                "resolution_due": current.resolution_due.isoformat() if current.resolution_due else None,
            }
        )
        await self._automation.process(trigger, current.tenant_id, current.id)
        result.passes_run += 1

    async def evaluate_all(self) -> SLASweepResult:
        """
        Sweep every configured tenant.

        Used as the scheduled job; a tenant that fails as a whole is logged
        and skipped.
        """
        total = SLASweepResult(started_at=self._clock())

        for tenant_id in self._config_provider.list_tenants():
            try:
                total.merge(await self.evaluate_tenant(tenant_id))
            except Exception:
                logger.exception("SLA sweep failed for tenant", extra={"tenant_id": str(tenant_id)})

        total.finished_at = self._clock()
        logger.info(
            "SLA sweep completed",
            extra={
                "tickets_evaluated": total.tickets_evaluated,
                "warnings": total.warnings,
                "breaches": total.breaches,
                "failures": len(total.failures),
            }
        )
        return total
