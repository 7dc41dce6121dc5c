"""
Automation Application Services
================================

The rule engine: selects a tenant's rules for a trigger, evaluates their
conditions against the current ticket and executes their actions.

A pass is one fixed iteration over the eligible rules. Each rule sees the
ticket as left by the rules before it (cascading), because the snapshot is
re-read before every rule. Mutations are persisted as they are applied;
notifications and webhooks are buffered and handed to the side-effect sink
when the pass ends, whether or not it completed.

Following SOLID principles:
- Single Responsibility: RuleEngine only runs passes; I/O sits behind interfaces
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

from abc import ABC, abstractmethod
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from psa_engine.automation.application.dto import AutomationPassResult, SideEffectRequest
from psa_engine.automation.domain import (
    SIDE_EFFECT_ACTIONS,
    AddNoteAction,
    AssignToAction,
    AutomationAction,
    AutomationRule,
    ConditionEvaluator,
    MalformedAction,
    SendNotificationAction,
    SetPriorityAction,
    SetQueueAction,
    SetStatusAction,
    UnknownAction,
)
from psa_engine.config import AutomationTrigger, settings
from psa_engine.core import InvalidTransitionException, ResourceNotFoundException
from psa_engine.shared.infrastructure.logging import get_context_logger, log_latency
from psa_engine.tickets.application.services import (
    IAutomationRunner,
    ITenantConfigProvider,
    ITicketRepository,
)
from psa_engine.tickets.domain import Ticket, TicketNote, TicketStateMachine, utc_now

# (tenant_id, ticket_id) of every pass active in the current call chain
_active_passes: ContextVar[Tuple[Tuple[UUID, UUID], ...]] = ContextVar(
    "automation_active_passes", default=()
)


# ========== Interfaces (Dependency Inversion) ==========

class IRuleRepository(ABC):
    """Interface for automation rule data access."""

    @abstractmethod
    async def list_active_rules(self, tenant_id: UUID, trigger: AutomationTrigger) -> List[AutomationRule]:
        """Active rules of a tenant for a trigger, in storage order."""

    @abstractmethod
    async def record_rule_run(self, rule_id: UUID, ran_at: datetime) -> None:
        """Increment run_count and set last_run_at."""


class ISideEffectSink(ABC):
    """Accepts deferred side effects. Must never block the caller."""

    @abstractmethod
    def enqueue(self, effect: SideEffectRequest) -> bool:
        """Queue an effect; returns False when it was dropped."""


class INotifier(ABC):
    """Interface for automation notifications."""

    @abstractmethod
    async def notify(self, ticket_id: UUID, template_params: Dict[str, Any]) -> bool:
        """Deliver a notification; True when delivered."""


class IWebhookInvoker(ABC):
    """Interface for outbound automation webhooks."""

    @abstractmethod
    async def invoke(
        self,
        url: str,
        payload: Dict[str, Any],
        method: str = "POST",
        headers: Optional[Dict[str, str]] = None
    ) -> int:
        """Call the webhook; returns the HTTP status code."""


# ========== Rule Engine ==========

class RuleEngine(IAutomationRunner):
    """
    Runs automation passes.

    Rules of a trigger are applied by ascending priority; equal priorities
    keep repository order. Broken rule data never aborts a pass: malformed
    conditions never match, and unknown or malformed actions are skipped
    one by one. Persistence errors propagate, leaving already applied
    actions committed.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        rule_repository: IRuleRepository,
        config_provider: ITenantConfigProvider,
        side_effects: ISideEffectSink,
        clock=None,
        max_pass_depth: Optional[int] = None
    ):
        self._ticket_repo = ticket_repository
        self._rule_repo = rule_repository
        self._config_provider = config_provider
        self._side_effects = side_effects
        self._clock = clock or utc_now
        self._max_pass_depth = max_pass_depth or settings.automation_max_pass_depth

    async def process(
        self,
        trigger: AutomationTrigger,
        tenant_id: UUID,
        ticket_id: UUID
    ) -> AutomationPassResult:
        """
        Run one automation pass for a ticket.

        A pass requested while the same ticket already has a pass in the
        current call chain, or beyond the configured nesting depth, is
        suppressed.

        Raises:
            ResourceNotFoundException: the ticket does not exist
            ConfigurationException: the tenant has no configuration
            RepositoryException: persistence failed
        """
        trigger = AutomationTrigger(trigger)
        active = _active_passes.get()
        key = (tenant_id, ticket_id)

        if key in active or len(active) >= self._max_pass_depth:
            log = get_context_logger(
                __name__,
                tenant_id=str(tenant_id),
                ticket_id=str(ticket_id),
                trigger=trigger.value,
            )
            log.warning("Automation pass suppressed", extra={"active_passes": len(active)})
            return AutomationPassResult(
                trigger=trigger, tenant_id=tenant_id, ticket_id=ticket_id, suppressed=True
            )

        token = _active_passes.set(active + (key,))
        try:
            return await self._run_pass(trigger, tenant_id, ticket_id)
        finally:
            _active_passes.reset(token)

    async def _run_pass(
        self,
        trigger: AutomationTrigger,
        tenant_id: UUID,
        ticket_id: UUID
    ) -> AutomationPassResult:
        log = get_context_logger(
            __name__,
            correlation_id=str(uuid4()),
            tenant_id=str(tenant_id),
            ticket_id=str(ticket_id),
            trigger=trigger.value,
        )
        config = self._config_provider.get_config(tenant_id)
        machine = TicketStateMachine(config, self._clock)
        result = AutomationPassResult(trigger=trigger, tenant_id=tenant_id, ticket_id=ticket_id)
        pending: List[SideEffectRequest] = []

        try:
            with log_latency(log, "automation_pass"):
                await self._load_ticket(tenant_id, ticket_id)

                rules = await self._rule_repo.list_active_rules(tenant_id, trigger)
                # sorted() is stable: ties keep repository order
                rules = sorted(
                    (r for r in rules if r.is_active and r.trigger_type == trigger),
                    key=lambda r: r.priority
                )

                for rule in rules:
                    ticket = await self._load_ticket(tenant_id, ticket_id)
                    result.rules_evaluated += 1

                    if not ConditionEvaluator.evaluate_all(ticket, rule.conditions):
                        continue

                    result.rules_matched += 1
                    log.info("Rule matched", extra={"rule_id": str(rule.id), "rule_name": rule.name})

                    for index, action in enumerate(rule.actions):
                        ticket = await self._execute_action(
                            rule, index, action, ticket, machine, trigger, pending, result, log
                        )

                    ran_at = self._clock()
                    await self._rule_repo.record_rule_run(rule.id, ran_at)
                    rule.mark_run(ran_at)
        except Exception as e:
            result.error = str(e)
            raise
        finally:
            result.side_effects_queued = self._flush(pending, log)

        log.info(
            "Automation pass finished",
            extra={
                "rules_evaluated": result.rules_evaluated,
                "rules_matched": result.rules_matched,
                "actions_executed": result.actions_executed,
                "actions_skipped": result.actions_skipped,
            }
        )
        return result

    async def _load_ticket(self, tenant_id: UUID, ticket_id: UUID) -> Ticket:
        ticket = await self._ticket_repo.get_ticket(tenant_id, ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", str(ticket_id))
        return ticket

    async def _execute_action(
        self,
        rule: AutomationRule,
        index: int,
        action: AutomationAction,
        ticket: Ticket,
        machine: TicketStateMachine,
        trigger: AutomationTrigger,
        pending: List[SideEffectRequest],
        result: AutomationPassResult,
        log
    ) -> Ticket:
        """Apply one action and return the resulting snapshot."""
        action_extra = {
            "rule_id": str(rule.id),
            "action_index": index,
            "action_type": getattr(action, "action_type", type(action).__name__),
        }

        if isinstance(action, UnknownAction):
            log.warning("Unknown automation action type, skipping", extra=action_extra)
            result.actions_skipped += 1
            return ticket

        if isinstance(action, MalformedAction):
            log.warning(
                "Malformed automation action, skipping",
                extra={**action_extra, "error": action.error}
            )
            result.actions_skipped += 1
            return ticket

        if isinstance(action, SIDE_EFFECT_ACTIONS):
            pending.append(SideEffectRequest(
                kind="notification" if isinstance(action, SendNotificationAction) else "webhook",
                tenant_id=ticket.tenant_id,
                ticket_id=ticket.id,
                rule_id=rule.id,
                rule_name=rule.name,
                trigger=trigger,
                action=action,
                ticket_context=self._ticket_context(ticket),
                requested_at=self._clock(),
            ))
            result.actions_executed += 1
            return ticket

        try:
            updated = await self._apply_mutation(action, ticket, machine)
        except InvalidTransitionException as e:
            log.warning(
                "Automation action rejected, skipping",
                extra={**action_extra, "error": e.message}
            )
            result.actions_skipped += 1
            return ticket

        if updated is None:
            log.warning(
                "Automation action references unknown configuration, skipping",
                extra=action_extra
            )
            result.actions_skipped += 1
            return ticket

        patch = ticket.diff(updated)
        if patch:
            await self._ticket_repo.update_ticket_fields(ticket.tenant_id, ticket.id, patch)
            result.mutations_persisted += 1
            log.info("Automation action applied", extra={**action_extra, "fields": sorted(patch)})

        result.actions_executed += 1
        return updated

    async def _apply_mutation(
        self,
        action: AutomationAction,
        ticket: Ticket,
        machine: TicketStateMachine
    ) -> Optional[Ticket]:
        """Run a mutating action through the state machine. None means unresolvable ids."""
        config = machine.config

        if isinstance(action, SetStatusAction):
            status = config.get_status(action.status_id)
            return machine.apply_status(ticket, status) if status is not None else None

        if isinstance(action, SetPriorityAction):
            priority = config.get_priority(action.priority_id)
            return machine.apply_priority(ticket, priority) if priority is not None else None

        if isinstance(action, AssignToAction):
            return machine.assign(ticket, action.user_id)

        if isinstance(action, SetQueueAction):
            return machine.set_queue(ticket, action.queue_id)

        if isinstance(action, AddNoteAction):
            note = TicketNote(
                ticket_id=ticket.id,
                tenant_id=ticket.tenant_id,
                note_type=action.note_type,
                content=action.content,
                created_at=self._clock(),
            )
            await self._ticket_repo.append_note(ticket.tenant_id, ticket.id, note)
            return machine.record_note(ticket, action.note_type)

        return None

    @staticmethod
    def _ticket_context(ticket: Ticket) -> Dict[str, Any]:
        """Ticket fields exposed to notification templates and webhook bodies."""
        return {
            "ticket_id": str(ticket.id),
            "ticket_number": ticket.ticket_number,
            "title": ticket.title,
            "status": ticket.status.name,
            "priority": ticket.priority.name,
            "queue_id": str(ticket.queue_id),
            "assigned_to_id": str(ticket.assigned_to_id) if ticket.assigned_to_id else None,
            "resolution_due": ticket.resolution_due.isoformat() if ticket.resolution_due else None,
        }

    def _flush(self, pending: List[SideEffectRequest], log) -> int:
        """Hand buffered effects to the sink. Never raises."""
        queued = 0
        for effect in pending:
            try:
                if self._side_effects.enqueue(effect):
                    queued += 1
            except Exception:
                log.exception(
                    "Failed to queue side effect",
                    extra={"rule_id": str(effect.rule_id), "kind": effect.kind}
                )
        return queued
