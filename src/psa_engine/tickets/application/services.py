"""
Ticket Application Services
============================

Application services orchestrate ticket flows and coordinate between the
state machine, repositories and the automation engine.

Following SOLID principles:
- Single Responsibility: TicketService owns create/update/note flows
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from psa_engine.config import AutomationTrigger, settings
from psa_engine.core import ResourceNotFoundException, ValidationException
from psa_engine.sla.domain import SLACalculator, SlaPolicy, SlaReport
from psa_engine.shared.infrastructure.logging import get_logger
from psa_engine.tickets.application.dto import NoteCreateDTO, TicketCreateDTO, TicketUpdateDTO
from psa_engine.tickets.domain import (
    TenantConfiguration,
    Ticket,
    TicketNote,
    TicketStateMachine,
    utc_now,
)

logger = get_logger(__name__)

_CLEARABLE_DETAILS = {"description"}


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_ticket(self, tenant_id: UUID, ticket_id: UUID) -> Optional[Ticket]:
        """Get the current ticket snapshot, or None."""

    @abstractmethod
    async def create_ticket(self, ticket: Ticket) -> Ticket:
        """Persist a new ticket."""

    @abstractmethod
    async def update_ticket_fields(self, tenant_id: UUID, ticket_id: UUID, patch: Dict[str, Any]) -> None:
        """Persist a field-level patch (see Ticket.diff)."""

    @abstractmethod
    async def append_note(self, tenant_id: UUID, ticket_id: UUID, note: TicketNote) -> TicketNote:
        """Persist a note on a ticket."""

    @abstractmethod
    async def list_open_tickets(
        self,
        tenant_id: UUID,
        limit: int = 500,
        after: Optional[Tuple[datetime, UUID]] = None
    ) -> List[Ticket]:
        """
        Tickets whose current status is not a closed one, ordered by
        (created_at, id). Re-opened tickets count as open.

        after is the (created_at, id) of the last ticket of the previous page.
        """

    @abstractmethod
    async def next_ticket_number(self, tenant_id: UUID) -> str:
        """Allocate the next human-readable ticket number."""


class ITenantConfigProvider(ABC):
    """Interface for tenant ticketing configuration access."""

    @abstractmethod
    def get_config(self, tenant_id: UUID) -> TenantConfiguration:
        """Get a tenant's configuration. Raises ConfigurationException for unknown tenants."""

    @abstractmethod
    def list_tenants(self) -> List[UUID]:
        """All configured tenants."""

    def get_sla_policy(self, tenant_id: UUID, policy_id: Optional[UUID] = None) -> Optional[SlaPolicy]:
        """Resolve a policy by id, or the tenant default when policy_id is None."""
        return self.get_config(tenant_id).get_sla_policy(policy_id)


class IAutomationRunner(ABC):
    """Interface to the automation engine, as seen by ticket flows."""

    @abstractmethod
    async def process(self, trigger: AutomationTrigger, tenant_id: UUID, ticket_id: UUID) -> Any:
        """Run one automation pass for a ticket."""


# ========== Application Services ==========

class TicketService:
    """
    Ticket create/update/note flows.

    Core field updates are committed before automation runs; automation
    failures are logged and never turn a successful update into an error.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        config_provider: ITenantConfigProvider,
        automation: Optional[IAutomationRunner] = None,
        clock: Optional[Callable] = None
    ):
        self._ticket_repo = ticket_repository
        self._config_provider = config_provider
        self._automation = automation
        self._clock = clock or utc_now

    def _machine(self, config: TenantConfiguration) -> TicketStateMachine:
        return TicketStateMachine(config, self._clock)

    async def get_ticket(self, tenant_id: UUID, ticket_id: UUID) -> Ticket:
        ticket = await self._ticket_repo.get_ticket(tenant_id, ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", str(ticket_id))
        return ticket

    async def create_ticket(
        self,
        tenant_id: UUID,
        user_id: Optional[UUID],
        dto: TicketCreateDTO
    ) -> Ticket:
        """
        Create a ticket and run on_create automation.

        Raises:
            ConfigurationException: tenant lacks a default status/priority/queue
            ValidationException: referenced priority or SLA policy is unknown
        """
        config = self._config_provider.get_config(tenant_id)
        status = config.default_status

        if dto.priority_id is not None:
            priority = config.get_priority(dto.priority_id)
            if priority is None:
                raise ValidationException(
                    "Unknown priority",
                    {"priority_id": str(dto.priority_id)}
                )
        else:
            priority = config.default_priority

        queue_id = dto.queue_id or config.default_queue

        if dto.sla_id is not None and config.get_sla_policy(dto.sla_id) is None:
            raise ValidationException("Unknown SLA policy", {"sla_id": str(dto.sla_id)})

        now = self._clock()
        ticket = Ticket(
            id=uuid4(),
            tenant_id=tenant_id,
            ticket_number=await self._ticket_repo.next_ticket_number(tenant_id),
            title=dto.title,
            description=dto.description,
            status=status,
            priority=priority,
            queue_id=queue_id,
            company_id=dto.company_id,
            contact_id=dto.contact_id,
            assigned_to_id=dto.assigned_to_id,
            team_id=dto.team_id,
            source=dto.source,
            sla_id=dto.sla_id,
            is_billable=dto.is_billable,
            tags=set(dto.tags),
            custom_fields=dict(dto.custom_fields),
            created_by_id=user_id,
            created_at=now,
            updated_at=now,
        )
        ticket = self._machine(config).initialize_sla(ticket)
        ticket = await self._ticket_repo.create_ticket(ticket)

        logger.info(
            "Ticket created",
            extra={
                "tenant_id": str(tenant_id),
                "ticket_id": str(ticket.id),
                "ticket_number": ticket.ticket_number,
                "priority": priority.name,
            }
        )

        await self._run_automation(AutomationTrigger.ON_CREATE, tenant_id, ticket.id)
        return await self.get_ticket(tenant_id, ticket.id)

    async def update_ticket(
        self,
        tenant_id: UUID,
        ticket_id: UUID,
        user_id: Optional[UUID],
        dto: TicketUpdateDTO
    ) -> Ticket:
        """Apply an update through the state machine, persist it, then run on_update automation."""
        config = self._config_provider.get_config(tenant_id)
        machine = self._machine(config)
        ticket = await self.get_ticket(tenant_id, ticket_id)
        provided = dto.model_fields_set
        updated = ticket

        if dto.status_id is not None:
            status = config.get_status(dto.status_id)
            if status is None:
                raise ValidationException("Unknown status", {"status_id": str(dto.status_id)})
            updated = machine.apply_status(updated, status)

        if dto.sla_id is not None:
            if config.get_sla_policy(dto.sla_id) is None:
                raise ValidationException("Unknown SLA policy", {"sla_id": str(dto.sla_id)})
            updated = machine.apply_sla_policy(updated, dto.sla_id)

        if dto.priority_id is not None:
            priority = config.get_priority(dto.priority_id)
            if priority is None:
                raise ValidationException("Unknown priority", {"priority_id": str(dto.priority_id)})
            updated = machine.apply_priority(updated, priority)

        if "assigned_to_id" in provided:
            updated = machine.assign(updated, dto.assigned_to_id)

        if dto.queue_id is not None:
            updated = machine.set_queue(updated, dto.queue_id)

        if "team_id" in provided:
            updated = machine.set_team(updated, dto.team_id)

        details = {
            name: getattr(dto, name)
            for name in ("title", "description", "is_billable", "tags", "custom_fields")
            if name in provided and (name in _CLEARABLE_DETAILS or getattr(dto, name) is not None)
        }
        if details:
            updated = machine.update_details(updated, **details)

        patch = ticket.diff(updated)
        if not patch:
            return ticket

        await self._ticket_repo.update_ticket_fields(tenant_id, ticket_id, patch)
        logger.info(
            "Ticket updated",
            extra={
                "tenant_id": str(tenant_id),
                "ticket_id": str(ticket_id),
                "user_id": str(user_id) if user_id else None,
                "fields": sorted(patch),
            }
        )

        await self._run_automation(AutomationTrigger.ON_UPDATE, tenant_id, ticket_id)
        return await self.get_ticket(tenant_id, ticket_id)

    async def assign_ticket(
        self,
        tenant_id: UUID,
        ticket_id: UUID,
        assignee_id: Optional[UUID],
        user_id: Optional[UUID] = None
    ) -> Ticket:
        """Assign (or unassign with None)."""
        return await self.update_ticket(
            tenant_id, ticket_id, user_id, TicketUpdateDTO(assigned_to_id=assignee_id)
        )

    async def add_note(
        self,
        tenant_id: UUID,
        ticket_id: UUID,
        user_id: Optional[UUID],
        dto: NoteCreateDTO
    ) -> TicketNote:
        """Add a note; the first public note records first response."""
        config = self._config_provider.get_config(tenant_id)
        ticket = await self.get_ticket(tenant_id, ticket_id)

        note = TicketNote(
            ticket_id=ticket_id,
            tenant_id=tenant_id,
            note_type=dto.note_type,
            content=dto.content,
            created_at=self._clock(),
            created_by_id=user_id,
        )
        note = await self._ticket_repo.append_note(tenant_id, ticket_id, note)

        updated = self._machine(config).record_note(ticket, dto.note_type)
        patch = ticket.diff(updated)
        if patch:
            await self._ticket_repo.update_ticket_fields(tenant_id, ticket_id, patch)
            logger.info(
                "First response recorded",
                extra={"tenant_id": str(tenant_id), "ticket_id": str(ticket_id)}
            )
        return note

    async def get_sla_report(self, tenant_id: UUID, ticket_id: UUID) -> SlaReport:
        """Classify both SLA clocks of a ticket as of now."""
        ticket = await self.get_ticket(tenant_id, ticket_id)
        return SLACalculator.build_report(ticket, self._clock(), settings.sla_warning_threshold)

    async def _run_automation(self, trigger: AutomationTrigger, tenant_id: UUID, ticket_id: UUID) -> Any:
        if self._automation is None:
            return None
        try:
            return await self._automation.process(trigger, tenant_id, ticket_id)
        except Exception:
            # The core update is already committed; automation errors surface via logs only
            logger.exception(
                "Automation pass failed",
                extra={
                    "tenant_id": str(tenant_id),
                    "ticket_id": str(ticket_id),
                    "trigger": trigger.value,
                }
            )
            return None
