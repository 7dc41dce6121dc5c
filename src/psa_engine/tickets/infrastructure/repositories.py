"""
Ticket Infrastructure Repositories
===================================

SQLAlchemy implementation of ITicketRepository.

Every mutation commits immediately: an automation pass that fails halfway
leaves the actions it already applied in place.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import insert, select, tuple_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from psa_engine.config import NoteType, TicketSource
from psa_engine.core import RepositoryException
from psa_engine.shared.infrastructure.logging import get_logger
from psa_engine.tickets.application.services import ITenantConfigProvider, ITicketRepository
from psa_engine.tickets.domain import Ticket, TicketNote
from psa_engine.tickets.infrastructure.models import TicketModel, TicketNoteModel, TicketSequenceModel

logger = get_logger(__name__)


def _column_value(name: str, value: Any) -> Any:
    """Domain value -> column value."""
    if name == "tags":
        return sorted(value)
    if name == "custom_fields":
        return dict(value)
    return value


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Status and priority ids are resolved through the tenant configuration so
    the domain always sees full TicketStatus/TicketPriority values.
    """

    def __init__(self, session: AsyncSession, config_provider: ITenantConfigProvider):
        self._session = session
        self._config_provider = config_provider

    def _to_entity(self, model: TicketModel) -> Ticket:
        config = self._config_provider.get_config(model.tenant_id)
        status = config.get_status(model.status_id)
        priority = config.get_priority(model.priority_id)
        if status is None or priority is None:
            raise RepositoryException(
                "Ticket references a status or priority missing from tenant configuration",
                {
                    "ticket_id": str(model.id),
                    "status_id": str(model.status_id),
                    "priority_id": str(model.priority_id),
                }
            )

        return Ticket(
            id=model.id,
            tenant_id=model.tenant_id,
            ticket_number=model.ticket_number,
            title=model.title,
            description=model.description,
            status=status,
            priority=priority,
            queue_id=model.queue_id,
            company_id=model.company_id,
            source=TicketSource(model.source),
            contact_id=model.contact_id,
            assigned_to_id=model.assigned_to_id,
            team_id=model.team_id,
            sla_id=model.sla_id,
            first_response_due=model.first_response_due,
            resolution_due=model.resolution_due,
            first_response_at=model.first_response_at,
            resolved_at=model.resolved_at,
            closed_at=model.closed_at,
            is_billable=model.is_billable,
            tags=set(model.tags or []),
            custom_fields=dict(model.custom_fields or {}),
            created_by_id=model.created_by_id,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def get_ticket(self, tenant_id: UUID, ticket_id: UUID) -> Optional[Ticket]:
        stmt = select(TicketModel).where(
            TicketModel.tenant_id == tenant_id,
            TicketModel.id == ticket_id
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load ticket: {e}", {"ticket_id": str(ticket_id)}) from e

        model = result.scalar_one_or_none()
        return self._to_entity(model) if model is not None else None

    async def create_ticket(self, ticket: Ticket) -> Ticket:
        values = {
            name: _column_value(name, value)
            for name, value in ticket.persisted_values().items()
        }
        model = TicketModel(
            id=ticket.id,
            tenant_id=ticket.tenant_id,
            ticket_number=ticket.ticket_number,
            company_id=ticket.company_id,
            contact_id=ticket.contact_id,
            source=ticket.source.value,
            created_by_id=ticket.created_by_id,
            created_at=ticket.created_at,
            **values
        )
        try:
            self._session.add(model)
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise RepositoryException(f"Failed to create ticket: {e}", {"ticket_id": str(ticket.id)}) from e

        return ticket

    async def update_ticket_fields(self, tenant_id: UUID, ticket_id: UUID, patch: Dict[str, Any]) -> None:
        if not patch:
            return

        values = {name: _column_value(name, value) for name, value in patch.items()}
        # sla_due_date mirrors resolution_due
        if "resolution_due" in values:
            values["sla_due_date"] = values["resolution_due"]

        stmt = (
            update(TicketModel)
            .where(TicketModel.tenant_id == tenant_id, TicketModel.id == ticket_id)
            .values(**values)
        )
        try:
            result = await self._session.execute(stmt)
            if result.rowcount == 0:
                raise RepositoryException(
                    "Ticket not found for update",
                    {"tenant_id": str(tenant_id), "ticket_id": str(ticket_id)}
                )
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise RepositoryException(f"Failed to update ticket: {e}", {"ticket_id": str(ticket_id)}) from e

        logger.debug(
            "Ticket fields persisted",
            extra={"ticket_id": str(ticket_id), "fields": sorted(values)}
        )

    async def append_note(self, tenant_id: UUID, ticket_id: UUID, note: TicketNote) -> TicketNote:
        model = TicketNoteModel(
            id=note.id,
            tenant_id=tenant_id,
            ticket_id=ticket_id,
            note_type=NoteType(note.note_type).value,
            content=note.content,
            created_by_id=note.created_by_id,
            created_at=note.created_at,
        )
        try:
            self._session.add(model)
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise RepositoryException(f"Failed to add note: {e}", {"ticket_id": str(ticket_id)}) from e
        return note

    async def list_open_tickets(
        self,
        tenant_id: UUID,
        limit: int = 500,
        after: Optional[Tuple[datetime, UUID]] = None
    ) -> List[Ticket]:
        config = self._config_provider.get_config(tenant_id)
        closed_ids = [s.id for s in config.statuses if s.is_closed]
        stmt = (
            select(TicketModel)
            .where(TicketModel.tenant_id == tenant_id, TicketModel.status_id.not_in(closed_ids))
            .order_by(TicketModel.created_at, TicketModel.id)
            .limit(limit)
        )
        if after is not None:
            stmt = stmt.where(tuple_(TicketModel.created_at, TicketModel.id) > tuple_(*after))
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to list open tickets: {e}", {"tenant_id": str(tenant_id)}) from e

        return [self._to_entity(model) for model in result.scalars().all()]

    async def next_ticket_number(self, tenant_id: UUID) -> str:
        """Allocate the next number, formatted T000001."""
        stmt = (
            update(TicketSequenceModel)
            .where(TicketSequenceModel.tenant_id == tenant_id)
            .values(last_number=TicketSequenceModel.last_number + 1)
            .returning(TicketSequenceModel.last_number)
        )
        try:
            result = await self._session.execute(stmt)
            number = result.scalar_one_or_none()
            if number is None:
                await self._session.execute(
                    insert(TicketSequenceModel).values(tenant_id=tenant_id, last_number=1)
                )
                number = 1
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise RepositoryException(f"Failed to allocate ticket number: {e}", {"tenant_id": str(tenant_id)}) from e

        return f"T{number:06d}"
