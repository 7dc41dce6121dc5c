"""
Automation Infrastructure Models
=================================

SQLAlchemy ORM model for automation rules.

Conditions and actions are stored as raw JSON and decoded into typed
variants when a rule is loaded.
"""

from datetime import datetime, timezone
from typing import Any, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from psa_engine.config import AutomationTrigger
from psa_engine.infrastructure.database import Base


class AutomationRuleModel(Base):
    """
    Database model for AutomationRule.

    Maps to the 'ticket_automation_rules' table.
    """
    __tablename__ = "ticket_automation_rules"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    trigger_type: Mapped[AutomationTrigger] = mapped_column(String(30), nullable=False)

    # Raw payloads: [{field, operator, value}], [{action_type, params}]
    conditions: Mapped[List[Any]] = mapped_column(JSON, nullable=False, default=list)
    actions: Mapped[List[Any]] = mapped_column(JSON, nullable=False, default=list)

    # Execution order
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=100)

    # Stats
    last_run_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    run_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("idx_automation_rules_trigger", "tenant_id", "trigger_type", "is_active"),
    )
