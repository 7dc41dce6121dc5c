"""
Automation Infrastructure Repositories
=======================================

SQLAlchemy implementation of IRuleRepository.
"""

from datetime import datetime
from typing import List
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from psa_engine.automation.application.services import IRuleRepository
from psa_engine.automation.domain import AutomationRule
from psa_engine.automation.infrastructure.models import AutomationRuleModel
from psa_engine.config import AutomationTrigger
from psa_engine.core import RepositoryException
from psa_engine.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class SQLAlchemyRuleRepository(IRuleRepository):
    """
    SQLAlchemy implementation of the rule repository.

    Rules come back ordered by priority, then creation time, so ties keep
    insertion order.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_entity(model: AutomationRuleModel) -> AutomationRule:
        rule = AutomationRule.from_payload(
            id=model.id,
            tenant_id=model.tenant_id,
            name=model.name,
            trigger_type=model.trigger_type,
            conditions=model.conditions,
            actions=model.actions,
            priority=model.priority,
            is_active=model.is_active,
            description=model.description,
            last_run_at=model.last_run_at,
            run_count=model.run_count,
            created_at=model.created_at,
        )
        if rule.has_malformed_parts:
            logger.warning(
                "Automation rule has malformed conditions or actions",
                extra={"rule_id": str(rule.id), "tenant_id": str(rule.tenant_id)}
            )
        return rule

    async def list_active_rules(self, tenant_id: UUID, trigger: AutomationTrigger) -> List[AutomationRule]:
        stmt = (
            select(AutomationRuleModel)
            .where(
                AutomationRuleModel.tenant_id == tenant_id,
                AutomationRuleModel.trigger_type == AutomationTrigger(trigger).value,
                AutomationRuleModel.is_active.is_(True),
            )
            .order_by(AutomationRuleModel.priority, AutomationRuleModel.created_at)
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load automation rules: {e}", {"tenant_id": str(tenant_id)}) from e

        return [self._to_entity(model) for model in result.scalars().all()]

    async def record_rule_run(self, rule_id: UUID, ran_at: datetime) -> None:
        stmt = (
            update(AutomationRuleModel)
            .where(AutomationRuleModel.id == rule_id)
            .values(
                run_count=AutomationRuleModel.run_count + 1,
                last_run_at=ran_at,
                updated_at=ran_at,
            )
        )
        try:
            await self._session.execute(stmt)
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise RepositoryException(f"Failed to record rule run: {e}", {"rule_id": str(rule_id)}) from e
