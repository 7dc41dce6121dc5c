"""
Condition Evaluation
=====================

Evaluates a single automation condition against a ticket snapshot.

Policy: fail closed to "no match". An unknown field, an unknown operator or
a malformed condition evaluates to False and never raises, so broken tenant
configuration cannot crash an automation pass.
"""

from typing import Callable, Dict, Optional

from psa_engine.config import ConditionOperator
from psa_engine.automation.domain.entities import AutomationCondition, Condition, MalformedCondition
from psa_engine.tickets.domain.entities import Ticket


def _optional_id(value) -> Optional[str]:
    return str(value) if value is not None else None


# field name -> resolver returning the canonical string, or None when unset
FIELD_RESOLVERS: Dict[str, Callable[[Ticket], Optional[str]]] = {
    "status": lambda t: t.status.name,
    "priority": lambda t: t.priority.name,
    "status_id": lambda t: str(t.status.id),
    "priority_id": lambda t: str(t.priority.id),
    "queue_id": lambda t: _optional_id(t.queue_id),
    "team_id": lambda t: _optional_id(t.team_id),
    "company_id": lambda t: _optional_id(t.company_id),
    "contact_id": lambda t: _optional_id(t.contact_id),
    "assigned_to_id": lambda t: _optional_id(t.assigned_to_id),
    "sla_id": lambda t: _optional_id(t.sla_id),
    "source": lambda t: t.source.value,
    "is_billable": lambda t: "true" if t.is_billable else "false",
}

OPERATORS: Dict[str, Callable[[str, str], bool]] = {
    ConditionOperator.EQUALS.value: lambda actual, expected: actual == expected,
    ConditionOperator.NOT_EQUALS.value: lambda actual, expected: actual != expected,
    ConditionOperator.CONTAINS.value: lambda actual, expected: expected in actual,
    ConditionOperator.STARTS_WITH.value: lambda actual, expected: actual.startswith(expected),
    ConditionOperator.ENDS_WITH.value: lambda actual, expected: actual.endswith(expected),
    ConditionOperator.IS_NULL.value: lambda actual, expected: actual == "",
    ConditionOperator.IS_NOT_NULL.value: lambda actual, expected: actual != "",
}


class ConditionEvaluator:
    """Stateless evaluator for automation conditions."""

    @staticmethod
    def evaluate(ticket: Ticket, condition: Condition) -> bool:
        """Evaluate one condition. Never raises."""
        if isinstance(condition, MalformedCondition):
            return False

        resolver = FIELD_RESOLVERS.get(condition.field)
        operator = OPERATORS.get(condition.operator)
        if resolver is None or operator is None:
            return False

        actual = resolver(ticket)
        if actual is None:
            # Unset fields only satisfy is_null
            return condition.operator == ConditionOperator.IS_NULL.value

        return operator(actual, condition.value)

    @classmethod
    def evaluate_all(cls, ticket: Ticket, conditions: list) -> bool:
        """AND semantics with short-circuit; an empty list always matches."""
        return all(cls.evaluate(ticket, condition) for condition in conditions)

    @staticmethod
    def is_supported(condition: AutomationCondition) -> bool:
        """Whether field and operator are both known."""
        return condition.field in FIELD_RESOLVERS and condition.operator in OPERATORS
