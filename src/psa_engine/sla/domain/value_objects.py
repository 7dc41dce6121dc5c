"""
SLA Value Objects
==================

Pure SLA calculations: due-dates from a policy and SLA classification at
query time.

Classification is a pure function of (created_at, met_at, now, due); nothing
here reads the clock or touches storage.
"""

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Optional

from psa_engine.config import DEFAULT_PRIORITY_MULTIPLIERS, SLAStatus
from psa_engine.sla.domain.entities import SlaDueDates, SlaPolicy, SlaReport, SlaTarget

if TYPE_CHECKING:
    from psa_engine.tickets.domain.entities import Ticket, TicketPriority

DEFAULT_WARNING_THRESHOLD = 0.8


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class - all SLA arithmetic in one place.
    """

    @staticmethod
    def priority_multiplier(priority: "TicketPriority") -> float:
        """
        Multiplier applied to a policy's base targets for a priority.

        Uses the priority's own multiplier when configured, then the declared
        table by priority name, then 1.0.
        """
        if priority.sla_multiplier is not None:
            return priority.sla_multiplier
        return DEFAULT_PRIORITY_MULTIPLIERS.get(priority.name.lower(), 1.0)

    @staticmethod
    def find_target(policy: SlaPolicy, priority: "TicketPriority") -> Optional[SlaTarget]:
        """
        Effective target for a priority under a policy.

        An explicit target wins. Otherwise one is derived from the policy's
        base minutes scaled by the priority multiplier. None means SLA is
        inapplicable.
        """
        target = policy.target_for(priority.id)
        if target is not None:
            return target

        if not policy.has_base_targets:
            return None

        multiplier = SLACalculator.priority_multiplier(priority)
        return SlaTarget(
            priority_id=priority.id,
            first_response_minutes=(
                int(policy.base_first_response_minutes * multiplier)
                if policy.base_first_response_minutes is not None else None
            ),
            resolution_minutes=(
                int(policy.base_resolution_minutes * multiplier)
                if policy.base_resolution_minutes is not None else None
            ),
        )

    @staticmethod
    def calculate_due_dates(
        created_at: datetime,
        policy: Optional[SlaPolicy],
        priority: "TicketPriority"
    ) -> Optional[SlaDueDates]:
        """
        Calculate due-dates for a ticket.

        Args:
            created_at: When the ticket was created
            policy: Resolved SLA policy (explicit or tenant default)
            priority: Ticket priority

        Returns:
            SlaDueDates, or None when no policy/target applies
        """
        if policy is None:
            return None

        target = SLACalculator.find_target(policy, priority)
        if target is None:
            return None

        first_response_minutes = target.first_response_minutes
        resolution_minutes = target.resolution_minutes
        return SlaDueDates(
            first_response_due=(
                created_at + timedelta(minutes=first_response_minutes)
                if first_response_minutes is not None else None
            ),
            resolution_due=(
                created_at + timedelta(minutes=resolution_minutes)
                if resolution_minutes is not None else None
            ),
        )

    @staticmethod
    def calculate_status(
        created_at: datetime,
        due: Optional[datetime],
        now: datetime,
        met_at: Optional[datetime] = None,
        warning_threshold: float = DEFAULT_WARNING_THRESHOLD
    ) -> SLAStatus:
        """
        Classify one SLA clock.

        Args:
            created_at: When the ticket was created
            due: The due-date for this clock (None -> SLA not applicable)
            now: Evaluation time
            met_at: When the clock stopped (first response / resolution)
            warning_threshold: Elapsed fraction above which the clock warns

        Returns:
            SLAStatus
        """
        if due is None:
            return SLAStatus.NONE

        if met_at is not None:
            return SLAStatus.MET if met_at <= due else SLAStatus.BREACHED

        total = (due - created_at).total_seconds()
        if total <= 0:
            # Zero-length window: no warning phase
            return SLAStatus.BREACHED if now >= due else SLAStatus.ON_TRACK

        if now > due:
            return SLAStatus.BREACHED

        elapsed = (now - created_at).total_seconds()
        if elapsed / total > warning_threshold:
            return SLAStatus.WARNING
        return SLAStatus.ON_TRACK

    @staticmethod
    def build_report(
        ticket: "Ticket",
        now: datetime,
        warning_threshold: float = DEFAULT_WARNING_THRESHOLD
    ) -> SlaReport:
        """Classify both SLA clocks of a ticket."""
        return SlaReport(
            ticket_id=ticket.id,
            evaluated_at=now,
            first_response_due=ticket.first_response_due,
            resolution_due=ticket.resolution_due,
            response_status=SLACalculator.calculate_status(
                ticket.created_at, ticket.first_response_due, now,
                ticket.first_response_at, warning_threshold
            ),
            resolution_status=SLACalculator.calculate_status(
                ticket.created_at, ticket.resolution_due, now,
                ticket.resolved_at, warning_threshold
            ),
        )

    @staticmethod
    def remaining_seconds(due: Optional[datetime], now: datetime) -> Optional[float]:
        """Seconds until due (negative once past), None without a due-date."""
        if due is None:
            return None
        return (due - now).total_seconds()
