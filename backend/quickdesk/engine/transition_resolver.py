"""Transition Resolver - Ticket status state machine"""
from typing import Dict, FrozenSet, Optional

from ..domain.enums import TicketStatus, RESOLVING_STATUSES
from ..domain.errors import ValidationError
from ..utils.logger import get_logger

logger = get_logger(__name__)


ALL_STATUSES: FrozenSet[TicketStatus] = frozenset(TicketStatus)

# Staff may move a ticket from any status to any other status
DEFAULT_TRANSITIONS: Dict[TicketStatus, FrozenSet[TicketStatus]] = {
    status: ALL_STATUSES for status in TicketStatus
}


class TransitionResolver:
    """
    Validate status changes against an explicit transition table

    Given current status S and requested status T:
    1. T must be a known status
    2. (S, T) must be in the table
    3. Entering Resolved or Closed stamps resolved_at; nothing clears it
    """

    def __init__(self, transitions: Optional[Dict[TicketStatus, FrozenSet[TicketStatus]]] = None):
        self.transitions = transitions if transitions is not None else DEFAULT_TRANSITIONS

    def resolve(self, current: str, requested: str) -> TicketStatus:
        """
        Return the target status if the transition is allowed

        Raises:
            ValidationError: Unknown status or disallowed transition
        """
        try:
            target = TicketStatus(requested)
        except ValueError:
            raise ValidationError(
                f"Invalid status: {requested}",
                details={"allowed": [s.value for s in TicketStatus]}
            )

        source = TicketStatus(current)
        if target not in self.transitions.get(source, frozenset()):
            raise ValidationError(
                f"Cannot change status from {source.value} to {target.value}",
                details={"from": source.value, "to": target.value}
            )

        return target

    def stamps_resolution(self, status: str) -> bool:
        """True when entering this status sets resolved_at"""
        return TicketStatus(status) in RESOLVING_STATUSES
