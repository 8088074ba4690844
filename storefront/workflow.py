"""Enum-based workflow state machines.

States are Python enums; allowed transitions are explicit tables. Two
workflows use it:
- CheckoutState: the order commit orchestrator's progress within one request
- SaleStatus: an order's lifecycle after it has been committed
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, Mapping, TypeVar

from storefront.errors import InvalidStatusTransitionError
from storefront.models.schemas import SaleStatus

StateT = TypeVar("StateT", bound=Enum)


# ---------------------------------------------------------------------------
# State definitions
# ---------------------------------------------------------------------------

class CheckoutState(str, Enum):
    """Order commit orchestrator states."""

    VALIDATING = "validating"
    CHECKING_STOCK = "checking_stock"
    RESERVING_STOCK = "reserving_stock"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Transition rules
# ---------------------------------------------------------------------------

# Allowed transitions: {current_state: [allowed_next_states]}
CHECKOUT_TRANSITIONS: dict[CheckoutState, list[CheckoutState]] = {
    CheckoutState.VALIDATING: [CheckoutState.CHECKING_STOCK, CheckoutState.FAILED],
    CheckoutState.CHECKING_STOCK: [CheckoutState.RESERVING_STOCK, CheckoutState.FAILED],
    CheckoutState.RESERVING_STOCK: [CheckoutState.PERSISTING, CheckoutState.FAILED],
    CheckoutState.PERSISTING: [CheckoutState.DONE, CheckoutState.FAILED],
    CheckoutState.DONE: [],    # terminal
    CheckoutState.FAILED: [],  # terminal
}

SALE_STATUS_TRANSITIONS: dict[SaleStatus, list[SaleStatus]] = {
    SaleStatus.PENDING: [SaleStatus.PROCESSING, SaleStatus.CANCELLED],
    SaleStatus.PROCESSING: [SaleStatus.COMPLETED, SaleStatus.CANCELLED],
    SaleStatus.COMPLETED: [SaleStatus.REFUNDED],
    SaleStatus.CANCELLED: [],  # terminal
    SaleStatus.REFUNDED: [],   # terminal
}


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

@dataclass
class WorkflowTransition:
    """Record of a single state transition."""

    from_state: str
    to_state: str
    timestamp: datetime
    actor: str = "system"
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class WorkflowInstance(Generic[StateT]):
    """A running workflow instance with state tracking.

    Usage::

        wf = WorkflowInstance(
            workflow_id="checkout-txn_123",
            current_state=CheckoutState.VALIDATING,
            transitions=CHECKOUT_TRANSITIONS,
        )
        wf.transition(CheckoutState.CHECKING_STOCK)
    """

    workflow_id: str
    current_state: StateT
    transitions: Mapping[StateT, list[StateT]]
    history: list[WorkflowTransition] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def can_transition(self, to_state: StateT) -> bool:
        """Check if a transition is allowed from the current state."""
        allowed = self.transitions.get(self.current_state, [])
        return to_state in allowed

    def transition(
        self,
        to_state: StateT,
        actor: str = "system",
        metadata: dict[str, Any] | None = None,
    ) -> WorkflowTransition:
        """Execute a state transition.

        Raises InvalidStatusTransitionError if the transition is not allowed.
        """
        if not self.can_transition(to_state):
            allowed = self.transitions.get(self.current_state, [])
            allowed_names = [s.value for s in allowed]
            raise InvalidStatusTransitionError(
                f"Cannot transition from {self.current_state.value} to {to_state.value}. "
                f"Allowed: {allowed_names}"
            )

        record = WorkflowTransition(
            from_state=self.current_state.value,
            to_state=to_state.value,
            timestamp=datetime.now(timezone.utc),
            actor=actor,
            metadata=metadata or {},
        )
        self.history.append(record)
        self.current_state = to_state
        return record

    @property
    def path(self) -> list[str]:
        """States visited, in order, including the current one."""
        if not self.history:
            return [self.current_state.value]
        return [self.history[0].from_state] + [t.to_state for t in self.history]
