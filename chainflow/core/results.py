"""
Render-agnostic results returned to the caller of the dispatcher.

A Prompt asks the next question; an Outcome reports the end of a flow
(success or failure). Both carry quick actions the transport may render
as buttons, and effects the transport should perform.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from chainflow.core.errors import ErrorKind, FlowError
from chainflow.core.flows import FlowData, FlowState


@dataclass(frozen=True)
class QuickAction:
    label: str
    token: str


class Effect(str, Enum):
    """Side effects the transport is asked to perform."""

    DELETE_USER_MESSAGE = "delete_user_message"


@dataclass(frozen=True)
class PageInfo:
    page: int
    total_pages: int
    total_items: int


@dataclass
class Result:
    message: str = ""
    actions: List[List[QuickAction]] = field(default_factory=list)
    state: FlowState = FlowState.IDLE
    error_kind: Optional[ErrorKind] = None
    effects: List[Effect] = field(default_factory=list)

    @property
    def is_error(self) -> bool:
        return self.error_kind is not None


@dataclass
class Prompt(Result):
    """Next question, or a re-prompt after a validation error."""

    page: Optional[PageInfo] = None

    @classmethod
    def from_error(cls, error: FlowError, state: FlowState, actions=None) -> "Prompt":
        return cls(
            message=error.message,
            actions=actions or [],
            state=state,
            error_kind=error.kind,
        )


@dataclass
class Outcome(Result):
    """Terminal result of a flow."""

    success: bool = False
    amount: Optional[str] = None
    reference_id: Optional[str] = None
    viewer_link: Optional[str] = None
    clear_flow: bool = True


@dataclass
class TransferOutcome(Outcome):
    asset_symbol: Optional[str] = None
    recipient_address: Optional[str] = None
    recipient_notified: bool = False


@dataclass
class TradeOutcome(Outcome):
    input_symbol: Optional[str] = None
    output_symbol: Optional[str] = None
    expected_out: Optional[str] = None
    price_impact_pct: Optional[float] = None


@dataclass
class CreationOutcome(Outcome):
    item_kind: Optional[str] = None


@dataclass
class TicketOutcome(Outcome):
    event_name: Optional[str] = None
    category: Optional[str] = None
    quantity: Optional[int] = None
    currency: Optional[str] = None


class TransitionKind(str, Enum):
    ADVANCE = "advance"
    REFRESH = "refresh"
    STAY = "stay"
    EXIT = "exit"
    COMPLETE = "complete"


@dataclass
class Transition:
    """
    Result of applying one input to the current state.

    ``flow`` is the flow data to store (ignored when ``clear_flow`` is set).
    """

    kind: TransitionKind
    next_state: FlowState
    result: Result
    flow: Optional[FlowData] = None
    clear_flow: bool = False
