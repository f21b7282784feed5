"""
Pydantic schemas for conversation API requests and responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from chainflow.core.results import Outcome, Result


class CommandRequest(BaseModel):
    """Request schema for a slash command."""

    command: str = Field(..., description="Command with optional arguments, e.g. '/trade SOL USDC 1'")

    @field_validator("command")
    @classmethod
    def validate_command(cls, v):
        if not v.strip():
            raise ValueError("Command must not be empty")
        return v


class ButtonRequest(BaseModel):
    """Request schema for a button press."""

    token: str = Field(..., description="Action token of the pressed button")


class TextRequest(BaseModel):
    """Request schema for a free-text reply."""

    text: str = Field(..., description="Raw text sent by the user")


class QuickActionResponse(BaseModel):
    label: str
    token: str


class PageInfoResponse(BaseModel):
    page: int
    total_pages: int
    total_items: int


class ConversationResponse(BaseModel):
    """Render-agnostic result of one conversation step."""

    kind: str = Field(..., description="'prompt' or 'outcome'")
    message: str
    state: str = Field(..., description="Flow state after the step ('' when idle)")
    actions: List[List[QuickActionResponse]] = Field(default_factory=list)
    error_kind: Optional[str] = None
    effects: List[str] = Field(default_factory=list)
    page: Optional[PageInfoResponse] = None
    success: Optional[bool] = None
    amount: Optional[str] = None
    reference_id: Optional[str] = None
    viewer_link: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict, description="Outcome specific fields")

    @classmethod
    def from_result(cls, result: Result) -> "ConversationResponse":
        actions = [
            [QuickActionResponse(label=action.label, token=action.token) for action in row]
            for row in result.actions
        ]
        response = cls(
            kind="outcome" if isinstance(result, Outcome) else "prompt",
            message=result.message,
            state=result.state.value,
            actions=actions,
            error_kind=result.error_kind.value if result.error_kind else None,
            effects=[effect.value for effect in result.effects],
        )

        page = getattr(result, "page", None)
        if page is not None:
            response.page = PageInfoResponse(
                page=page.page, total_pages=page.total_pages, total_items=page.total_items
            )

        if isinstance(result, Outcome):
            response.success = result.success
            response.amount = result.amount
            response.reference_id = result.reference_id
            response.viewer_link = result.viewer_link
            common = set(Outcome.__dataclass_fields__)
            response.details = {
                name: getattr(result, name)
                for name in type(result).__dataclass_fields__
                if name not in common
            }
        return response


class HistoryRecordResponse(BaseModel):
    kind: str
    from_address: str
    to_address: Optional[str] = None
    recipient_user_id: Optional[int] = None
    asset_symbol: str
    output_symbol: Optional[str] = None
    amount: Decimal
    reference_id: str
    created_at: datetime
