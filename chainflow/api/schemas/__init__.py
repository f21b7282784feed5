"""Pydantic schemas for API requests and responses."""

from chainflow.api.schemas.conversation_schemas import (
    CommandRequest,
    ButtonRequest,
    TextRequest,
    QuickActionResponse,
    PageInfoResponse,
    ConversationResponse,
    HistoryRecordResponse,
)

__all__ = [
    'CommandRequest',
    'ButtonRequest',
    'TextRequest',
    'QuickActionResponse',
    'PageInfoResponse',
    'ConversationResponse',
    'HistoryRecordResponse',
]
