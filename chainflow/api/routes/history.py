"""
Transfer history endpoints.
"""

from typing import List
from fastapi import APIRouter, Depends, Query

from chainflow.services.history_service import HistoryService
from chainflow.api.dependencies import get_history_service
from chainflow.api.schemas.conversation_schemas import HistoryRecordResponse


router = APIRouter(prefix="/history", tags=["history"])


@router.get("/{user_id}", response_model=List[HistoryRecordResponse])
async def get_history(
    user_id: int,
    limit: int = Query(20, ge=1, le=100, description="Maximum number of records (1-100)"),
    history_service: HistoryService = Depends(get_history_service)
) -> List[HistoryRecordResponse]:
    """
    Get transfers and trades sent or received by a user, newest first.
    """
    records = history_service.list_for_user(user_id, limit=limit)
    return [
        HistoryRecordResponse(
            kind=record.kind,
            from_address=record.from_address,
            to_address=record.to_address,
            recipient_user_id=record.recipient_user_id,
            asset_symbol=record.asset_symbol,
            output_symbol=record.output_symbol,
            amount=record.amount,
            reference_id=record.reference_id,
            created_at=record.created_at,
        )
        for record in records
    ]
