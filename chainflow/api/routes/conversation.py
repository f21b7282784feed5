"""
Conversation endpoints.

Expose the dispatcher's command, button and text entry points so that
non-Telegram transports can drive the same flows.
"""

from fastapi import APIRouter, Depends

from chainflow.core.dispatcher import Dispatcher
from chainflow.api.dependencies import get_dispatcher
from chainflow.api.schemas.conversation_schemas import (
    ButtonRequest, CommandRequest, ConversationResponse, TextRequest
)


router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.post("/{user_id}/command", response_model=ConversationResponse)
async def post_command(
    user_id: int,
    request: CommandRequest,
    dispatcher: Dispatcher = Depends(get_dispatcher)
) -> ConversationResponse:
    """
    Handle a slash command for a user.

    Args:
        user_id: External user id
        request: Command text, e.g. '/send' or '/trade SOL USDC 1'

    Returns:
        Prompt or outcome of the step
    """
    result = await dispatcher.handle_command(user_id, request.command)
    return ConversationResponse.from_result(result)


@router.post("/{user_id}/button", response_model=ConversationResponse)
async def post_button(
    user_id: int,
    request: ButtonRequest,
    dispatcher: Dispatcher = Depends(get_dispatcher)
) -> ConversationResponse:
    """Handle a button press. Malformed tokens produce an invalid-action prompt."""
    result = await dispatcher.handle_button(user_id, request.token)
    return ConversationResponse.from_result(result)


@router.post("/{user_id}/text", response_model=ConversationResponse)
async def post_text(
    user_id: int,
    request: TextRequest,
    dispatcher: Dispatcher = Depends(get_dispatcher)
) -> ConversationResponse:
    """Handle a free-text reply."""
    result = await dispatcher.handle_text(user_id, request.text)
    return ConversationResponse.from_result(result)
