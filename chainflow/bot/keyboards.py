"""
Telegram keyboard layouts.
"""

from typing import List, Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from chainflow.core.results import QuickAction


def build_inline_keyboard(actions: List[List[QuickAction]]) -> Optional[InlineKeyboardMarkup]:
    """
    Render quick-action rows as an inline keyboard.

    Args:
        actions: Rows of quick actions from a Prompt or Outcome

    Returns:
        Inline keyboard markup, or None when there are no actions
    """
    keyboard = [
        [InlineKeyboardButton(action.label, callback_data=action.token) for action in row]
        for row in actions
        if row
    ]
    if not keyboard:
        return None
    return InlineKeyboardMarkup(keyboard)
