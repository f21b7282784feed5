"""Asset browsing while idle: /tokens, /refresh and page buttons."""

import logging
from typing import Sequence

from chainflow.core.action_tokens import ActionToken
from chainflow.core.errors import InvalidAction
from chainflow.core.flows import FlowState
from chainflow.core.results import Transition, TransitionKind
from chainflow.core.session_store import Session
from chainflow.core.workflows.assets import AssetPager
from chainflow.core.workflows.base import MENU_ACTION, Workflow, WorkflowContext, idle_screen

logger = logging.getLogger(__name__)

TITLE = "💼 Your assets"


class BrowseWorkflow(Workflow):
    """Page through the wallet's assets without starting a flow."""

    commands = ("tokens", "refresh")
    idle_actions = ("page", "noop")

    def __init__(self, context: WorkflowContext):
        super().__init__(context)
        self.assets = AssetPager(context)

    async def start(self, user_id: int, session: Session, command: str, args: Sequence[str]) -> Transition:
        wallet = await self.context.require_wallet(user_id)

        title = TITLE
        if command == "refresh":
            self.assets.invalidate(user_id)
            title = f"🔄 Refreshed\n\n{TITLE}"
            logger.info(f"User {user_id} refreshed the asset list")

        await self.assets.load(user_id, wallet)
        prompt = self.assets.render(user_id, 1, title, extra_rows=[[MENU_ACTION]])
        return idle_screen(prompt)

    async def handle_idle_action(self, user_id: int, session: Session, action: ActionToken) -> Transition:
        if action.name == "page":
            page_number = action.int_arg()
        elif action.name == "noop":
            page_number = self.assets.current_page(user_id)
        else:
            raise InvalidAction()

        prompt = self.assets.render(user_id, page_number, TITLE, extra_rows=[[MENU_ACTION]])
        prompt.state = FlowState.IDLE
        return Transition(TransitionKind.REFRESH, FlowState.IDLE, prompt)
