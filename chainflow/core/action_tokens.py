"""
Button action tokens.

Tokens are ``name`` or ``name:arg[:arg...]``. Parsing is defensive: anything
malformed raises InvalidAction. Tokens never carry amounts; confirmation
tokens carry a nonce that is matched against the session.
"""

import re
from dataclasses import dataclass
from typing import Tuple

from chainflow.core.errors import InvalidAction

# Telegram limits callback_data to 64 bytes
MAX_TOKEN_LENGTH = 64

_ARG_RE = re.compile(r"^[A-Za-z0-9_.\-]{1,32}$")

KNOWN_ACTIONS = {
    "menu": 0,
    "cancel": 0,
    "noop": 0,
    "page": 1,
    "asset": 1,
    "offer": 1,
    "confirm": 1,
    "trade_refresh": 0,
    "trade_amount": 0,
    "trade_slippage": 0,
    "slippage": 1,
    "cmd": 1,
}


@dataclass(frozen=True)
class ActionToken:
    name: str
    args: Tuple[str, ...] = ()

    def int_arg(self, index: int = 0) -> int:
        try:
            return int(self.args[index])
        except (IndexError, ValueError):
            raise InvalidAction()


def build(name: str, *args) -> str:
    """Build a token string."""
    return ":".join([name, *[str(arg) for arg in args]])


def parse(raw: str) -> ActionToken:
    """
    Parse a raw button token.

    Raises:
        InvalidAction: Unknown action, wrong arity or malformed arguments
    """
    if not isinstance(raw, str) or not raw or len(raw) > MAX_TOKEN_LENGTH:
        raise InvalidAction()

    name, *args = raw.split(":")
    if name not in KNOWN_ACTIONS or len(args) != KNOWN_ACTIONS[name]:
        raise InvalidAction()

    for arg in args:
        if not _ARG_RE.match(arg):
            raise InvalidAction()

    return ActionToken(name=name, args=tuple(args))
