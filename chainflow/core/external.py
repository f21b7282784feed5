"""Bounded external capability calls."""

import asyncio
import logging
from typing import Awaitable, Tuple, Type, TypeVar

from chainflow.core.errors import ExternalFailure, FlowError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_external(
    awaitable: Awaitable[T],
    operation: str,
    timeout: float,
    recoverable: bool = True,
    passthrough: Tuple[Type[BaseException], ...] = ()
) -> T:
    """
    Await a capability call with a timeout, mapping failures to ExternalFailure.

    Calls are never retried here; execution steps must run at most once.

    Args:
        awaitable: The pending capability call
        operation: Short name for logs and messages (e.g. "get_balance")
        timeout: Seconds before giving up
        recoverable: Recoverability flag of the raised ExternalFailure
        passthrough: Exception types re-raised unchanged (e.g. ValueError
            from a validating directory)

    Returns:
        The call's result

    Raises:
        ExternalFailure: On timeout or any unexpected exception
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.warning(f"External call '{operation}' timed out after {timeout}s")
        raise ExternalFailure(
            "The service took too long to respond. Please try again.",
            recoverable=recoverable,
            cause=e
        )
    except passthrough:
        raise
    except FlowError:
        raise
    except Exception as e:
        logger.error(f"External call '{operation}' failed: {e}", exc_info=True)
        raise ExternalFailure(
            "Something went wrong while contacting the network. Please try again.",
            recoverable=recoverable,
            cause=e
        )
