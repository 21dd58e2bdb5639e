"""User-friendly error messages and safe tool wrapper."""

import logging

from chainrelay.clients.resilience import (
    PermanentAPIError,
    RPCError,
    SchemaChangeError,
    TaskFailedError,
    TransientAPIError,
    UnsupportedNetworkError,
)

logger = logging.getLogger(__name__)


def get_user_message(error: Exception, context: dict | None = None) -> str:
    """Map an exception to a user-friendly message.

    Args:
        error: The exception to translate.
        context: Optional dict with extra info (e.g. {"network": "polygon:mainnet"}).

    Returns:
        A human-readable error message.
    """
    network = (context or {}).get("network", "the network")

    if isinstance(error, UnsupportedNetworkError):
        return f"{error}. Use the supported networks tool to see valid choices."
    if isinstance(error, TaskFailedError):
        cause = error.last_error
        if isinstance(cause, TransientAPIError):
            return (
                f"The RPC node for {network} is not responding reliably "
                f"({error.attempts} attempts). Please try again shortly."
            )
        return f"The request to {network} failed: {error}"
    if isinstance(error, SchemaChangeError):
        return (
            f"The RPC node for {network} returned an unexpected response. "
            "Please try again later."
        )
    if isinstance(error, RPCError):
        return f"The node for {network} rejected the request: {error.message}"
    if isinstance(error, TransientAPIError):
        return f"There was a temporary issue reaching {network}. Please try again shortly."
    if isinstance(error, PermanentAPIError):
        return f"Could not complete the request for {network}. {error}"
    return "Something went wrong. Please try again or contact support."


async def safe_tool_wrapper(
    func,  # type: ignore[no-untyped-def]
    *args: object,
    context: dict | None = None,
    **kwargs: object,
) -> str:
    """Call an async function, catching errors and returning friendly messages.

    Args:
        func: Async callable to invoke.
        *args: Positional arguments for *func*.
        context: Optional context dict for error messages.
        **kwargs: Keyword arguments for *func*.

    Returns:
        The function's return value on success, or a user-friendly error string.
    """
    try:
        return await func(*args, **kwargs)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Tool error in %s", func.__name__)
        return get_user_message(exc, context)
