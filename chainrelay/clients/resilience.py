"""Resilience primitives: exception hierarchy, response classification, retry policy."""

import logging
from enum import StrEnum

from tenacity import RetryCallState, wait_exponential, wait_fixed
from tenacity.wait import wait_base

logger = logging.getLogger(__name__)


# ── Exception Hierarchy ──────────────────────────────────────────────────────


class APIError(Exception):
    """Base class for all upstream API errors."""


class TransientAPIError(APIError):
    """Retriable errors (429, 5xx, transport failures)."""


class PermanentAPIError(APIError):
    """Non-retriable errors (403, 404, malformed requests)."""


class SchemaChangeError(PermanentAPIError):
    """Upstream response shape changed unexpectedly."""


class RPCError(APIError):
    """JSON-RPC error object returned by a node.

    Args:
        code: JSON-RPC error code.
        message: Error message from the node.
    """

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message


class TransientRPCError(RPCError, TransientAPIError):
    """JSON-RPC error a node reports for overload or internal failure."""


class PermanentRPCError(RPCError, PermanentAPIError):
    """JSON-RPC error caused by the request itself."""


class UnsupportedNetworkError(ValueError):
    """Requested network or network type is not configured."""


class TaskFailedError(Exception):
    """A queued task exhausted its attempts.

    The message mirrors the last underlying error; ``__cause__`` holds it.

    Args:
        network_key: Queue the task ran on.
        attempts: Number of attempts made.
        last_error: The final exception raised by the task.
    """

    def __init__(self, network_key: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(str(last_error))
        self.network_key = network_key
        self.attempts = attempts
        self.last_error = last_error


TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}

# -32005 is the de-facto "limit exceeded" code; -32603 internal error.
TRANSIENT_RPC_CODES = {-32005, -32603}

# geth reports both node-side hiccups and deterministic rejections
# ("insufficient funds", "nonce too low") as -32000; only these texts retry.
SERVER_ERROR_CODE = -32000
TRANSIENT_SERVER_ERROR_MARKERS = (
    "header not found",
    "limit exceeded",
    "rate limit",
    "too many requests",
    "timeout",
    "timed out",
    "busy",
)


# ── Response Classification ──────────────────────────────────────────────────


def classify_response(response: object) -> None:
    """Raise an appropriate error based on HTTP status code.

    Args:
        response: An object with a ``status_code`` attribute (e.g. httpx.Response).

    Raises:
        PermanentAPIError: On non-transient 4xx.
        TransientAPIError: On 429, 5xx.
    """
    status = getattr(response, "status_code", None)
    if status is None or 200 <= status < 400:
        return

    if status in TRANSIENT_STATUS_CODES:
        raise TransientAPIError(f"Transient error (HTTP {status})")
    if 400 <= status < 500:
        raise PermanentAPIError(f"Client error (HTTP {status})")
    raise TransientAPIError(f"Server error (HTTP {status})")


def classify_rpc_error(error: dict) -> RPCError:
    """Build the RPCError subclass matching a JSON-RPC ``error`` object."""
    code = int(error.get("code", 0))
    message = str(error.get("message", "unknown error"))
    if code in TRANSIENT_RPC_CODES:
        return TransientRPCError(code, message)
    if code == SERVER_ERROR_CODE:
        lowered = message.lower()
        if any(marker in lowered for marker in TRANSIENT_SERVER_ERROR_MARKERS):
            return TransientRPCError(code, message)
    return PermanentRPCError(code, message)


def validate_rpc_envelope(data: object) -> None:
    """Validate that a JSON-RPC response carries ``result`` or ``error``.

    Raises:
        SchemaChangeError: If the envelope is not a JSON-RPC response.
    """
    if not isinstance(data, dict):
        raise SchemaChangeError("Expected dict for JSON-RPC response")
    if "result" not in data and "error" not in data:
        raise SchemaChangeError(f"JSON-RPC response has neither result nor error: {data}")


# ── Retry ─────────────────────────────────────────────────────────────────


class BackoffKind(StrEnum):
    CONSTANT = "constant"
    EXPONENTIAL = "exponential"


class RetryPolicy:
    """Delay schedule between attempts of a queued task.

    Args:
        max_retries: Maximum number of attempts per task.
        delay: Constant delay, or the initial delay for exponential backoff.
        backoff: ``constant`` or ``exponential``.
        max_delay: Upper bound for exponential delays.
    """

    def __init__(
        self,
        max_retries: int = 3,
        delay: float = 1.0,
        backoff: BackoffKind | str = BackoffKind.CONSTANT,
        max_delay: float = 30.0,
    ) -> None:
        self.max_retries = max(1, max_retries)
        self.delay = delay
        self.backoff = BackoffKind(backoff)
        self.max_delay = max_delay

    def wait(self) -> wait_base:
        """Tenacity wait strategy for this policy."""
        if self.backoff == BackoffKind.EXPONENTIAL:
            return wait_exponential(multiplier=self.delay, min=self.delay, max=self.max_delay)
        return wait_fixed(self.delay)


def log_retry_attempt(retry_state: RetryCallState) -> None:
    """Tenacity ``before_sleep`` callback that logs each retry."""
    attempt = retry_state.attempt_number
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning("Retry attempt %d after error: %s", attempt, exc)
