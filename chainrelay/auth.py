"""Pre-shared bearer tokens for the MCP transport and the admin API.

Both surfaces compare the supplied token with ``token_matches``. The MCP side
plugs ``BearerTokenVerifier`` into ``mcp.auth``; the HTTP admin routes call
``token_matches`` from a FastAPI dependency.
"""

import hmac

from fastmcp.server.auth import AccessToken, TokenVerifier

MIN_MCP_TOKEN_LENGTH = 32


def token_matches(supplied: str | None, expected: str) -> bool:
    """Constant-time comparison of a presented token with the configured one."""
    if not supplied:
        return False
    return hmac.compare_digest(supplied.encode(), expected.encode())


class BearerTokenVerifier(TokenVerifier):
    """Accept MCP requests carrying ``MCP_AUTH_TOKEN``.

    Args:
        token: Expected token, at least 32 characters.
        client_id: Identity attached to accepted requests.

    Raises:
        ValueError: If *token* is too short.
    """

    def __init__(self, token: str, client_id: str = "operator") -> None:
        super().__init__()
        length = len(token) if token else 0
        if length < MIN_MCP_TOKEN_LENGTH:
            raise ValueError(
                f"MCP auth token must be at least {MIN_MCP_TOKEN_LENGTH} characters, got {length}"
            )
        self._token = token
        self._client_id = client_id

    async def verify_token(self, token: str) -> AccessToken | None:
        if token_matches(token, self._token):
            return AccessToken(token=token, client_id=self._client_id, scopes=[])
        return None
