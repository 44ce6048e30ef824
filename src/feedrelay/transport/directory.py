"""Identity directory backed by the platform's REST API."""

import logging
from typing import Any

import httpx

from feedrelay.errors import DirectoryError, InvalidIdentifierError, NotFoundError
from feedrelay.http.client import HttpClient
from feedrelay.transport.base import IdentityDirectory

logger = logging.getLogger(__name__)


class HttpIdentityDirectory(IdentityDirectory):
    """
    Resolves guild members over HTTP.

    Error bodies carry a numeric ``code``; codes that mean the member is
    gone surface as ``NotFoundError`` so callers can forget the member.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: httpx.Timeout | None = None,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the directory client.

        Args:
            base_url: REST API root (e.g. https://discord.com/api/v8)
            token: Bot token for the Authorization header
            timeout: Request timeout configuration
            max_retries: Retries for transient failures
            transport: Optional httpx transport (used by tests)
        """
        headers = {"Authorization": f"Bot {token}"} if token else {}
        self._client = HttpClient(
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
            headers=headers,
            transport=transport,
        )

    async def resolve_member(self, guild_id: str, member_id: str) -> dict[str, Any]:
        if not member_id.isascii() or not member_id.isdigit():
            raise InvalidIdentifierError(member_id)

        response = await self._client.get(f"/guilds/{guild_id}/members/{member_id}")
        if response.is_success:
            return response.json()

        code = self._error_code(response)
        message = f"Member {member_id} lookup in guild {guild_id} failed ({response.status_code})"
        error = DirectoryError(code, message)
        if error.is_not_found:
            raise NotFoundError(code, message)
        raise error

    @staticmethod
    def _error_code(response: httpx.Response) -> int | None:
        try:
            body = response.json()
        except ValueError:
            return None
        code = body.get("code") if isinstance(body, dict) else None
        return code if isinstance(code, int) else None

    async def close(self) -> None:
        await self._client.close()
