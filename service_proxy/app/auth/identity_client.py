"""
Client-credentials token requests against the identity provider.
"""

from typing import Optional, Tuple

import httpx

from shared.errors import CredentialError
from shared.logging import get_logger


class IdentityClient:
    """Obtains application bearer tokens with the client-credentials grant."""

    def __init__(
        self,
        authority_url: str,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        scope: str,
        *,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.authority_url = authority_url.rstrip("/")
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self.logger = get_logger("proxy.auth.identity")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def token_url(self) -> str:
        return f"{self.authority_url}/{self.tenant_id}/oauth2/v2.0/token"

    @property
    def configured(self) -> bool:
        return bool(self.tenant_id and self.client_id and self.client_secret)

    async def close(self) -> None:
        await self._client.aclose()

    async def request_token(self) -> Tuple[str, int]:
        """Return ``(access_token, expires_in_seconds)`` from the identity provider."""
        if not self.configured:
            raise CredentialError("Identity credentials are not configured")

        try:
            response = await self._client.post(
                self.token_url,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "scope": self.scope,
                    "grant_type": "client_credentials",
                },
            )
        except httpx.HTTPError as e:
            self.logger.error("Identity provider unreachable", error=str(e))
            raise CredentialError(
                "Identity provider unavailable",
                details={"http_error": str(e)}
            )

        if response.status_code != 200:
            self.logger.error(
                "Token request rejected",
                status_code=response.status_code,
            )
            raise CredentialError(
                f"Token request failed: {response.status_code}",
                details={"status_code": response.status_code}
            )

        try:
            payload = response.json()
            token = payload["access_token"]
            expires_in = int(payload.get("expires_in", 3600))
        except (ValueError, KeyError, TypeError) as e:
            raise CredentialError(
                "Token response malformed",
                details={"error": str(e)}
            )

        if not isinstance(token, str) or not token:
            raise CredentialError("Token response contained an empty token")

        return token, expires_in
