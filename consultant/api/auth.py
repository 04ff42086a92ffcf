"""Bearer-token authentication against the hosted auth service.

The token from `Authorization: Bearer <token>` is checked by calling
`GET {SUPABASE_URL}/auth/v1/user` with the service key; a 200 response
carries the user record.
"""

from dataclasses import dataclass

import httpx
import structlog
from fastapi import Header, HTTPException, Request

logger = structlog.get_logger(__name__)


class AuthServiceError(Exception):
    """The auth service could not be reached or answered unexpectedly."""


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    email: str = ""


class TokenVerifier:
    """Resolves access tokens to users via the auth service REST API."""

    def __init__(self, base_url: str, service_key: str, timeout: float = 10.0,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.service_key)

    async def verify(self, token: str) -> AuthenticatedUser | None:
        """Return the user for a valid token, None for a rejected one.

        Raises:
            AuthServiceError: Network failure, a 5xx, or a malformed 200 body.
        """
        try:
            response = await self._client.get(
                f"{self.base_url}/auth/v1/user",
                headers={"Authorization": f"Bearer {token}", "apikey": self.service_key},
            )
        except httpx.HTTPError as e:
            raise AuthServiceError(f"Auth service unreachable: {e}") from e

        if response.status_code >= 500:
            raise AuthServiceError(f"Auth service returned HTTP {response.status_code}")
        if response.status_code != 200:
            return None

        try:
            data = response.json()
        except ValueError as e:
            raise AuthServiceError("Auth service returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise AuthServiceError("Auth service returned an unexpected body")

        user_id = data.get("id")
        if not user_id:
            return None
        return AuthenticatedUser(id=user_id, email=data.get("email") or "")

    async def aclose(self) -> None:
        await self._client.aclose()


async def get_current_user(request: Request, authorization: str | None = Header(default=None)) -> AuthenticatedUser:
    """FastAPI dependency: authenticate the caller or fail with 401."""
    verifier: TokenVerifier | None = getattr(request.app.state, "auth", None)
    if verifier is None or not verifier.configured:
        raise HTTPException(status_code=503, detail="Сервис авторизации не настроен")

    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Отсутствует токен авторизации")

    token = authorization[len("Bearer "):].strip()
    try:
        user = await verifier.verify(token)
    except AuthServiceError as e:
        logger.error("auth.service_failed", error=str(e))
        raise HTTPException(status_code=503, detail="Сервис авторизации недоступен")

    if user is None:
        logger.warning("auth.rejected")
        raise HTTPException(status_code=401, detail="Недействительный токен авторизации")
    return user
