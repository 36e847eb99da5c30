"""Bearer token validation against a Keycloak realm."""

from functools import lru_cache
from typing import Dict, List, Optional

import httpx
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from inventario_api.config import (
    KEYCLOAK_CLIENT_ID,
    KEYCLOAK_CLIENT_SECRET,
    KEYCLOAK_ISSUER,
    KEYCLOAK_VALIDATION,
    KEYCLOAK_VERIFY_CLIENT,
)
from inventario_api.exceptions import ForbiddenError, UnauthorizedError

bearer_scheme = HTTPBearer(auto_error=False)


class AuthenticatedUser(BaseModel):
    sub: str
    email: Optional[str] = None
    username: Optional[str] = None
    roles: List[str] = []
    scopes: List[str] = []


class KeycloakAuth:
    def __init__(
        self,
        issuer: str,
        client_id: str = "",
        client_secret: str = "",
        mode: str = "jwks",
        verify_client: bool = False,
        jwks_client: Optional[jwt.PyJWKClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.issuer = issuer.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.mode = mode
        self.verify_client = verify_client
        self._jwks_client = jwks_client or jwt.PyJWKClient(self.jwks_url, cache_keys=True)
        self._transport = transport

    @property
    def jwks_url(self) -> str:
        return f"{self.issuer}/protocol/openid-connect/certs"

    @property
    def introspection_url(self) -> str:
        return f"{self.issuer}/protocol/openid-connect/token/introspect"

    async def validate_token(self, token: str) -> Dict:
        """Verify signature and issuer locally with the realm's published keys."""
        try:
            # PyJWKClient fetches over blocking urllib
            signing_key = await run_in_threadpool(self._jwks_client.get_signing_key_from_jwt, token)
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                issuer=self.issuer,
                options={"verify_aud": False},
            )
        except jwt.PyJWTError as e:
            logger.info(f"Token validation failed: {e}")
            raise UnauthorizedError("Invalid or expired token")

        if self.verify_client and not self._issued_for_client(claims):
            logger.info(f"Token not issued for client {self.client_id}")
            raise UnauthorizedError("Invalid or expired token", "Token not issued for this client")
        return claims

    async def introspect_token(self, token: str) -> Dict:
        """Ask Keycloak whether the token is still active."""
        data = {"token": token, "client_id": self.client_id, "client_secret": self.client_secret}
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=5.0) as client:
                response = await client.post(self.introspection_url, data=data)
        except httpx.HTTPError as e:
            logger.error(f"Token introspection error: {e}")
            raise UnauthorizedError("Invalid or expired token")

        if response.status_code != 200:
            logger.error(f"Token introspection failed: {response.status_code}")
            raise UnauthorizedError("Invalid or expired token")

        claims = response.json()
        if not claims.get("active"):
            raise UnauthorizedError("Invalid or expired token")
        return claims

    async def authenticate(self, token: str) -> Dict:
        if self.mode == "introspection":
            return await self.introspect_token(token)
        return await self.validate_token(token)

    def _issued_for_client(self, claims: Dict) -> bool:
        audience = claims.get("azp") or claims.get("aud")
        if isinstance(audience, list):
            return self.client_id in audience
        return audience == self.client_id

    @staticmethod
    def scopes_of(claims: Dict) -> List[str]:
        return (claims.get("scope") or "").split()

    @staticmethod
    def roles_of(claims: Dict) -> List[str]:
        return (claims.get("realm_access") or {}).get("roles", [])

    @classmethod
    def has_required_scopes(cls, claims: Dict, required: List[str]) -> bool:
        granted = cls.scopes_of(claims)
        return all(scope in granted for scope in required)


@lru_cache
def get_keycloak_auth() -> KeycloakAuth:
    return KeycloakAuth(
        issuer=KEYCLOAK_ISSUER,
        client_id=KEYCLOAK_CLIENT_ID,
        client_secret=KEYCLOAK_CLIENT_SECRET,
        mode=KEYCLOAK_VALIDATION,
        verify_client=KEYCLOAK_VERIFY_CLIENT,
    )


class RequireAuth:
    """Dependency that demands a valid bearer token carrying every given scope."""

    def __init__(self, *scopes: str) -> None:
        self.scopes = list(scopes)

    async def __call__(
        self,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        keycloak: KeycloakAuth = Depends(get_keycloak_auth),
    ) -> AuthenticatedUser:
        if credentials is None or not credentials.credentials:
            raise UnauthorizedError("Authorization token required")

        claims = await keycloak.authenticate(credentials.credentials)

        if self.scopes and not keycloak.has_required_scopes(claims, self.scopes):
            raise ForbiddenError("Insufficient permissions", f"Required scopes: {' '.join(self.scopes)}")

        return AuthenticatedUser(
            sub=str(claims.get("sub", "")),
            email=claims.get("email"),
            username=claims.get("preferred_username") or claims.get("username"),
            roles=keycloak.roles_of(claims),
            scopes=keycloak.scopes_of(claims),
        )
