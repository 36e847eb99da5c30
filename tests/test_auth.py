import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from inventario_api.auth import KeycloakAuth, get_keycloak_auth
from inventario_api.exceptions import UnauthorizedError
from inventario_api.main import app

ISSUER = "http://keycloak.test/realms/inventario"

private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)


def make_token(key=private_key, **claims) -> str:
    payload = {
        "sub": "user-1",
        "iss": ISSUER,
        "exp": int(time.time()) + 300,
        "azp": "inventario-api",
        "scope": "openid productos:read productos:write",
        "realm_access": {"roles": ["inventario-admin"]},
    }
    payload.update(claims)
    return jwt.encode(payload, key, algorithm="RS256", headers={"kid": "test-key"})


@pytest.fixture
def jwks_client():
    client = MagicMock()
    client.get_signing_key_from_jwt.return_value = SimpleNamespace(key=private_key.public_key())
    return client


@pytest.fixture
def keycloak_auth(jwks_client):
    return KeycloakAuth(issuer=ISSUER, client_id="inventario-api", jwks_client=jwks_client)


@pytest.mark.asyncio
async def test_validate_token(keycloak_auth, jwks_client):
    token = make_token()

    claims = await keycloak_auth.validate_token(token)

    assert claims["sub"] == "user-1"
    jwks_client.get_signing_key_from_jwt.assert_called_once_with(token)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "token",
    [
        make_token(exp=int(time.time()) - 60),
        make_token(iss="http://otro.test/realms/inventario"),
        make_token(key=other_key),
    ],
    ids=["expired", "wrong-issuer", "wrong-signature"],
)
async def test_validate_token_rejects(keycloak_auth, token):
    with pytest.raises(UnauthorizedError) as exc_info:
        await keycloak_auth.validate_token(token)
    assert exc_info.value.message == "Invalid or expired token"


@pytest.mark.asyncio
async def test_validate_token_unknown_key(keycloak_auth, jwks_client):
    jwks_client.get_signing_key_from_jwt.side_effect = jwt.PyJWKClientError("Unable to find a signing key")

    with pytest.raises(UnauthorizedError):
        await keycloak_auth.validate_token(make_token())


@pytest.mark.asyncio
async def test_validate_token_checks_client_when_enabled(jwks_client):
    keycloak_auth = KeycloakAuth(
        issuer=ISSUER,
        client_id="inventario-api",
        verify_client=True,
        jwks_client=jwks_client,
    )

    claims = await keycloak_auth.validate_token(make_token())
    assert claims["azp"] == "inventario-api"

    with pytest.raises(UnauthorizedError) as exc_info:
        await keycloak_auth.validate_token(make_token(azp="otro-cliente"))
    assert exc_info.value.details == "Token not issued for this client"


def introspection_auth(handler) -> KeycloakAuth:
    return KeycloakAuth(
        issuer=ISSUER,
        client_id="inventario-api",
        client_secret="secret",
        mode="introspection",
        jwks_client=MagicMock(),
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_introspection_active_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["form"] = request.content.decode()
        return httpx.Response(200, json={"active": True, "sub": "user-1", "scope": "productos:read"})

    claims = await introspection_auth(handler).authenticate("opaque-token")

    assert claims["sub"] == "user-1"
    assert seen["url"] == f"{ISSUER}/protocol/openid-connect/token/introspect"
    assert "token=opaque-token" in seen["form"]
    assert "client_id=inventario-api" in seen["form"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"active": False}),
        httpx.Response(401, json={"error": "invalid_client"}),
    ],
    ids=["inactive", "rejected"],
)
async def test_introspection_rejects(response):
    keycloak_auth = introspection_auth(lambda request: response)

    with pytest.raises(UnauthorizedError):
        await keycloak_auth.authenticate("opaque-token")


@pytest.mark.asyncio
async def test_introspection_unreachable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UnauthorizedError):
        await introspection_auth(handler).authenticate("opaque-token")


def test_scopes_and_roles():
    claims = {"scope": "openid productos:read", "realm_access": {"roles": ["admin"]}}

    assert KeycloakAuth.scopes_of(claims) == ["openid", "productos:read"]
    assert KeycloakAuth.roles_of(claims) == ["admin"]
    assert KeycloakAuth.has_required_scopes(claims, ["productos:read"])
    assert not KeycloakAuth.has_required_scopes(claims, ["productos:read", "productos:write"])
    assert KeycloakAuth.has_required_scopes({}, [])
    assert KeycloakAuth.roles_of({}) == []


@pytest.mark.asyncio
async def test_signed_token_end_to_end(client, keycloak_auth):
    app.dependency_overrides[get_keycloak_auth] = lambda: keycloak_auth

    response = await client.get("/api/productos", headers={"Authorization": f"Bearer {make_token()}"})
    assert response.status_code == 200

    token = make_token(scope="openid productos:read")
    response = await client.post(
        "/api/productos",
        json={"nombre": "Mouse", "precio": 10, "stockInicial": 1},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 403

    response = await client.get(
        "/api/productos",
        headers={"Authorization": f"Bearer {make_token(exp=int(time.time()) - 60)}"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_ping_is_public(client):
    response = await client.get("/api/ping", headers={"Authorization": ""})
    assert response.status_code == 200
    assert response.json() == {"ok": True, "message": "pong"}

    response = await client.post("/api/ping", json={"hola": "mundo"}, headers={"Authorization": ""})
    assert response.json() == {"received": {"hola": "mundo"}}

    response = await client.post("/api/ping", content=b"no es json", headers={"Authorization": ""})
    assert response.json() == {"received": {}}
