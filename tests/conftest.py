import os

# Must be set before inventario_api modules read their configuration
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["EVENTS_ENABLED"] = "false"
os.environ["EXPIRATION_SWEEP_SECONDS"] = "0"

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from inventario_api import models  # noqa: E402,F401
from inventario_api.auth import KeycloakAuth, get_keycloak_auth  # noqa: E402
from inventario_api.database import Base, get_session  # noqa: E402
from inventario_api.exceptions import UnauthorizedError  # noqa: E402
from inventario_api.main import app  # noqa: E402

VALID_TOKEN = "valid-token"
ALL_SCOPES = "productos:read productos:write"


class StubKeycloak(KeycloakAuth):
    """Accepts a single fixed token and grants the configured scopes."""

    def __init__(self, scope: str = ALL_SCOPES):
        super().__init__(issuer="http://keycloak.test/realms/inventario", jwks_client=object())
        self.scope = scope

    async def authenticate(self, token: str):
        if token != VALID_TOKEN:
            raise UnauthorizedError("Invalid or expired token")
        return {
            "sub": "user-1",
            "preferred_username": "tester",
            "scope": self.scope,
            "realm_access": {"roles": ["inventario-admin"]},
        }


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)


@pytest.fixture
def keycloak():
    return StubKeycloak()


@pytest_asyncio.fixture
async def client(session_factory, keycloak):
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_keycloak_auth] = lambda: keycloak

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"Authorization": f"Bearer {VALID_TOKEN}"},
    ) as client:
        yield client

    app.dependency_overrides.clear()


async def create_producto(client, nombre="Laptop Gaming RGB", precio=1299.99, stock=10, **extra) -> int:
    payload = {"nombre": nombre, "precio": precio, "stockInicial": stock, **extra}
    response = await client.post("/api/productos", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["id"]


async def create_categoria(client, nombre="Electrónicos", descripcion=None) -> int:
    response = await client.post("/api/categorias", json={"nombre": nombre, "descripcion": descripcion})
    assert response.status_code == 201, response.text
    return response.json()["id"]


async def reservar(client, id_compra="compra-1", usuario_id=7, productos=None):
    return await client.post(
        "/api/stock/reservar",
        json={"idCompra": id_compra, "usuarioId": usuario_id, "productos": productos or []},
    )


async def stock_de(client, producto_id: int) -> int:
    response = await client.get(f"/api/productos/{producto_id}")
    assert response.status_code == 200, response.text
    return response.json()["stockDisponible"]
