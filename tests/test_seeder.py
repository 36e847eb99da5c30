from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from inventario_api.models import Categoria, Producto
from inventario_api.seeder import CATEGORIAS, PRODUCTOS, seed_inventario


@pytest.mark.asyncio
async def test_seed_inventario_is_idempotent(session_factory):
    async def mock_get_session():
        async with session_factory() as session:
            yield session

    with patch("inventario_api.seeder.init_db", new=AsyncMock()), patch(
        "inventario_api.seeder.get_session", side_effect=mock_get_session
    ):
        await seed_inventario()
        await seed_inventario()

    async with session_factory() as session:
        productos = (await session.execute(select(func.count(Producto.id)))).scalar_one()
        categorias = (await session.execute(select(func.count(Categoria.id)))).scalar_one()
        agotado = (await session.execute(select(Producto).where(Producto.stock_disponible == 0))).scalars().all()

    assert productos == len(PRODUCTOS)
    assert categorias == len(CATEGORIAS)
    assert [producto.nombre for producto in agotado] == ["Auriculares Bluetooth"]
