from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from inventario_api import productos
from inventario_api.auth import RequireAuth
from inventario_api.database import get_session
from inventario_api.routers.params import PathId
from inventario_api.schemas import (
    MAX_INT,
    MIN_INT,
    Producto,
    ProductoCreado,
    ProductoInput,
    ProductoList,
    ProductoUpdate,
)

router = APIRouter(prefix="/api/productos", tags=["productos"])

can_read = RequireAuth("productos:read")
can_write = RequireAuth("productos:write")


@router.get("", response_model=ProductoList, dependencies=[Depends(can_read)])
async def list_productos(
    page: int = Query(1, le=MAX_INT),
    limit: int = Query(20, le=MAX_INT),
    q: Optional[str] = None,
    categoria_id: Optional[int] = Query(None, alias="categoriaId", ge=MIN_INT, le=MAX_INT),
    db: AsyncSession = Depends(get_session),
):
    return await productos.list_productos(db, page=page, limit=limit, q=q, categoria_id=categoria_id)


@router.post("", response_model=ProductoCreado, status_code=201, dependencies=[Depends(can_write)])
async def create_producto(data: ProductoInput, db: AsyncSession = Depends(get_session)):
    return await productos.create_producto(db, data)


@router.get("/{producto_id}", response_model=Producto, dependencies=[Depends(can_read)])
async def get_producto(producto_id: PathId, db: AsyncSession = Depends(get_session)):
    return await productos.get_producto(db, producto_id)


@router.patch("/{producto_id}", response_model=Producto, dependencies=[Depends(can_write)])
async def update_producto(producto_id: PathId, data: ProductoUpdate, db: AsyncSession = Depends(get_session)):
    return await productos.update_producto(db, producto_id, data)


@router.delete("/{producto_id}", status_code=204, dependencies=[Depends(can_write)])
async def delete_producto(producto_id: PathId, db: AsyncSession = Depends(get_session)):
    await productos.delete_producto(db, producto_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
