from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from inventario_api import categorias
from inventario_api.auth import RequireAuth
from inventario_api.database import get_session
from inventario_api.routers.params import PathId
from inventario_api.schemas import Categoria, CategoriaInput, CategoriaUpdate

router = APIRouter(prefix="/api/categorias", tags=["categorias"], dependencies=[Depends(RequireAuth())])


@router.get("", response_model=List[Categoria])
async def list_categorias(db: AsyncSession = Depends(get_session)):
    return await categorias.list_categorias(db)


@router.post("", response_model=Categoria, status_code=201)
async def create_categoria(data: CategoriaInput, db: AsyncSession = Depends(get_session)):
    return await categorias.create_categoria(db, data)


@router.get("/{categoria_id}", response_model=Categoria)
async def get_categoria(categoria_id: PathId, db: AsyncSession = Depends(get_session)):
    return await categorias.get_categoria(db, categoria_id)


@router.patch("/{categoria_id}", response_model=Categoria)
async def update_categoria(categoria_id: PathId, data: CategoriaUpdate, db: AsyncSession = Depends(get_session)):
    return await categorias.update_categoria(db, categoria_id, data)


@router.delete("/{categoria_id}", status_code=204)
async def delete_categoria(categoria_id: PathId, db: AsyncSession = Depends(get_session)):
    await categorias.delete_categoria(db, categoria_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
