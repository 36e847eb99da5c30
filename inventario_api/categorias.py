from typing import List

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from inventario_api.exceptions import ConflictError, NotFoundError
from inventario_api.models import Categoria, producto_categorias
from inventario_api.schemas import CategoriaInput, CategoriaUpdate


async def _commit_nombre(db: AsyncSession, nombre: str) -> None:
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race on the unique nombre
        await db.rollback()
        raise ConflictError("La categoría ya existe", f"nombre '{nombre}' ya está en uso")


async def _nombre_en_uso(db: AsyncSession, nombre: str, excluir_id: int = None) -> bool:
    query = select(Categoria.id).where(Categoria.nombre == nombre)
    if excluir_id is not None:
        query = query.where(Categoria.id != excluir_id)
    result = await db.execute(query)
    return result.first() is not None


async def list_categorias(db: AsyncSession) -> List[Categoria]:
    result = await db.execute(select(Categoria).order_by(Categoria.nombre))
    return list(result.scalars().all())


async def get_categoria(db: AsyncSession, categoria_id: int) -> Categoria:
    categoria = await db.get(Categoria, categoria_id)
    if not categoria:
        raise NotFoundError("Categoría no encontrada")
    return categoria


async def create_categoria(db: AsyncSession, data: CategoriaInput) -> Categoria:
    if await _nombre_en_uso(db, data.nombre):
        raise ConflictError("La categoría ya existe", f"nombre '{data.nombre}' ya está en uso")

    categoria = Categoria(nombre=data.nombre, descripcion=data.descripcion or None)
    db.add(categoria)
    await _commit_nombre(db, categoria.nombre)
    await db.refresh(categoria)
    logger.info(f"Categoria {categoria.id} created: {categoria.nombre}")
    return categoria


async def update_categoria(db: AsyncSession, categoria_id: int, data: CategoriaUpdate) -> Categoria:
    categoria = await get_categoria(db, categoria_id)
    changes = data.model_dump(exclude_unset=True)

    nombre = changes.get("nombre")
    if nombre is not None:
        if await _nombre_en_uso(db, nombre, excluir_id=categoria_id):
            raise ConflictError("La categoría ya existe", f"nombre '{nombre}' ya está en uso")
        categoria.nombre = nombre
    if "descripcion" in changes:
        categoria.descripcion = changes["descripcion"] or None

    await _commit_nombre(db, categoria.nombre)
    await db.refresh(categoria)
    logger.info(f"Categoria {categoria_id} updated")
    return categoria


async def delete_categoria(db: AsyncSession, categoria_id: int) -> None:
    categoria = await get_categoria(db, categoria_id)
    await db.execute(delete(producto_categorias).where(producto_categorias.c.categoria_id == categoria_id))
    await db.delete(categoria)
    await db.commit()
    logger.info(f"Categoria {categoria_id} deleted")
