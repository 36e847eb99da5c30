import math
from typing import Dict, Iterable, List, Optional

from loguru import logger
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from inventario_api import schemas
from inventario_api.exceptions import ConflictError, InvalidDataError, NotFoundError
from inventario_api.models import ESTADOS_ACTIVOS, Categoria, Producto, Reserva, ReservaProducto

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def clamp_pagination(page: Optional[int], limit: Optional[int]) -> tuple:
    page = max(1, page or 1)
    limit = min(MAX_LIMIT, max(1, limit or DEFAULT_LIMIT))
    return page, limit


async def stock_reservado(db: AsyncSession, producto_ids: Iterable[int]) -> Dict[int, int]:
    """Units held by pending or confirmed reservations, per product."""
    producto_ids = list(producto_ids)
    if not producto_ids:
        return {}
    result = await db.execute(
        select(ReservaProducto.producto_id, func.sum(ReservaProducto.cantidad))
        .join(Reserva, Reserva.id == ReservaProducto.reserva_id)
        .where(ReservaProducto.producto_id.in_(producto_ids), Reserva.estado.in_(ESTADOS_ACTIVOS))
        .group_by(ReservaProducto.producto_id)
    )
    return {producto_id: int(total or 0) for producto_id, total in result.all()}


def to_schema(producto: Producto, reservado: int = 0) -> schemas.Producto:
    return schemas.Producto(
        id=producto.id,
        nombre=producto.nombre,
        descripcion=producto.descripcion,
        precio=producto.precio,
        stock_disponible=producto.stock_disponible,
        stock_reservado=reservado,
        peso_kg=producto.peso_kg,
        dimensiones=producto.dimensiones,
        ubicacion=producto.ubicacion,
        imagenes=producto.imagenes,
        categorias=[schemas.Categoria.model_validate(categoria) for categoria in producto.categorias],
    )


async def _resolve_categorias(db: AsyncSession, categoria_ids: List[int]) -> List[Categoria]:
    wanted = list(dict.fromkeys(categoria_ids))
    if not wanted:
        return []
    result = await db.execute(select(Categoria).where(Categoria.id.in_(wanted)))
    found = {categoria.id: categoria for categoria in result.scalars().all()}
    missing = [str(categoria_id) for categoria_id in wanted if categoria_id not in found]
    if missing:
        raise InvalidDataError(f"Categorías inexistentes: {', '.join(missing)}")
    return [found[categoria_id] for categoria_id in wanted]


def _json_fields(data: Dict) -> Dict:
    """Nested models are stored as their wire (camelCase) JSON."""
    stored = {}
    if "dimensiones" in data:
        value = data["dimensiones"]
        stored["dimensiones"] = value.model_dump(by_alias=True, exclude_none=True) if value else None
    if "ubicacion" in data:
        value = data["ubicacion"]
        stored["ubicacion"] = value.model_dump() if value else None
    if "imagenes" in data:
        value = data["imagenes"]
        stored["imagenes"] = [imagen.model_dump(by_alias=True) for imagen in value] if value is not None else None
    return stored


async def list_productos(
    db: AsyncSession,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    q: Optional[str] = None,
    categoria_id: Optional[int] = None,
) -> schemas.ProductoList:
    page, limit = clamp_pagination(page, limit)

    filters = []
    if categoria_id:
        filters.append(Producto.categorias.any(Categoria.id == categoria_id))
    if q:
        filters.append(
            or_(
                Producto.nombre.icontains(q, autoescape=True),
                Producto.descripcion.icontains(q, autoescape=True),
            )
        )

    total = (await db.execute(select(func.count(Producto.id)).where(*filters))).scalar_one()
    result = await db.execute(
        select(Producto).where(*filters).order_by(Producto.id).offset((page - 1) * limit).limit(limit)
    )
    productos = result.scalars().all()
    reservados = await stock_reservado(db, [producto.id for producto in productos])

    return schemas.ProductoList(
        data=[to_schema(producto, reservados.get(producto.id, 0)) for producto in productos],
        pagination=schemas.Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit),
        ),
    )


async def get_producto_model(db: AsyncSession, producto_id: int) -> Producto:
    producto = await db.get(Producto, producto_id)
    if not producto:
        raise NotFoundError("Producto no encontrado")
    return producto


async def get_producto(db: AsyncSession, producto_id: int) -> schemas.Producto:
    producto = await get_producto_model(db, producto_id)
    reservados = await stock_reservado(db, [producto.id])
    return to_schema(producto, reservados.get(producto.id, 0))


async def create_producto(db: AsyncSession, data: schemas.ProductoInput) -> schemas.ProductoCreado:
    categorias = await _resolve_categorias(db, data.categoria_ids or [])

    producto = Producto(
        nombre=data.nombre,
        descripcion=data.descripcion,
        precio=data.precio,
        stock_disponible=data.stock_inicial,
        peso_kg=data.peso_kg,
        categorias=categorias,
        **_json_fields({"dimensiones": data.dimensiones, "ubicacion": data.ubicacion, "imagenes": data.imagenes}),
    )
    db.add(producto)
    await db.commit()
    logger.info(f"Producto {producto.id} created: {producto.nombre} (stock {producto.stock_disponible})")
    return schemas.ProductoCreado(id=producto.id, mensaje="Producto creado correctamente")


async def update_producto(db: AsyncSession, producto_id: int, data: schemas.ProductoUpdate) -> schemas.Producto:
    producto = await get_producto_model(db, producto_id)
    changes = data.model_dump(exclude_unset=True)
    # model_dump flattens nested models; keep the validated objects for the JSON columns
    nested = {field: getattr(data, field) for field in ("dimensiones", "ubicacion", "imagenes") if field in changes}

    for field in ("nombre", "precio"):
        if changes.get(field) is not None:
            setattr(producto, field, changes[field])
    for field in ("descripcion", "peso_kg"):
        if field in changes:
            setattr(producto, field, changes[field])
    if changes.get("stock_inicial") is not None:
        producto.stock_disponible = changes["stock_inicial"]
    for field, value in _json_fields(nested).items():
        setattr(producto, field, value)
    if changes.get("categoria_ids") is not None:
        producto.categorias = await _resolve_categorias(db, changes["categoria_ids"])

    await db.commit()
    logger.info(f"Producto {producto_id} updated: {', '.join(sorted(changes)) or 'no changes'}")

    reservados = await stock_reservado(db, [producto.id])
    return to_schema(producto, reservados.get(producto.id, 0))


async def delete_producto(db: AsyncSession, producto_id: int) -> None:
    producto = await get_producto_model(db, producto_id)

    held = await db.execute(
        select(ReservaProducto.reserva_id)
        .join(Reserva, Reserva.id == ReservaProducto.reserva_id)
        .where(ReservaProducto.producto_id == producto_id, Reserva.estado.in_(ESTADOS_ACTIVOS))
        .limit(1)
    )
    if held.first() is not None:
        raise ConflictError("El producto tiene reservas activas", f"Producto {producto_id} está reservado")

    # Historical line items keep their name and price snapshot
    await db.execute(
        update(ReservaProducto)
        .where(ReservaProducto.producto_id == producto_id)
        .values(producto_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.delete(producto)
    await db.commit()
    logger.info(f"Producto {producto_id} deleted")
