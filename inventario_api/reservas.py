"""Stock reservation workflow.

Every state change runs in one transaction: stock is decremented or restored
with conditional UPDATEs (``stock_disponible >= cantidad`` on the way out, the
current ``estado`` on the way back) so two concurrent requests can neither
overdraw a product nor restore the same reservation twice. Any failure rolls
back the whole transaction. Events are published only after commit.
"""

from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from inventario_api import schemas
from inventario_api.config import RESERVATION_TTL_MINUTES
from inventario_api.database import utcnow
from inventario_api.exceptions import (
    ConflictError,
    ForbiddenError,
    InsufficientStockError,
    NotFoundError,
)
from inventario_api.messaging import STOCK_EXCHANGE, build_event, publish_event
from inventario_api.models import ESTADOS_ACTIVOS, EstadoReserva, Producto, Reserva, ReservaProducto
from inventario_api.productos import clamp_pagination

MOTIVO_EXPIRADA = "Reserva expirada"
MOTIVO_CANCELADA = "Cancelada por el usuario"


def to_reserva_completa(reserva: Reserva) -> schemas.ReservaCompleta:
    return schemas.ReservaCompleta(
        id_reserva=reserva.id,
        id_compra=reserva.id_compra,
        usuario_id=reserva.usuario_id,
        estado=reserva.estado,
        expires_at=reserva.expires_at,
        fecha_creacion=reserva.created_at,
        fecha_actualizacion=reserva.updated_at,
        motivo_cancelacion=reserva.motivo_cancelacion,
        productos=[
            schemas.ReservaProductoDetalle(
                id_producto=linea.producto_id,
                nombre=linea.producto_nombre,
                cantidad=linea.cantidad,
                precio_unitario=linea.precio_unitario,
            )
            for linea in reserva.productos
        ],
    )


async def _publicar(event_type: str, routing_key: str, reserva: Reserva, **extra):
    event = build_event(
        event_type,
        id_reserva=reserva.id,
        id_compra=reserva.id_compra,
        usuario_id=reserva.usuario_id,
        productos=[{"id_producto": linea.producto_id, "cantidad": linea.cantidad} for linea in reserva.productos],
        **extra,
    )
    await publish_event(STOCK_EXCHANGE, routing_key, event)


async def get_reserva_model(db: AsyncSession, reserva_id: int) -> Reserva:
    reserva = await db.get(Reserva, reserva_id)
    if not reserva:
        raise NotFoundError("Reserva no encontrada")
    return reserva


async def get_reserva_por_compra(db: AsyncSession, id_compra: str) -> Optional[Reserva]:
    result = await db.execute(select(Reserva).where(Reserva.id_compra == id_compra))
    return result.scalar_one_or_none()


async def _reserva_de_usuario(db: AsyncSession, reserva_id: int, usuario_id: int) -> Reserva:
    reserva = await get_reserva_model(db, reserva_id)
    if reserva.usuario_id != usuario_id:
        # Other users' reservations are indistinguishable from missing ones
        raise NotFoundError("Reserva no encontrada")
    return reserva


def _merge_items(items: Iterable[schemas.ReservaInputItem]) -> Dict[int, int]:
    cantidades: Dict[int, int] = {}
    for item in items:
        cantidades[item.id_producto] = cantidades.get(item.id_producto, 0) + item.cantidad
    return cantidades


async def _cambiar_estado(
    db: AsyncSession,
    reserva: Reserva,
    nuevo: EstadoReserva,
    desde: Iterable[EstadoReserva],
    motivo: Optional[str] = None,
    expires_at: Optional[datetime] = None,
) -> None:
    """Move the reservation to ``nuevo`` only if it is still in one of ``desde``."""
    ahora = utcnow()
    values = {"estado": nuevo, "updated_at": ahora}
    if motivo is not None:
        values["motivo_cancelacion"] = motivo
    if expires_at is not None:
        values["expires_at"] = expires_at

    result = await db.execute(
        update(Reserva)
        .where(Reserva.id == reserva.id, Reserva.estado.in_(list(desde)))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise ConflictError(
            "La reserva cambió de estado",
            f"Reserva {reserva.id} no está en estado {', '.join(e.value for e in desde)}",
        )
    for key, value in values.items():
        set_committed_value(reserva, key, value)


async def _liberar(
    db: AsyncSession,
    reserva: Reserva,
    motivo: str,
    desde: Iterable[EstadoReserva] = ESTADOS_ACTIVOS,
) -> None:
    if reserva.estado == EstadoReserva.CANCELADO:
        raise ConflictError("La reserva ya fue cancelada", f"Reserva {reserva.id}")

    await _cambiar_estado(db, reserva, EstadoReserva.CANCELADO, desde, motivo)

    for linea in reserva.productos:
        if linea.producto_id is None:
            continue
        await db.execute(
            update(Producto)
            .where(Producto.id == linea.producto_id)
            .values(stock_disponible=Producto.stock_disponible + linea.cantidad)
            .execution_options(synchronize_session=False)
        )


async def reservar_stock(
    db: AsyncSession,
    data: schemas.ReservaInput,
    ttl_minutes: int = RESERVATION_TTL_MINUTES,
) -> schemas.ReservaCompleta:
    cantidades = _merge_items(data.productos)

    try:
        if await get_reserva_por_compra(db, data.id_compra):
            raise ConflictError("Ya existe una reserva para esta compra", f"idCompra '{data.id_compra}'")

        lineas = []
        for producto_id, cantidad in cantidades.items():
            producto = await db.get(Producto, producto_id)
            if not producto:
                raise NotFoundError(f"Producto {producto_id} no encontrado")

            # Merged lines can add up past what any stock column can hold
            if cantidad > schemas.MAX_INT:
                raise InsufficientStockError(
                    "Stock insuficiente",
                    f"Producto {producto_id} no tiene suficiente stock",
                )

            result = await db.execute(
                update(Producto)
                .where(Producto.id == producto_id, Producto.stock_disponible >= cantidad)
                .values(stock_disponible=Producto.stock_disponible - cantidad)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise InsufficientStockError(
                    "Stock insuficiente",
                    f"Producto {producto_id} no tiene suficiente stock",
                )

            lineas.append(
                ReservaProducto(
                    producto_id=producto_id,
                    producto_nombre=producto.nombre,
                    cantidad=cantidad,
                    precio_unitario=producto.precio,
                )
            )

        ahora = utcnow()
        reserva = Reserva(
            id_compra=data.id_compra,
            usuario_id=data.usuario_id,
            estado=EstadoReserva.PENDIENTE,
            expires_at=ahora + timedelta(minutes=ttl_minutes),
            created_at=ahora,
            updated_at=ahora,
            productos=lineas,
        )
        db.add(reserva)
        await db.commit()
    except IntegrityError:
        # Lost a race on the unique idCompra
        await db.rollback()
        raise ConflictError("Ya existe una reserva para esta compra", f"idCompra '{data.id_compra}'")
    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"Reserva {reserva.id} created for compra {reserva.id_compra}: "
        f"{sum(cantidades.values())} units across {len(cantidades)} products"
    )
    await _publicar("StockReservado", "stock.reservado", reserva)
    return to_reserva_completa(reserva)


async def liberar_stock(db: AsyncSession, data: schemas.LiberacionInput) -> schemas.LiberacionOutput:
    try:
        reserva = await get_reserva_model(db, data.id_reserva)
        if reserva.usuario_id != data.usuario_id:
            raise ForbiddenError("Usuario no autorizado para liberar esta reserva")
        await _liberar(db, reserva, data.motivo)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Reserva {reserva.id} released: {data.motivo}")
    await _publicar("StockLiberado", "stock.liberado", reserva, motivo=data.motivo)
    return schemas.LiberacionOutput(mensaje="Stock liberado correctamente.", id_reserva=reserva.id)


async def listar_reservas(
    db: AsyncSession,
    usuario_id: int,
    page: int = 1,
    limit: int = 20,
    estado: Optional[EstadoReserva] = None,
) -> List[schemas.ReservaCompleta]:
    page, limit = clamp_pagination(page, limit)
    query = select(Reserva).where(Reserva.usuario_id == usuario_id)
    if estado:
        query = query.where(Reserva.estado == estado)
    query = query.order_by(Reserva.created_at.desc(), Reserva.id.desc()).offset((page - 1) * limit).limit(limit)
    result = await db.execute(query)
    return [to_reserva_completa(reserva) for reserva in result.scalars().all()]


async def obtener_reserva(db: AsyncSession, reserva_id: int, usuario_id: int) -> schemas.ReservaCompleta:
    return to_reserva_completa(await _reserva_de_usuario(db, reserva_id, usuario_id))


async def actualizar_reserva(
    db: AsyncSession, reserva_id: int, data: schemas.ActualizarReservaInput
) -> schemas.ReservaCompleta:
    try:
        reserva = await _reserva_de_usuario(db, reserva_id, data.usuario_id)
        actual = reserva.estado
        if data.estado == actual:
            return to_reserva_completa(reserva)
        if actual == EstadoReserva.CANCELADO:
            raise ConflictError("No se puede modificar una reserva cancelada", f"Reserva {reserva_id}")

        if data.estado == EstadoReserva.CANCELADO:
            await _liberar(db, reserva, MOTIVO_CANCELADA, desde=(actual,))
        elif data.estado == EstadoReserva.PENDIENTE:
            # Back on hold: the expiry window starts over
            expires_at = utcnow() + timedelta(minutes=RESERVATION_TTL_MINUTES)
            await _cambiar_estado(db, reserva, data.estado, desde=(actual,), expires_at=expires_at)
        else:
            await _cambiar_estado(db, reserva, data.estado, desde=(actual,))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Reserva {reserva_id} moved {actual.value} -> {data.estado.value}")
    if data.estado == EstadoReserva.CANCELADO:
        await _publicar("StockLiberado", "stock.liberado", reserva, motivo=MOTIVO_CANCELADA)
    return to_reserva_completa(reserva)


async def cancelar_reserva(
    db: AsyncSession, reserva_id: int, usuario_id: int, motivo: Optional[str] = None
) -> None:
    motivo = motivo or MOTIVO_CANCELADA
    try:
        reserva = await _reserva_de_usuario(db, reserva_id, usuario_id)
        await _liberar(db, reserva, motivo)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Reserva {reserva_id} cancelled: {motivo}")
    await _publicar("StockLiberado", "stock.liberado", reserva, motivo=motivo)


async def liberar_reservas_expiradas(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Release every pending reservation whose hold has run out."""
    now = now or utcnow()
    result = await db.execute(
        select(Reserva)
        .where(Reserva.estado == EstadoReserva.PENDIENTE, Reserva.expires_at < now)
        .order_by(Reserva.id)
    )
    expiradas = result.scalars().all()
    if not expiradas:
        return 0

    liberadas = []
    try:
        for reserva in expiradas:
            try:
                await _liberar(db, reserva, MOTIVO_EXPIRADA, desde=(EstadoReserva.PENDIENTE,))
            except ConflictError:
                logger.debug(f"Reserva {reserva.id} changed state before expiring; skipped")
                continue
            liberadas.append(reserva)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    for reserva in liberadas:
        logger.info(f"Reserva {reserva.id} expired, stock released")
        await _publicar("StockExpirado", "stock.expirado", reserva, motivo=MOTIVO_EXPIRADA)
    return len(liberadas)


async def confirmar_por_compra(db: AsyncSession, id_compra: str) -> Optional[Reserva]:
    """Confirm the pending reservation of a purchase. Unknown or final reservations are ignored."""
    reserva = await get_reserva_por_compra(db, id_compra)
    if not reserva or reserva.estado != EstadoReserva.PENDIENTE:
        return None
    try:
        await _cambiar_estado(db, reserva, EstadoReserva.CONFIRMADO, desde=(EstadoReserva.PENDIENTE,))
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info(f"Reserva {reserva.id} confirmed by compra {id_compra}")
    return reserva


async def liberar_por_compra(db: AsyncSession, id_compra: str, motivo: str) -> Optional[Reserva]:
    """Release the reservation of a cancelled purchase. Unknown or cancelled reservations are ignored."""
    reserva = await get_reserva_por_compra(db, id_compra)
    if not reserva or reserva.estado == EstadoReserva.CANCELADO:
        return None
    try:
        await _liberar(db, reserva, motivo)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info(f"Reserva {reserva.id} released by compra {id_compra}: {motivo}")
    await _publicar("StockLiberado", "stock.liberado", reserva, motivo=motivo)
    return reserva
