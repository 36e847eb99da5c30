from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from inventario_api import reservas
from inventario_api.auth import RequireAuth
from inventario_api.database import get_session
from inventario_api.routers.params import PathId
from inventario_api.exceptions import InvalidDataError
from inventario_api.models import EstadoReserva
from inventario_api.schemas import MAX_INT, MIN_INT, ActualizarReservaInput, ReservaCompleta, ReservaInput

router = APIRouter(prefix="/api/reservas", tags=["reservas"], dependencies=[Depends(RequireAuth())])


def _require_usuario(usuario_id: Optional[int]) -> int:
    if not usuario_id:
        raise InvalidDataError("usuarioId es requerido")
    return usuario_id


@router.get("", response_model=List[ReservaCompleta])
async def listar_reservas(
    usuario_id: Optional[int] = Query(None, alias="usuarioId", ge=MIN_INT, le=MAX_INT),
    page: int = Query(1, le=MAX_INT),
    limit: int = Query(20, le=MAX_INT),
    estado: Optional[EstadoReserva] = None,
    db: AsyncSession = Depends(get_session),
):
    return await reservas.listar_reservas(db, _require_usuario(usuario_id), page=page, limit=limit, estado=estado)


@router.post("", response_model=ReservaCompleta, status_code=201)
async def crear_reserva(data: ReservaInput, db: AsyncSession = Depends(get_session)):
    return await reservas.reservar_stock(db, data)


@router.get("/{id_reserva}", response_model=ReservaCompleta)
async def obtener_reserva(
    id_reserva: PathId,
    usuario_id: Optional[int] = Query(None, alias="usuarioId", ge=MIN_INT, le=MAX_INT),
    db: AsyncSession = Depends(get_session),
):
    return await reservas.obtener_reserva(db, id_reserva, _require_usuario(usuario_id))


@router.patch("/{id_reserva}", response_model=ReservaCompleta)
async def actualizar_reserva(
    id_reserva: PathId, data: ActualizarReservaInput, db: AsyncSession = Depends(get_session)
):
    return await reservas.actualizar_reserva(db, id_reserva, data)


@router.delete("/{id_reserva}", status_code=204)
async def cancelar_reserva(
    id_reserva: PathId,
    usuario_id: Optional[int] = Query(None, alias="usuarioId", ge=MIN_INT, le=MAX_INT),
    motivo: Optional[str] = None,
    db: AsyncSession = Depends(get_session),
):
    await reservas.cancelar_reserva(db, id_reserva, _require_usuario(usuario_id), motivo)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
