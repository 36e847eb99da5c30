from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from inventario_api import reservas
from inventario_api.auth import RequireAuth
from inventario_api.database import get_session
from inventario_api.schemas import LiberacionInput, LiberacionOutput, ReservaCompleta, ReservaInput

router = APIRouter(prefix="/api/stock", tags=["stock"], dependencies=[Depends(RequireAuth())])


@router.post("/reservar", response_model=ReservaCompleta, status_code=201)
async def reservar(data: ReservaInput, db: AsyncSession = Depends(get_session)):
    return await reservas.reservar_stock(db, data)


@router.post("/liberar", response_model=LiberacionOutput)
async def liberar(data: LiberacionInput, db: AsyncSession = Depends(get_session)):
    return await reservas.liberar_stock(db, data)
