import asyncio

from loguru import logger

from inventario_api.config import EXPIRATION_SWEEP_SECONDS
from inventario_api.database import get_session
from inventario_api.reservas import liberar_reservas_expiradas


async def sweep_once() -> int:
    released = 0
    async for session in get_session():
        released = await liberar_reservas_expiradas(session)
    return released


async def start_expiration_worker(interval: int = EXPIRATION_SWEEP_SECONDS):
    logger.info(f"Expiration worker running every {interval}s")
    while True:
        try:
            released = await sweep_once()
            if released:
                logger.info(f"Released {released} expired reservations")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Keep sweeping; the next pass retries the same reservations
            logger.exception(f"Error releasing expired reservations: {e}")
        await asyncio.sleep(interval)
