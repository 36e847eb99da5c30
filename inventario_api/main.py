import asyncio

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from inventario_api.config import APP_HOST, APP_PORT, CORS_ORIGINS, EVENTS_ENABLED, EXPIRATION_SWEEP_SECONDS
from inventario_api.consumer import start_consumer
from inventario_api.database import init_db
from inventario_api.exceptions import register_exception_handlers
from inventario_api.expiration import start_expiration_worker
from inventario_api.logging_config import setup_logging
from inventario_api.messaging import close_rabbitmq, setup_rabbitmq
from inventario_api.routers import categorias, ping, productos, reservas, stock

setup_logging()

app = FastAPI(title="Inventario API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)
register_exception_handlers(app)

app.include_router(ping.router)
app.include_router(productos.router)
app.include_router(categorias.router)
app.include_router(reservas.router)
app.include_router(stock.router)

background_tasks = []


def _report_failure(task: asyncio.Task):
    if not task.cancelled() and task.exception() is not None:
        logger.error(f"Background task {task.get_name()} stopped: {task.exception()}")


def _spawn(coro, name: str):
    task = asyncio.create_task(coro, name=name)
    task.add_done_callback(_report_failure)
    background_tasks.append(task)


@app.on_event("startup")
async def startup_event():
    await init_db()
    await setup_rabbitmq()
    if EVENTS_ENABLED:
        _spawn(start_consumer(), "inventario-consumer")
    if EXPIRATION_SWEEP_SECONDS > 0:
        _spawn(start_expiration_worker(EXPIRATION_SWEEP_SECONDS), "expiration-worker")
    logger.info("Inventario API started.")


@app.on_event("shutdown")
async def shutdown_event():
    for task in background_tasks:
        task.cancel()
    await asyncio.gather(*background_tasks, return_exceptions=True)
    background_tasks.clear()
    await close_rabbitmq()
    logger.info("Inventario API stopped.")


if __name__ == "__main__":
    uvicorn.run(app, host=APP_HOST, port=APP_PORT, log_config=None)
