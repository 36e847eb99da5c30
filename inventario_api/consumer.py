"""Purchase events that settle or undo stock reservations."""

import asyncio
import json

import aio_pika
from loguru import logger

from inventario_api.database import get_session
from inventario_api.messaging import connect_broker
from inventario_api.reservas import confirmar_por_compra, liberar_por_compra

COMPRAS_EXCHANGE = "compras_exchange"
INVENTARIO_QUEUE = "inventario_q"


async def process_compra_confirmada(message: aio_pika.IncomingMessage):
    async with message.process():
        try:
            event_data = json.loads(message.body.decode())
            id_compra = event_data["id_compra"]
            logger.info(f"Inventario received CompraConfirmada for compra {id_compra}")

            async for session in get_session():
                reserva = await confirmar_por_compra(session, id_compra)
                if not reserva:
                    logger.info(f"No pending reservation for compra {id_compra}. Idempotent.")

        except Exception as e:
            logger.exception(f"Error processing CompraConfirmada: {e}")


async def process_compra_cancelada(message: aio_pika.IncomingMessage):
    """
    Compensating transaction: release the stock held for the purchase.
    """
    async with message.process():
        try:
            event_data = json.loads(message.body.decode())
            id_compra = event_data["id_compra"]
            motivo = event_data.get("motivo") or "Compra cancelada"
            logger.info(f"Inventario received CompraCancelada for compra {id_compra}")

            async for session in get_session():
                reserva = await liberar_por_compra(session, id_compra, motivo)
                if not reserva:
                    logger.info(f"No active reservation for compra {id_compra}. Idempotent.")

        except Exception as e:
            logger.exception(f"Error processing CompraCancelada: {e}")


async def start_consumer():
    connection = await connect_broker()
    async with connection:
        channel = await connection.channel()

        compras_exchange = await channel.declare_exchange(COMPRAS_EXCHANGE, aio_pika.ExchangeType.TOPIC, durable=True)

        queue = await channel.declare_queue(INVENTARIO_QUEUE, durable=True)
        await queue.bind(compras_exchange, "compra.confirmada")
        await queue.bind(compras_exchange, "compra.cancelada")

        logger.info("Inventario consumer is listening for purchase events...")

        async def on_message(message: aio_pika.IncomingMessage):
            if message.routing_key == "compra.confirmada":
                await process_compra_confirmada(message)
            elif message.routing_key == "compra.cancelada":
                await process_compra_cancelada(message)
            else:
                async with message.process():
                    logger.info(f"Ignored event with routing key: {message.routing_key}")

        await queue.consume(on_message, no_ack=False)

        # Keep the consumer task running
        await asyncio.Future()
