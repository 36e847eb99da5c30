import json
from uuid import uuid4

import aio_pika
from loguru import logger
from tenacity import retry, stop_after_attempt, wait_exponential

from inventario_api.config import EVENTS_ENABLED, RABBITMQ_URL
from inventario_api.database import utcnow

STOCK_EXCHANGE = "stock_exchange"

connection = None
channel = None


@retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=2, max=10), reraise=True)
async def connect_broker():
    return await aio_pika.connect_robust(RABBITMQ_URL)


async def setup_rabbitmq():
    global connection, channel
    if not EVENTS_ENABLED:
        logger.info("Event publishing disabled.")
        return
    try:
        connection = await connect_broker()
        channel = await connection.channel()
        await channel.declare_exchange(STOCK_EXCHANGE, aio_pika.ExchangeType.TOPIC, durable=True)
        logger.info("RabbitMQ setup complete.")
    except Exception as e:
        # Events are dropped until the next restart
        logger.error(f"Error setting up RabbitMQ: {e}")
        connection = None
        channel = None


async def close_rabbitmq():
    global connection, channel
    if connection is not None:
        await connection.close()
    connection = None
    channel = None


def build_event(event_type: str, **payload) -> dict:
    return {
        "event_id": str(uuid4()),
        "event_type": event_type,
        "timestamp": utcnow().isoformat(),
        **payload,
    }


async def publish_event(exchange_name: str, routing_key: str, message_data: dict):
    if not channel:
        logger.debug(f"RabbitMQ channel not available. Skipping {message_data['event_type']}.")
        return

    message_body = json.dumps(message_data, default=str).encode("utf-8")
    message = aio_pika.Message(
        message_body,
        content_type="application/json",
        delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
    )

    try:
        exchange = await channel.get_exchange(exchange_name)
        await exchange.publish(message, routing_key=routing_key)
        logger.info(f"Published event to {routing_key}: {message_data['event_type']}")
    except Exception as e:
        # Stock changes are already committed at this point
        logger.error(f"Error publishing event {message_data['event_type']}: {e}")
