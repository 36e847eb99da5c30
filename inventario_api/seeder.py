import asyncio

from loguru import logger
from sqlalchemy import func, select

from inventario_api.database import get_session, init_db
from inventario_api.logging_config import setup_logging
from inventario_api.models import Categoria, Producto

CATEGORIAS = [
    ("Electrónicos", "Productos electrónicos y tecnológicos"),
    ("Ropa", "Vestimenta y accesorios"),
    ("Hogar", "Artículos para el hogar y decoración"),
    ("Deportes", "Equipamiento deportivo y fitness"),
    ("Libros", "Libros físicos y digitales"),
    ("Oficina", "Artículos de papelería y oficina"),
]

DEPOSITO_CENTRO = {
    "street": "Av. Corrientes 1234",
    "city": "Buenos Aires",
    "state": "CABA",
    "postal_code": "C1043AAZ",
    "country": "AR",
}
DEPOSITO_NORTE = {
    "street": "Av. Cabildo 9876",
    "city": "Buenos Aires",
    "state": "CABA",
    "postal_code": "C1426AAA",
    "country": "AR",
}

PRODUCTOS = [
    {
        "nombre": "Laptop Gaming RGB",
        "descripcion": "Laptop para gaming con iluminación RGB y procesador de alta gama",
        "precio": 1299.99,
        "stock": 15,
        "peso_kg": 2.5,
        "dimensiones": {"largoCm": 35, "anchoCm": 25, "altoCm": 3},
        "ubicacion": DEPOSITO_CENTRO,
        "imagen": "https://example.com/laptop1.jpg",
        "categorias": ["Electrónicos"],
    },
    {
        "nombre": "Zapatillas Running",
        "descripcion": "Zapatillas deportivas con tecnología de amortiguación",
        "precio": 89.99,
        "stock": 60,
        "peso_kg": 0.4,
        "dimensiones": {"largoCm": 30, "anchoCm": 20, "altoCm": 12},
        "ubicacion": DEPOSITO_NORTE,
        "imagen": "https://example.com/shoes1.jpg",
        "categorias": ["Ropa", "Deportes"],
    },
    {
        "nombre": "Silla Ergonómica",
        "descripcion": "Silla de oficina con soporte lumbar ajustable",
        "precio": 249.99,
        "stock": 30,
        "peso_kg": 15.0,
        "dimensiones": {"largoCm": 65, "anchoCm": 65, "altoCm": 120},
        "ubicacion": DEPOSITO_NORTE,
        "imagen": "https://example.com/chair1.jpg",
        "categorias": ["Hogar", "Oficina"],
    },
    {
        "nombre": "El Principito",
        "descripcion": "Clásico de la literatura universal",
        "precio": 15.99,
        "stock": 200,
        "peso_kg": 0.15,
        "dimensiones": {"largoCm": 20, "anchoCm": 13, "altoCm": 1},
        "ubicacion": DEPOSITO_CENTRO,
        "imagen": "https://example.com/book1.jpg",
        "categorias": ["Libros"],
    },
    {
        # Out of stock, for exercising INSUFFICIENT_STOCK
        "nombre": "Auriculares Bluetooth",
        "descripcion": "Auriculares inalámbricos con cancelación de ruido activa",
        "precio": 199.99,
        "stock": 0,
        "peso_kg": 0.25,
        "dimensiones": {"largoCm": 20, "anchoCm": 18, "altoCm": 8},
        "ubicacion": DEPOSITO_CENTRO,
        "imagen": "https://example.com/headphones1.jpg",
        "categorias": ["Electrónicos"],
    },
]


async def seed_inventario():
    await init_db()
    async for session in get_session():
        if (await session.execute(select(func.count(Producto.id)))).scalar_one():
            logger.info("Inventario already seeded.")
            return

        result = await session.execute(select(Categoria))
        categorias = {categoria.nombre: categoria for categoria in result.scalars().all()}
        for nombre, descripcion in CATEGORIAS:
            if nombre not in categorias:
                categorias[nombre] = Categoria(nombre=nombre, descripcion=descripcion)
                session.add(categorias[nombre])

        for item in PRODUCTOS:
            session.add(
                Producto(
                    nombre=item["nombre"],
                    descripcion=item["descripcion"],
                    precio=item["precio"],
                    stock_disponible=item["stock"],
                    peso_kg=item["peso_kg"],
                    dimensiones=item["dimensiones"],
                    ubicacion=item["ubicacion"],
                    imagenes=[{"url": item["imagen"], "esPrincipal": True}],
                    categorias=[categorias[nombre] for nombre in item["categorias"]],
                )
            )
        await session.commit()
        logger.info(f"Inventario seeded: {len(categorias)} categorias, {len(PRODUCTOS)} productos.")


if __name__ == "__main__":
    setup_logging()
    asyncio.run(seed_inventario())
