import pytest

from tests.conftest import create_categoria, create_producto, reservar, stock_de

UBICACION = {
    "street": "Av. Corrientes 1234",
    "city": "Buenos Aires",
    "state": "CABA",
    "postal_code": "C1043AAZ",
    "country": "AR",
}


@pytest.mark.asyncio
async def test_create_and_get_producto(client):
    categoria_id = await create_categoria(client, "Electrónicos")

    response = await client.post(
        "/api/productos",
        json={
            "nombre": "Laptop Gaming RGB",
            "descripcion": "Laptop con iluminación RGB",
            "precio": 1299.99,
            "stockInicial": 15,
            "pesoKg": 2.5,
            "dimensiones": {"largoCm": 35, "anchoCm": 25, "altoCm": 3},
            "ubicacion": UBICACION,
            "imagenes": [
                {"url": "https://example.com/laptop1.jpg", "esPrincipal": True},
                {"url": "https://example.com/laptop2.jpg"},
            ],
            "categoriaIds": [categoria_id],
        },
    )
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["mensaje"] == "Producto creado correctamente"

    response = await client.get(f"/api/productos/{body['id']}")
    assert response.status_code == 200
    producto = response.json()
    assert producto["nombre"] == "Laptop Gaming RGB"
    assert producto["stockDisponible"] == 15
    assert producto["stockReservado"] == 0
    assert producto["pesoKg"] == 2.5
    assert producto["dimensiones"]["largoCm"] == 35
    assert producto["ubicacion"]["postal_code"] == "C1043AAZ"
    assert producto["imagenes"][0]["esPrincipal"] is True
    assert producto["imagenes"][1]["esPrincipal"] is False
    assert [c["nombre"] for c in producto["categorias"]] == ["Electrónicos"]


@pytest.mark.asyncio
async def test_get_unknown_producto_returns_not_found(client):
    response = await client.get("/api/productos/999")
    assert response.status_code == 404
    assert response.json() == {"code": "NOT_FOUND", "message": "Producto no encontrado", "details": None}


@pytest.mark.asyncio
async def test_create_producto_rejects_two_main_images(client):
    response = await client.post(
        "/api/productos",
        json={
            "nombre": "Mouse",
            "precio": 10,
            "stockInicial": 1,
            "imagenes": [
                {"url": "https://example.com/a.jpg", "esPrincipal": True},
                {"url": "https://example.com/b.jpg", "esPrincipal": True},
            ],
        },
    )
    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "INVALID_DATA"
    assert "Solo una imagen puede ser la principal" in body["details"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"precio": 10, "stockInicial": 1},
        {"nombre": "Mouse", "precio": -1, "stockInicial": 1},
        {"nombre": "Mouse", "precio": 10, "stockInicial": -5},
        {"nombre": "Mouse", "precio": 10, "stockInicial": 1, "ubicacion": {**UBICACION, "postal_code": "1043"}},
        {"nombre": "Mouse", "precio": 10, "stockInicial": 1, "ubicacion": {**UBICACION, "country": "Argentina"}},
    ],
)
async def test_create_producto_invalid_payload(client, payload):
    response = await client.post("/api/productos", json=payload)
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_DATA"


@pytest.mark.asyncio
async def test_create_producto_with_unknown_categoria(client):
    response = await client.post(
        "/api/productos",
        json={"nombre": "Mouse", "precio": 10, "stockInicial": 1, "categoriaIds": [42]},
    )
    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "INVALID_DATA"
    assert body["details"] == "Categorías inexistentes: 42"


@pytest.mark.asyncio
async def test_list_productos_pagination_and_filters(client):
    libros = await create_categoria(client, "Libros")
    await create_producto(client, nombre="El Principito", precio=15.99, stock=200, categoriaIds=[libros])
    await create_producto(client, nombre="Rayuela", precio=20.5, stock=50, categoriaIds=[libros])
    await create_producto(client, nombre="Zapatillas Running", precio=89.99, stock=60)

    response = await client.get("/api/productos", params={"page": 1, "limit": 2})
    assert response.status_code == 200
    body = response.json()
    assert [p["nombre"] for p in body["data"]] == ["El Principito", "Rayuela"]
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}

    response = await client.get("/api/productos", params={"page": 2, "limit": 2})
    assert [p["nombre"] for p in response.json()["data"]] == ["Zapatillas Running"]

    response = await client.get("/api/productos", params={"q": "principito"})
    assert [p["nombre"] for p in response.json()["data"]] == ["El Principito"]

    response = await client.get("/api/productos", params={"categoriaId": libros})
    body = response.json()
    assert body["pagination"]["total"] == 2
    assert {p["nombre"] for p in body["data"]} == {"El Principito", "Rayuela"}


@pytest.mark.asyncio
async def test_list_productos_clamps_limit(client):
    await create_producto(client)

    response = await client.get("/api/productos", params={"page": 0, "limit": 500})
    assert response.status_code == 200
    pagination = response.json()["pagination"]
    assert pagination["page"] == 1
    assert pagination["limit"] == 100


@pytest.mark.asyncio
async def test_update_producto(client):
    producto_id = await create_producto(client, stock=10)
    categoria_id = await create_categoria(client, "Oficina")

    response = await client.patch(
        f"/api/productos/{producto_id}",
        json={"precio": 999.0, "stockInicial": 3, "categoriaIds": [categoria_id]},
    )
    assert response.status_code == 200, response.text
    producto = response.json()
    assert producto["precio"] == 999.0
    assert producto["stockDisponible"] == 3
    assert producto["nombre"] == "Laptop Gaming RGB"
    assert [c["id"] for c in producto["categorias"]] == [categoria_id]


@pytest.mark.asyncio
async def test_update_unknown_producto(client):
    response = await client.patch("/api/productos/999", json={"precio": 1})
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_delete_producto(client):
    producto_id = await create_producto(client)

    response = await client.delete(f"/api/productos/{producto_id}")
    assert response.status_code == 204

    response = await client.get(f"/api/productos/{producto_id}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_producto_with_active_reservation(client):
    producto_id = await create_producto(client, stock=5)
    response = await reservar(client, productos=[{"idProducto": producto_id, "cantidad": 2}])
    assert response.status_code == 201

    response = await client.delete(f"/api/productos/{producto_id}")
    assert response.status_code == 409
    assert response.json()["code"] == "CONFLICT"
    assert await stock_de(client, producto_id) == 3


@pytest.mark.asyncio
async def test_deleted_producto_keeps_reservation_history(client):
    producto_id = await create_producto(client, nombre="Mouse", precio=25.0, stock=5)
    response = await reservar(client, productos=[{"idProducto": producto_id, "cantidad": 1}])
    id_reserva = response.json()["idReserva"]

    response = await client.post(
        "/api/stock/liberar",
        json={"idReserva": id_reserva, "usuarioId": 7, "motivo": "Cambio de opinión"},
    )
    assert response.status_code == 200

    response = await client.delete(f"/api/productos/{producto_id}")
    assert response.status_code == 204

    response = await client.get(f"/api/reservas/{id_reserva}", params={"usuarioId": 7})
    assert response.status_code == 200
    linea = response.json()["productos"][0]
    assert linea["idProducto"] is None
    assert linea["nombre"] == "Mouse"
    assert linea["precioUnitario"] == 25.0


@pytest.mark.asyncio
async def test_productos_require_token(client):
    response = await client.get("/api/productos", headers={"Authorization": ""})
    assert response.status_code == 401
    body = response.json()
    assert body["code"] == "UNAUTHORIZED"
    assert body["message"] == "Authorization token required"


@pytest.mark.asyncio
async def test_productos_reject_invalid_token(client):
    response = await client.get("/api/productos", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or expired token"


@pytest.mark.asyncio
async def test_write_requires_write_scope(client, keycloak):
    keycloak.scope = "productos:read"

    response = await client.get("/api/productos")
    assert response.status_code == 200

    response = await client.post("/api/productos", json={"nombre": "Mouse", "precio": 10, "stockInicial": 1})
    assert response.status_code == 403
    body = response.json()
    assert body["code"] == "FORBIDDEN"
    assert body["details"] == "Required scopes: productos:write"


@pytest.mark.asyncio
@pytest.mark.parametrize("producto_id", [2**31, 2**63, -(2**63) - 1])
async def test_out_of_range_producto_id(client, producto_id):
    for method in ("GET", "PATCH", "DELETE"):
        response = await client.request(method, f"/api/productos/{producto_id}", json={"precio": 1})
        assert response.status_code == 400, f"{method}: {response.text}"
        assert response.json()["code"] == "INVALID_DATA"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"nombre": "Mouse", "precio": 10, "stockInicial": 3000000000},
        {"nombre": "Mouse", "precio": 10, "stockInicial": 2**63},
        {"nombre": "Mouse", "precio": 10, "stockInicial": 1, "categoriaIds": [2**63]},
    ],
)
async def test_out_of_range_producto_fields(client, payload):
    response = await client.post("/api/productos", json=payload)
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_DATA"

    producto_id = await create_producto(client)
    response = await client.patch(f"/api/productos/{producto_id}", json={"stockInicial": 2**63})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_largest_stock_is_accepted(client):
    producto_id = await create_producto(client, stock=2**31 - 1)
    assert await stock_de(client, producto_id) == 2**31 - 1


@pytest.mark.asyncio
async def test_out_of_range_list_filters(client):
    response = await client.get("/api/productos", params={"categoriaId": 2**63})
    assert response.status_code == 400

    response = await client.get("/api/productos", params={"page": 2**63})
    assert response.status_code == 400
