from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer, field_validator
from pydantic.alias_generators import to_camel

from inventario_api.models import EstadoReserva

# Integer columns are int4 on Postgres
MIN_INT = -(2**31)
MAX_INT = 2**31 - 1

DbInt = Annotated[int, Field(ge=MIN_INT, le=MAX_INT)]


def _iso_utc(value: datetime) -> str:
    value = value.astimezone(timezone.utc) if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# Stored as naive UTC, emitted as e.g. "2026-10-19T16:39:00.000Z"
UtcDatetime = Annotated[datetime, PlainSerializer(_iso_utc, return_type=str, when_used="json")]


class CamelModel(BaseModel):
    """Snake case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: Optional[str] = None


# --- Categorias ---

class Categoria(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    nombre: str
    descripcion: Optional[str] = None


class CategoriaInput(CamelModel):
    nombre: str = Field(..., examples=["Electrónicos"])
    descripcion: Optional[str] = None

    @field_validator("nombre")
    @classmethod
    def nombre_valido(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("nombre es requerido")
        if len(v) > 100:
            raise ValueError("nombre debe tener hasta 100 caracteres")
        return v


class CategoriaUpdate(CamelModel):
    nombre: Optional[str] = None
    descripcion: Optional[str] = None

    @field_validator("nombre")
    @classmethod
    def nombre_no_vacio(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("nombre no puede ser vacío")
        if len(v) > 100:
            raise ValueError("nombre debe tener hasta 100 caracteres")
        return v


# --- Productos ---

class Dimensiones(CamelModel):
    largo_cm: Optional[float] = Field(None, ge=0)
    ancho_cm: Optional[float] = Field(None, ge=0)
    alto_cm: Optional[float] = Field(None, ge=0)


class UbicacionAlmacen(BaseModel):
    street: str
    city: str
    state: str
    # Argentine CPA, e.g. "H3500ABC"
    postal_code: str = Field(..., pattern=r"^[A-Z]\d{4}[A-Z]{3}$", examples=["H3500ABC"])
    # ISO 3166-1 alpha-2
    country: str = Field(..., pattern=r"^[A-Z]{2}$", examples=["AR"])


class ImagenProducto(CamelModel):
    url: str
    es_principal: bool = False


def _una_sola_principal(imagenes: List[ImagenProducto]) -> List[ImagenProducto]:
    if sum(1 for imagen in imagenes if imagen.es_principal) > 1:
        raise ValueError("Solo una imagen puede ser la principal")
    return imagenes


ListaImagenes = Annotated[List[ImagenProducto], AfterValidator(_una_sola_principal)]


class ProductoInput(CamelModel):
    nombre: str = Field(..., min_length=1, max_length=255, examples=["Laptop Gaming RGB"])
    descripcion: Optional[str] = None
    precio: float = Field(..., ge=0, examples=[1299.99])
    stock_inicial: int = Field(..., ge=0, le=MAX_INT, examples=[15])
    peso_kg: Optional[float] = Field(None, ge=0)
    dimensiones: Optional[Dimensiones] = None
    ubicacion: Optional[UbicacionAlmacen] = None
    imagenes: Optional[ListaImagenes] = None
    categoria_ids: Optional[List[DbInt]] = None


class ProductoUpdate(CamelModel):
    nombre: Optional[str] = Field(None, min_length=1, max_length=255)
    descripcion: Optional[str] = None
    precio: Optional[float] = Field(None, ge=0)
    # Replaces stockDisponible
    stock_inicial: Optional[int] = Field(None, ge=0, le=MAX_INT)
    peso_kg: Optional[float] = Field(None, ge=0)
    dimensiones: Optional[Dimensiones] = None
    ubicacion: Optional[UbicacionAlmacen] = None
    imagenes: Optional[ListaImagenes] = None
    categoria_ids: Optional[List[DbInt]] = None


class Producto(CamelModel):
    id: int
    nombre: str
    descripcion: Optional[str] = None
    precio: float
    stock_disponible: int
    stock_reservado: int = 0
    peso_kg: Optional[float] = None
    dimensiones: Optional[Dimensiones] = None
    ubicacion: Optional[UbicacionAlmacen] = None
    imagenes: Optional[List[ImagenProducto]] = None
    categorias: List[Categoria] = []


class ProductoCreado(BaseModel):
    id: int
    mensaje: str


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class ProductoList(BaseModel):
    data: List[Producto]
    pagination: Pagination


# --- Reservas / stock ---

class ReservaInputItem(CamelModel):
    id_producto: DbInt = Field(..., examples=[1])
    cantidad: int = Field(..., ge=1, le=MAX_INT, examples=[2])


class ReservaInput(CamelModel):
    id_compra: str = Field(..., min_length=1, max_length=100, examples=["compra-123"])
    usuario_id: DbInt = Field(..., examples=[42])
    productos: List[ReservaInputItem] = Field(..., min_length=1)


class ReservaProductoDetalle(CamelModel):
    id_producto: Optional[int] = None
    nombre: str
    cantidad: int
    precio_unitario: float


class ReservaCompleta(CamelModel):
    id_reserva: int
    id_compra: str
    usuario_id: int
    estado: EstadoReserva
    expires_at: UtcDatetime
    fecha_creacion: UtcDatetime
    fecha_actualizacion: Optional[UtcDatetime] = None
    motivo_cancelacion: Optional[str] = None
    productos: List[ReservaProductoDetalle] = []


class ActualizarReservaInput(CamelModel):
    usuario_id: DbInt
    estado: EstadoReserva


class LiberacionInput(CamelModel):
    id_reserva: DbInt
    usuario_id: DbInt
    motivo: str = Field(..., min_length=1)


class LiberacionOutput(CamelModel):
    mensaje: str
    id_reserva: int
    estado: Literal["liberado"] = "liberado"
