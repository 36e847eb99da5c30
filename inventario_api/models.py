import enum

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import relationship

from inventario_api.database import Base, utcnow


class EstadoReserva(str, enum.Enum):
    CONFIRMADO = "confirmado"
    PENDIENTE = "pendiente"
    CANCELADO = "cancelado"


# States that still hold stock
ESTADOS_ACTIVOS = (EstadoReserva.PENDIENTE, EstadoReserva.CONFIRMADO)


producto_categorias = Table(
    "producto_categorias",
    Base.metadata,
    Column("producto_id", Integer, ForeignKey("productos.id", ondelete="CASCADE"), primary_key=True),
    Column("categoria_id", Integer, ForeignKey("categorias.id", ondelete="CASCADE"), primary_key=True),
)


class Categoria(Base):
    __tablename__ = "categorias"

    id = Column(Integer, primary_key=True, index=True)
    nombre = Column(String(100), unique=True, nullable=False)
    descripcion = Column(Text, nullable=True)


class Producto(Base):
    __tablename__ = "productos"
    __table_args__ = (CheckConstraint("stock_disponible >= 0", name="ck_productos_stock_no_negativo"),)

    id = Column(Integer, primary_key=True, index=True)
    nombre = Column(String(255), nullable=False)
    descripcion = Column(Text, nullable=True)
    precio = Column(Float, nullable=False)
    stock_disponible = Column(Integer, nullable=False, default=0)
    peso_kg = Column(Float, nullable=True)
    dimensiones = Column(JSON, nullable=True)
    ubicacion = Column(JSON, nullable=True)
    imagenes = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    categorias = relationship("Categoria", secondary=producto_categorias, lazy="selectin", order_by="Categoria.id")


class Reserva(Base):
    __tablename__ = "reservas"

    id = Column(Integer, primary_key=True, index=True)
    id_compra = Column(String(100), unique=True, index=True, nullable=False)
    usuario_id = Column(Integer, index=True, nullable=False)
    estado = Column(
        Enum(EstadoReserva, name="estado_reserva", values_callable=lambda e: [m.value for m in e]),
        default=EstadoReserva.PENDIENTE,
        nullable=False,
    )
    expires_at = Column(DateTime, nullable=False)
    motivo_cancelacion = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    productos = relationship(
        "ReservaProducto",
        back_populates="reserva",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ReservaProducto.id",
    )


class ReservaProducto(Base):
    __tablename__ = "reserva_productos"

    id = Column(Integer, primary_key=True, index=True)
    reserva_id = Column(Integer, ForeignKey("reservas.id", ondelete="CASCADE"), nullable=False, index=True)
    # Nullable so the line item survives the product being deleted
    producto_id = Column(Integer, ForeignKey("productos.id", ondelete="SET NULL"), nullable=True, index=True)
    producto_nombre = Column(String(255), nullable=False)
    cantidad = Column(Integer, nullable=False)
    precio_unitario = Column(Float, nullable=False)

    reserva = relationship("Reserva", back_populates="productos")
