"""
Modelos SQLAlchemy para el módulo PIX

- PixCharge: cobro generado con QR estático (payload BR Code con valor fijo)
"""

from app.database.database import Base
from sqlalchemy import Column, String, DateTime, Numeric, Enum, Text, Uuid
from uuid import uuid4
from app.common.mixins import TimestampMixin
from app.modules.pix.schemas import PixChargeStatus


class PixCharge(Base, TimestampMixin):
    """
    Cobros PIX

    El payload se guarda tal cual se entregó al cliente para poder
    re-mostrar el mismo QR sin recalcularlo.
    """
    __tablename__ = "pix_charges"

    id = Column(Uuid, primary_key=True, default=uuid4)
    txid = Column(String(35), nullable=False, unique=True, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    pix_key = Column(String(99), nullable=False)
    description = Column(String(99), nullable=False)
    status = Column(Enum(PixChargeStatus), nullable=False, default=PixChargeStatus.ACTIVE, index=True)
    payload = Column(Text, nullable=False)

    # Datos del cliente
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(200), nullable=True)
    customer_phone = Column(String(30), nullable=True)
    customer_company = Column(String(200), nullable=True)

    expires_at = Column(DateTime(timezone=True), nullable=False)
