"""
Modelo SQLAlchemy para el almacén clave-valor

Cada registro guarda un documento JSON serializado bajo una clave única
(ej. 'cashFlowData', 'company_config').
"""

from app.database.database import Base
from sqlalchemy import Column, String, Text
from app.common.mixins import TimestampMixin


class KeyValueRecord(Base, TimestampMixin):
    """Registro persistido del almacén clave-valor"""
    __tablename__ = "key_value_records"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
