"""
Almacenes clave-valor usados por los módulos de caja y PIX

- KeyValueStore: interfaz mínima get/set/delete
- InMemoryKeyValueStore: implementación en memoria (tests y scripts)
- SQLAlchemyKeyValueStore: implementación sobre la tabla key_value_records
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional
import logging

from sqlalchemy.orm import Session

from app.modules.storage.models import KeyValueRecord

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Interfaz del almacén clave-valor"""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Retorna el valor guardado o None si la clave no existe"""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Guarda (o reemplaza) el valor de la clave"""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Elimina la clave; no falla si no existe"""


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class SQLAlchemyKeyValueStore(KeyValueStore):
    """Almacén persistido en base de datos. Cada escritura hace commit."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, key: str) -> Optional[str]:
        record = self.db.query(KeyValueRecord).filter(KeyValueRecord.key == key).first()
        return record.value if record else None

    def set(self, key: str, value: str) -> None:
        try:
            record = self.db.query(KeyValueRecord).filter(KeyValueRecord.key == key).first()
            if record:
                record.value = value
            else:
                self.db.add(KeyValueRecord(key=key, value=value))
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception(f"No se pudo guardar la clave '{key}'")
            raise

    def delete(self, key: str) -> None:
        try:
            self.db.query(KeyValueRecord).filter(KeyValueRecord.key == key).delete()
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception(f"No se pudo eliminar la clave '{key}'")
            raise
