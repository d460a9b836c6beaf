from .models import KeyValueRecord
from .service import KeyValueStore, InMemoryKeyValueStore, SQLAlchemyKeyValueStore

__all__ = [
    "KeyValueRecord",
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "SQLAlchemyKeyValueStore",
]
