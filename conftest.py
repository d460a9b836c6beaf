"""
Fixtures compartidas para los tests de los módulos

La base de datos es SQLite en memoria; las variables de entorno se fijan
antes de importar la aplicación porque Settings se lee al importar.
"""

import os

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DEBUG"] = "false"

import pytest
from fastapi.testclient import TestClient

from app.database.database import Base, SessionLocal, sync_engine
from app.main import app as fastapi_app
from app.modules.storage.service import InMemoryKeyValueStore


@pytest.fixture
def db_session():
    """Sesión sobre tablas recién creadas; se eliminan al terminar"""
    Base.metadata.create_all(bind=sync_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture
def client(db_session):
    """Cliente HTTP de la API"""
    with TestClient(fastapi_app) as test_client:
        yield test_client


@pytest.fixture
def memory_store():
    return InMemoryKeyValueStore()
