"""
Router FastAPI para el módulo PIX

Endpoints:
- Cobros PIX (crear, consultar, listar)
- Payloads BR Code (estático y ad-hoc)
- Configuración del comercio
- Validación de llaves PIX
"""

from fastapi import APIRouter, Query, Path, status

from app.dependencies.dbDependecies import db_dependency
from app.modules.pix.payload import CRC_LENGTH
from app.modules.pix.service import PixService
from app.modules.pix.schemas import (
    MerchantConfig, MerchantConfigUpdate,
    PixChargeCreate, PixChargeOut, PixChargeList,
    PixPayloadRequest, PixPayloadOut,
    PixKeyValidationRequest, PixKeyValidationOut
)


router = APIRouter(prefix="/pix", tags=["PIX"])


@router.post("/charges", response_model=PixChargeOut, status_code=status.HTTP_201_CREATED)
async def create_charge(charge_data: PixChargeCreate, db: db_dependency):
    """
    Crear cobro PIX con valor fijo.

    - **amount**: valor del cobro (máximo dos decimales)
    - **customer**: datos del cliente
    - **description**: descripción guardada con el cobro (opcional)

    Retorna el payload BR Code; la imagen del QR se genera en el cliente.
    """
    return PixService(db).create_charge(charge_data)


@router.get("/charges", response_model=PixChargeList)
async def list_charges(
    db: db_dependency,
    limit: int = Query(20, ge=1, le=100, description="Cantidad de resultados"),
    offset: int = Query(0, ge=0, description="Desplazamiento")
):
    charges, total = PixService(db).list_charges(limit=limit, offset=offset)
    return PixChargeList(charges=charges, total=total, limit=limit, offset=offset)


@router.get("/charges/{txid}", response_model=PixChargeOut)
async def get_charge(db: db_dependency, txid: str = Path(..., description="Identificador del cobro")):
    return PixService(db).get_charge(txid)


@router.get("/payload", response_model=PixPayloadOut)
async def get_static_payload(db: db_dependency):
    """Payload sin valor fijo para el QR impreso en el mostrador"""
    payload = PixService(db).static_payload()
    return PixPayloadOut(payload=payload, crc=payload[-CRC_LENGTH:])


@router.post("/payload", response_model=PixPayloadOut)
async def build_payload(payload_data: PixPayloadRequest, db: db_dependency):
    """
    Generar payload con valor y referencia arbitrarios.

    - 422 si la referencia excede 25 caracteres o el valor es inválido
    """
    payload = PixService(db).build_payload(amount=payload_data.amount, reference=payload_data.reference)
    return PixPayloadOut(payload=payload, crc=payload[-CRC_LENGTH:], amount=payload_data.amount)


@router.get("/config", response_model=MerchantConfig)
async def get_config(db: db_dependency):
    return PixService(db).get_config()


@router.patch("/config", response_model=MerchantConfig)
async def update_config(config_data: MerchantConfigUpdate, db: db_dependency):
    return PixService(db).update_config(config_data)


@router.post("/validate-key", response_model=PixKeyValidationOut)
async def validate_key(data: PixKeyValidationRequest, db: db_dependency):
    valid = PixService(db).validate_key(data.key, data.key_type)
    return PixKeyValidationOut(key=data.key, key_type=data.key_type, valid=valid)
