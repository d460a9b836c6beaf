"""
Servicios de negocio para el módulo PIX

- PixService: configuración del comercio, generación de payloads y cobros PIX

La configuración del comercio se arma con los valores de Settings y se
sobrescribe con lo guardado en el almacén clave-valor ('company_config').
"""

from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from pydantic import ValidationError
from decimal import Decimal
from typing import List, Optional, Tuple
from datetime import datetime, timedelta, timezone
from uuid import uuid4
import json
import logging

from app.core.config import settings
from app.common.validators import format_phone_key, validate_pix_key
from app.modules.pix.exceptions import PixEncodingError
from app.modules.pix.models import PixCharge
from app.modules.pix.payload import build_payment_request, encode_payload
from app.modules.pix.schemas import (
    MerchantConfig, MerchantConfigUpdate, PixChargeCreate, PixChargeStatus, PixKeyType
)
from app.modules.storage.service import KeyValueStore, SQLAlchemyKeyValueStore

logger = logging.getLogger(__name__)

COMPANY_CONFIG_KEY = "company_config"
TXID_LENGTH = 25


def default_merchant_config() -> MerchantConfig:
    """Configuración del comercio definida por variables de entorno"""
    return MerchantConfig(
        trade_name=settings.PIX_MERCHANT_NAME,
        legal_name=settings.PIX_MERCHANT_LEGAL_NAME,
        cnpj=settings.PIX_MERCHANT_CNPJ,
        city=settings.PIX_MERCHANT_CITY,
        pix_key=settings.PIX_KEY,
        pix_key_type=settings.PIX_KEY_TYPE,
    )


class PixService:
    """Servicio para cobros y payloads PIX"""

    def __init__(self, db: Session, store: Optional[KeyValueStore] = None):
        self.db = db
        self.store = store or SQLAlchemyKeyValueStore(db)

    # ===== CONFIGURACIÓN =====

    def get_config(self) -> MerchantConfig:
        """Obtener configuración del comercio vigente"""
        base = default_merchant_config()
        raw = self.store.get(COMPANY_CONFIG_KEY)
        if not raw:
            return base

        try:
            stored = json.loads(raw)
            return MerchantConfig.model_validate({**base.model_dump(), **stored})
        except (ValueError, ValidationError) as e:
            logger.warning(f"Configuración guardada inválida, se usan los valores por defecto: {e}")
            return base

    def update_config(self, config_data: MerchantConfigUpdate) -> MerchantConfig:
        """Actualizar (parcialmente) la configuración del comercio"""
        current = self.get_config()
        changes = config_data.model_dump(exclude_unset=True, exclude_none=True)

        try:
            updated = MerchantConfig.model_validate({**current.model_dump(), **changes})
        except ValidationError as e:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=[error["msg"] for error in e.errors()]
            )

        if updated.pix_key_type == PixKeyType.PHONE:
            updated = updated.model_copy(update={"pix_key": format_phone_key(updated.pix_key)})

        self.store.set(COMPANY_CONFIG_KEY, updated.model_dump_json())
        logger.info(f"Configuración del comercio actualizada: {sorted(changes)}")
        return updated

    def validate_key(self, key: str, key_type: str) -> bool:
        return validate_pix_key(key, key_type)

    # ===== PAYLOADS =====

    def build_payload(self, amount: Optional[Decimal] = None, reference: Optional[str] = None) -> str:
        """
        Generar payload BR Code con la configuración actual.

        Errores de codificación se reportan como 422 con el campo rechazado.
        """
        config = self.get_config()
        try:
            return encode_payload(build_payment_request(config, amount=amount, reference=reference))
        except PixEncodingError as e:
            logger.warning(f"Payload PIX rechazado ({e.field}): {e.message}")
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={"field": e.field, "message": e.message}
            )

    def static_payload(self) -> str:
        """Payload sin valor fijo (el pagador informa el valor)"""
        return self.build_payload()

    # ===== COBROS =====

    def create_charge(self, charge_data: PixChargeCreate) -> PixCharge:
        """
        Crear cobro PIX con QR estático.

        El txid (25 caracteres hexadecimales) es la referencia del payload;
        la descripción solo se guarda con el cobro.
        """
        config = self.get_config()
        description = charge_data.description or settings.PIX_DEFAULT_DESCRIPTION
        txid = uuid4().hex[:TXID_LENGTH]
        payload = self.build_payload(amount=charge_data.amount, reference=txid)

        created_at = datetime.now(timezone.utc)
        charge = PixCharge(
            txid=txid,
            amount=charge_data.amount,
            pix_key=config.pix_key,
            description=description,
            status=PixChargeStatus.ACTIVE,
            payload=payload,
            customer_name=charge_data.customer.name,
            customer_email=charge_data.customer.email,
            customer_phone=charge_data.customer.phone,
            customer_company=charge_data.customer.company,
            created_at=created_at,
            updated_at=created_at,
            expires_at=created_at + timedelta(hours=settings.PIX_CHARGE_TTL_HOURS),
        )

        try:
            self.db.add(charge)
            self.db.commit()
            self.db.refresh(charge)
        except IntegrityError:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Error de integridad al crear el cobro"
            )
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error interno del servidor: {str(e)}"
            )

        logger.info(f"Cobro PIX {charge.txid} creado por {charge.amount}")
        return charge

    def get_charge(self, txid: str) -> PixCharge:
        """Consultar cobro por txid"""
        charge = self.db.query(PixCharge).filter(PixCharge.txid == txid).first()
        if not charge:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Cobro PIX no encontrado"
            )
        return charge

    def list_charges(self, limit: int = 20, offset: int = 0) -> Tuple[List[PixCharge], int]:
        """Listar cobros, más recientes primero"""
        query = self.db.query(PixCharge)
        total = query.count()
        charges = (
            query.order_by(PixCharge.created_at.desc(), PixCharge.txid)
            .offset(offset)
            .limit(limit)
            .all()
        )
        return charges, total
