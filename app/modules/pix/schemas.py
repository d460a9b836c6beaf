"""
Esquemas Pydantic para el módulo PIX

Define:
- MerchantConfig: configuración explícita del comercio (nombre, ciudad, llave)
- PaymentRequest: entrada inmutable del codificador de payloads
- PixCharge*: cobros PIX generados con QR estático
"""

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from decimal import Decimal, InvalidOperation
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from enum import Enum

from app.common.validators import validate_pix_key


# ===== ENUMS =====

class PixKeyType(str, Enum):
    CPF = "cpf"
    CNPJ = "cnpj"
    EMAIL = "email"
    PHONE = "phone"
    RANDOM = "random"


class PixChargeStatus(str, Enum):
    """Estados de un cobro PIX"""
    ACTIVE = "active"
    COMPLETED = "completed"
    REMOVED_BY_RECEIVER = "removed_by_receiver"
    REMOVED_BY_PSP = "removed_by_psp"


# ===== MERCHANT CONFIG =====

class MerchantConfig(BaseModel):
    """Configuración del comercio usada para generar payloads"""
    trade_name: str = Field(..., min_length=1, max_length=99, description="Nombre fantasía")
    legal_name: Optional[str] = Field(None, max_length=200, description="Razón social")
    cnpj: Optional[str] = Field(None, max_length=18, description="CNPJ del comercio")
    city: str = Field(..., min_length=1, max_length=99, description="Ciudad del comercio")
    pix_key: str = Field(..., min_length=1, max_length=77, description="Llave PIX")
    pix_key_type: PixKeyType = Field(..., description="Tipo de llave PIX")

    model_config = {"frozen": True}

    @model_validator(mode='after')
    def validate_key_matches_type(self):
        if not validate_pix_key(self.pix_key, self.pix_key_type.value):
            raise ValueError(
                f"La llave PIX no es válida para el tipo '{self.pix_key_type.value}'"
            )
        return self


class MerchantConfigUpdate(BaseModel):
    """Actualización parcial de la configuración del comercio"""
    trade_name: Optional[str] = Field(None, min_length=1, max_length=99)
    legal_name: Optional[str] = Field(None, max_length=200)
    cnpj: Optional[str] = Field(None, max_length=18)
    city: Optional[str] = Field(None, min_length=1, max_length=99)
    pix_key: Optional[str] = Field(None, min_length=1, max_length=77)
    pix_key_type: Optional[PixKeyType] = None


# ===== PAYLOAD =====

class PaymentRequest(BaseModel):
    """
    Datos de una solicitud de pago. Inmutable; se construye una por cobro.

    Sin restricciones de longitud aquí: el codificador es quien rechaza
    los valores que no se pueden representar.
    """
    merchant_name: str
    merchant_city: str
    pix_key: str
    amount: Optional[Decimal] = None
    reference: Optional[str] = None

    model_config = {"frozen": True}


class PixPayloadRequest(BaseModel):
    """Esquema para generar un payload ad-hoc con la configuración actual"""
    amount: Optional[Decimal] = Field(None, description="Valor fijo (omitir para QR sin valor)")
    reference: Optional[str] = Field(None, description="Identificador de la transacción (hasta 25 caracteres)")


class PixPayloadOut(BaseModel):
    payload: str = Field(description="Payload BR Code listo para rasterizar")
    crc: str = Field(description="Checksum CRC16 del payload")
    amount: Optional[Decimal] = Field(None, description="Valor codificado")


class PixKeyValidationRequest(BaseModel):
    key: str = Field(..., min_length=1)
    key_type: str = Field(..., description="cpf, cnpj, email, phone o random")


class PixKeyValidationOut(BaseModel):
    key: str
    key_type: str
    valid: bool


# ===== CHARGES =====

class PixCustomer(BaseModel):
    """Datos del cliente que paga"""
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=30)
    company: Optional[str] = Field(None, max_length=200)


class PixChargeCreate(BaseModel):
    """Esquema para crear cobro PIX"""
    amount: Decimal = Field(..., gt=0, max_digits=15, description="Valor del cobro")
    customer: PixCustomer
    description: Optional[str] = Field(None, max_length=99, description="Descripción del cobro")

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        try:
            quantized = v.quantize(Decimal("0.01"))
        except InvalidOperation:
            raise ValueError("El valor está fuera de rango")
        if v != quantized:
            raise ValueError("El valor admite como máximo dos decimales")
        return v


class PixChargeOut(BaseModel):
    """Esquema de salida para cobro PIX"""
    id: UUID
    txid: str
    amount: Decimal
    pix_key: str
    description: str
    status: PixChargeStatus
    payload: str = Field(description="Payload BR Code (texto del QR)")
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_company: Optional[str] = None
    created_at: datetime
    expires_at: datetime

    model_config = {"from_attributes": True}


class PixChargeList(BaseModel):
    charges: List[PixChargeOut]
    total: int
    limit: int
    offset: int
