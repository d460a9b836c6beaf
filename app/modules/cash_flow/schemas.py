"""
Esquemas Pydantic para el módulo de Movimiento de Caja

Define:
- Ítems de línea: cheques, pagos divididos, devoluciones, envíos, vales, cancelaciones
- CashFlowEntries / CashFlowExits: campos escalares + colecciones del movimiento
- CashFlowSnapshot: registro persistido {schema_version, entries, exits, cancellations}
- CashFlowTotals / CashFlowValidation: valores derivados, nunca persistidos

Los modelos son inmutables: el ledger reemplaza la sección completa en cada cambio.
"""

from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Any, List, Optional
from datetime import date
from uuid import uuid4
from enum import Enum

from app.core.config import settings


CURRENT_SCHEMA_VERSION = 2

ZERO = Decimal("0")


# ===== ENUMS =====

class PostalService(str, Enum):
    NONE = ""
    PAC = "PAC"
    SEDEX = "SEDEX"


class ValidationCode(str, Enum):
    """Motivos por los que el movimiento no se puede guardar"""
    CASH_OUT_MISMATCH = "cash_out_mismatch"
    PIX_ACCOUNT_WITHOUT_PARTIES = "pix_account_without_parties"
    PIX_ACCOUNT_MISMATCH = "pix_account_mismatch"


# ===== LINE ITEMS =====

class Check(BaseModel):
    """Cheque recibido (puede ser pre-datado)"""
    bank: str = ""
    branch: str = ""
    check_number: str = ""
    customer_name: str = ""
    amount: Decimal = ZERO
    due_date: Optional[date] = Field(None, description="Vencimiento para cheques pre-datados")

    model_config = {"frozen": True, "extra": "forbid"}


class PartyAmount(BaseModel):
    """Nombre + valor (clientes del PIX en cuenta, vales, clientes del captador)"""
    name: str = ""
    amount: Decimal = ZERO

    model_config = {"frozen": True, "extra": "forbid"}


class ReturnItem(BaseModel):
    """Crédito / devolución a cliente"""
    cpf: str = ""
    amount: Decimal = ZERO
    included: bool = Field(False, description="Suma en el total del movimiento")

    model_config = {"frozen": True, "extra": "forbid"}


class PostalShipment(BaseModel):
    """Envío por Correios"""
    service: PostalService = PostalService.NONE
    state: str = ""
    customer: str = ""
    amount: Decimal = ZERO
    included: bool = Field(False, description="Suma en el total del movimiento")

    model_config = {"frozen": True, "extra": "forbid"}


class CarrierShipment(BaseModel):
    """Envío por transportadora (informativo, no suma en totales)"""
    customer_name: str = ""
    state: str = ""
    weight: Decimal = ZERO
    quantity: int = 0
    amount: Decimal = ZERO

    model_config = {"frozen": True, "extra": "forbid"}


class Cancellation(BaseModel):
    """Pedido cancelado durante el turno"""
    id: str = Field(default_factory=lambda: uuid4().hex)
    order_number: str = ""
    cancelled_at: str = Field("", description="Hora de la cancelación (HH:MM)")
    seller: str = ""
    new_order_number: str = ""
    reason: str = ""
    amount: Decimal = ZERO
    manager_signature: str = ""
    cancellation_date: str = ""

    model_config = {"frozen": True, "extra": "forbid"}


# ===== SECTIONS =====

class CashFlowEntries(BaseModel):
    """Entradas del movimiento de caja"""
    cash: Decimal = ZERO
    opening_float: Decimal = Field(default_factory=lambda: settings.CASH_FLOW_OPENING_FLOAT)
    card: Decimal = ZERO
    card_link: Decimal = ZERO
    card_link_customer: str = ""
    card_link_installments: int = 0
    bank_slips: Decimal = ZERO
    bank_slips_customer: str = ""
    bank_slips_installments: int = 0
    pix_terminal: Decimal = ZERO
    pix_account: Decimal = ZERO
    pix_account_parties: List[PartyAmount] = Field(default_factory=list)
    check_total: Decimal = ZERO
    checks: List[Check] = Field(default_factory=list)
    other: Decimal = ZERO

    model_config = {"frozen": True, "extra": "forbid"}


class CashFlowExits(BaseModel):
    """Salidas del movimiento de caja"""
    discounts: Decimal = ZERO
    cash_out: Decimal = ZERO
    cash_out_reason: str = ""
    purchase_reason: str = ""
    purchase_amount: Decimal = ZERO
    cash_withdrawal_reason: str = ""
    cash_withdrawal_amount: Decimal = ZERO
    returns: List[ReturnItem] = Field(default_factory=list)
    postal_shipments: List[PostalShipment] = Field(default_factory=list)
    carrier_shipments: List[CarrierShipment] = Field(default_factory=list)
    employee_advances: List[PartyAmount] = Field(default_factory=list)
    advances_included: bool = False
    referrer_name: str = ""
    referrer_percentage: Decimal = ZERO
    referrer_amount: Decimal = ZERO
    referrer_customers: List[PartyAmount] = Field(default_factory=list)

    model_config = {"frozen": True, "extra": "forbid"}


class CashFlowSnapshot(BaseModel):
    """Registro persistido en el almacén clave-valor"""
    schema_version: int = CURRENT_SCHEMA_VERSION
    entries: CashFlowEntries = Field(default_factory=CashFlowEntries)
    exits: CashFlowExits = Field(default_factory=CashFlowExits)
    cancellations: List[Cancellation] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


# ===== DERIVED =====

class CashFlowTotals(BaseModel):
    """Totales derivados; se recalculan en cada lectura"""
    total_entries: Decimal = Field(description="Escalares de entrada (sin cheques)")
    total_checks: Decimal = Field(description="Suma de cheques individuales")
    total_returns: Decimal = Field(description="Devoluciones marcadas como incluidas")
    total_postal_shipments: Decimal = Field(description="Envíos marcados como incluidos")
    total_employee_advances: Decimal = Field(description="Suma de vales de funcionarios")
    advances_impact: Decimal = Field(description="Vales que impactan el total (si están incluidos)")
    grand_total: Decimal = Field(description="Total final del movimiento")


class ValidationReason(BaseModel):
    code: ValidationCode
    message: str
    expected: Decimal
    actual: Decimal


class CashFlowValidation(BaseModel):
    valid: bool
    cash_out_balanced: bool
    pix_account_balanced: bool
    reasons: List[ValidationReason] = Field(default_factory=list)


class CashFlowState(BaseModel):
    """Estado completo expuesto por la API"""
    schema_version: int
    entries: CashFlowEntries
    exits: CashFlowExits
    cancellations: List[Cancellation]
    totals: CashFlowTotals
    validation: CashFlowValidation
    has_changes: bool


# ===== REQUESTS =====

class FieldUpdate(BaseModel):
    """Nuevo valor para un campo escalar; el tipo lo define la categoría de la ruta"""
    value: Any


class CashFlowReplace(BaseModel):
    """Reemplazo completo del movimiento"""
    entries: CashFlowEntries = Field(default_factory=CashFlowEntries)
    exits: CashFlowExits = Field(default_factory=CashFlowExits)
    cancellations: List[Cancellation] = Field(default_factory=list)
