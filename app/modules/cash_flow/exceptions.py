"""
Excepciones del ledger de movimiento de caja
"""

from typing import List

from app.modules.cash_flow.schemas import ValidationReason


class CashFlowError(Exception):
    """Error base del módulo"""


class CashFlowFieldError(CashFlowError):
    """Campo inexistente, de otra categoría o con un valor no convertible"""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class CashFlowValidationError(CashFlowError):
    """El movimiento no cuadra y no se puede guardar"""

    def __init__(self, reasons: List[ValidationReason]):
        super().__init__("; ".join(reason.message for reason in reasons))
        self.reasons = reasons


class CashFlowPersistenceError(CashFlowError):
    """Falla al leer o escribir el almacén, o registro guardado ilegible"""
