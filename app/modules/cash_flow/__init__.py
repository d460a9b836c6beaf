"""
Módulo de Movimiento de Caja

ENTIDADES:
- Entradas: dinero, fondo de caja, tarjetas, boletos, PIX, cheques, otros
- Salidas: descuentos, salida justificada, devoluciones, envíos, vales, captador
- Cancelaciones de pedidos del turno

REGLAS DE NEGOCIO:
- Totales derivados, recalculados en cada lectura
- Salida > 0 exige compra + retiro == salida (en centavos)
- PIX en cuenta > 0 exige clientes que sumen exactamente el valor (en centavos)
- No se guarda un movimiento que no cuadra
- Registros de versiones anteriores se migran al cargar
"""

from .exceptions import (
    CashFlowError, CashFlowFieldError, CashFlowValidationError, CashFlowPersistenceError
)
from .ledger import CashFlowLedger, compute_totals, to_cents
from .migrations import upgrade_snapshot

__all__ = [
    "CashFlowError",
    "CashFlowFieldError",
    "CashFlowValidationError",
    "CashFlowPersistenceError",
    "CashFlowLedger",
    "compute_totals",
    "to_cents",
    "upgrade_snapshot",
]
