"""
Servicio de negocio para el movimiento de caja

CashFlowService carga el movimiento guardado y el borrador pendiente en cada
request, aplica el cambio pedido mediante CashFlowLedger y lo deja en el
borrador sin validar. Solo `save` valida y guarda el movimiento.

Los errores del ledger se traducen a HTTPException:
- CashFlowFieldError -> 400
- IndexError (cheque / ítem inexistente) -> 404
- CashFlowValidationError -> 422 con los motivos
- CashFlowPersistenceError -> 500
"""

from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from app.modules.cash_flow.exceptions import (
    CashFlowFieldError, CashFlowPersistenceError, CashFlowValidationError
)
from app.modules.cash_flow.ledger import CashFlowLedger
from app.modules.cash_flow.schemas import CashFlowReplace, CashFlowState
from app.modules.storage.service import (
    InMemoryKeyValueStore, KeyValueStore, SQLAlchemyKeyValueStore
)

logger = logging.getLogger(__name__)


class CashFlowService:
    """Servicio del movimiento de caja persistido"""

    def __init__(self, db: Session, store: Optional[KeyValueStore] = None):
        self.db = db
        self._ledger = CashFlowLedger(store or SQLAlchemyKeyValueStore(db))
        self._loaded = False

    @property
    def ledger(self) -> CashFlowLedger:
        """Ledger con el movimiento guardado y el borrador ya aplicados"""
        if not self._loaded:
            self._persist(self._ledger.load)
            self._persist(self._ledger.load_draft)
            self._loaded = True
        return self._ledger

    def _setters(self) -> Dict[Tuple[str, str], Callable[[str, Any], None]]:
        return {
            ("entries", "amounts"): self.ledger.set_entry_amount,
            ("entries", "counts"): self.ledger.set_entry_count,
            ("entries", "texts"): self.ledger.set_entry_text,
            ("exits", "amounts"): self.ledger.set_exit_amount,
            ("exits", "texts"): self.ledger.set_exit_text,
            ("exits", "flags"): self.ledger.set_exit_flag,
        }

    # ===== LECTURA =====

    def get_state(self) -> CashFlowState:
        return self._state(self.ledger)

    def preview(self, data: CashFlowReplace) -> CashFlowState:
        """Totales y validación de un movimiento sin guardarlo"""
        draft = CashFlowLedger(InMemoryKeyValueStore())
        draft.apply(data.entries, data.exits, data.cancellations)
        return self._state(draft)

    # ===== BORRADOR =====

    def replace(self, data: CashFlowReplace) -> CashFlowState:
        self.ledger.apply(data.entries, data.exits, data.cancellations)
        return self._stage()

    def update_field(self, section: str, category: str, field: str, value: Any) -> CashFlowState:
        """Actualizar un campo escalar usando el setter de su categoría"""
        setter = self._setters().get((section, category))
        if setter is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Categoría '{category}' no existe en '{section}'"
            )
        self._apply(lambda: setter(field, value))
        return self._stage()

    def replace_items(self, collection: str, items: List[Any]) -> CashFlowState:
        self._apply(lambda: self.ledger.replace_items(collection, items))
        return self._stage()

    def append_item(self, collection: str, item: Any) -> CashFlowState:
        self._apply(lambda: self.ledger.append_item(collection, item))
        return self._stage()

    def remove_item(self, collection: str, index: int) -> CashFlowState:
        self._apply(lambda: self.ledger.remove_item(collection, index))
        return self._stage()

    def set_cancellations(self, cancellations: List[Any]) -> CashFlowState:
        self._apply(lambda: self.ledger.set_cancellations(cancellations))
        return self._stage()

    # ===== GUARDADO =====

    def save(self) -> CashFlowState:
        """
        Validar y guardar el movimiento.

        Si no cuadra responde 422 con los motivos; el borrador se conserva.
        """
        try:
            self.ledger.save()
        except CashFlowValidationError as e:
            logger.warning(f"Movimiento no guardado: {e}")
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={
                    "message": "El movimiento no cuadra",
                    "reasons": [reason.model_dump(mode="json") for reason in e.reasons],
                }
            )
        except CashFlowPersistenceError as e:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=str(e)
            )
        return self.get_state()

    def discard(self) -> CashFlowState:
        """Descartar el borrador y volver al último movimiento guardado"""
        self._persist(self.ledger.discard_changes)
        return self.get_state()

    def reset(self) -> CashFlowState:
        """No carga lo guardado: permite recuperarse de un registro ilegible"""
        self._persist(self._ledger.reset)
        self._loaded = True
        return self.get_state()

    # ===== INTERNOS =====

    def _apply(self, mutation: Callable[[], Any]) -> None:
        try:
            mutation()
        except CashFlowFieldError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"field": e.field, "message": e.message}
            )
        except IndexError as e:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=str(e)
            )

    def _stage(self) -> CashFlowState:
        self._persist(self.ledger.save_draft)
        return self.get_state()

    def _persist(self, operation: Callable[[], Any]) -> None:
        try:
            operation()
        except CashFlowPersistenceError as e:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=str(e)
            )

    @staticmethod
    def _state(ledger: CashFlowLedger) -> CashFlowState:
        snapshot = ledger.snapshot()
        return CashFlowState(
            schema_version=snapshot.schema_version,
            entries=snapshot.entries,
            exits=snapshot.exits,
            cancellations=snapshot.cancellations,
            totals=ledger.totals,
            validation=ledger.validation(),
            has_changes=ledger.has_changes,
        )
