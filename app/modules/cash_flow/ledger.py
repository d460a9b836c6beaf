"""
Ledger del movimiento de caja: agregación y validación

CashFlowLedger mantiene las entradas, salidas y cancelaciones de una sesión,
expone setters tipados por categoría de campo y calcula los totales derivados
en cada lectura. Todas las comparaciones de dinero se hacen en centavos.

Cada mutación reemplaza la sección completa (los modelos son inmutables), así
que ningún lector ve una colección nueva con un total viejo.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple, Type, get_args
import json
import logging

from pydantic import BaseModel, ValidationError

from app.core.config import settings
from app.modules.cash_flow.exceptions import (
    CashFlowFieldError, CashFlowPersistenceError, CashFlowValidationError
)
from app.modules.cash_flow.migrations import upgrade_snapshot
from app.modules.cash_flow.schemas import (
    ZERO, Cancellation, CarrierShipment, CashFlowEntries, CashFlowExits,
    CashFlowSnapshot, CashFlowTotals, CashFlowValidation, Check, PartyAmount,
    PostalShipment, ReturnItem, ValidationCode, ValidationReason
)
from app.modules.storage.service import KeyValueStore

logger = logging.getLogger(__name__)


# ===== FIELD CATEGORIES =====

EntryAmountField = Literal[
    "cash", "opening_float", "card", "card_link", "bank_slips",
    "pix_terminal", "pix_account", "check_total", "other",
]
EntryCountField = Literal["card_link_installments", "bank_slips_installments"]
EntryTextField = Literal["card_link_customer", "bank_slips_customer"]
ExitAmountField = Literal[
    "discounts", "cash_out", "purchase_amount", "cash_withdrawal_amount",
    "referrer_percentage", "referrer_amount",
]
ExitTextField = Literal[
    "cash_out_reason", "purchase_reason", "cash_withdrawal_reason", "referrer_name",
]
ExitFlagField = Literal["advances_included"]
CollectionName = Literal[
    "checks", "pix_account_parties", "returns", "postal_shipments",
    "carrier_shipments", "employee_advances", "referrer_customers",
]

ENTRY_AMOUNT_FIELDS = frozenset(get_args(EntryAmountField))
ENTRY_COUNT_FIELDS = frozenset(get_args(EntryCountField))
ENTRY_TEXT_FIELDS = frozenset(get_args(EntryTextField))
EXIT_AMOUNT_FIELDS = frozenset(get_args(ExitAmountField))
EXIT_TEXT_FIELDS = frozenset(get_args(ExitTextField))
EXIT_FLAG_FIELDS = frozenset(get_args(ExitFlagField))

COLLECTIONS: Dict[str, Tuple[str, Type[BaseModel]]] = {
    "checks": ("entries", Check),
    "pix_account_parties": ("entries", PartyAmount),
    "returns": ("exits", ReturnItem),
    "postal_shipments": ("exits", PostalShipment),
    "carrier_shipments": ("exits", CarrierShipment),
    "employee_advances": ("exits", PartyAmount),
    "referrer_customers": ("exits", PartyAmount),
}


# ===== MONEY HELPERS =====

def to_cents(value: Any) -> int:
    """Convierte a centavos enteros (valor x 100, redondeo al entero más cercano)."""
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _sum_amounts(items: Iterable[Any]) -> Decimal:
    return sum((item.amount for item in items), ZERO)


def compute_totals(entries: CashFlowEntries, exits: CashFlowExits) -> CashFlowTotals:
    """
    Totales derivados del movimiento.

    total_entries no incluye los cheques: se suman aparte en total_checks
    y ambos entran en grand_total.
    """
    total_entries = (
        entries.cash
        + entries.opening_float
        + entries.card
        + entries.card_link
        + entries.bank_slips
        + entries.pix_terminal
        + entries.pix_account
        + entries.other
    )
    total_checks = _sum_amounts(entries.checks)
    total_returns = _sum_amounts(item for item in exits.returns if item.included)
    total_postal = _sum_amounts(item for item in exits.postal_shipments if item.included)
    total_advances = _sum_amounts(exits.employee_advances)
    advances_impact = total_advances if exits.advances_included else ZERO

    return CashFlowTotals(
        total_entries=total_entries,
        total_checks=total_checks,
        total_returns=total_returns,
        total_postal_shipments=total_postal,
        total_employee_advances=total_advances,
        advances_impact=advances_impact,
        grand_total=total_entries + total_checks + total_returns + total_postal + advances_impact,
    )


def check_cash_out(exits: CashFlowExits) -> Optional[ValidationReason]:
    """Con salida > 0, compra + retiro deben sumar exactamente la salida."""
    if exits.cash_out <= 0:
        return None
    justified = exits.purchase_amount + exits.cash_withdrawal_amount
    if to_cents(justified) == to_cents(exits.cash_out):
        return None
    return ValidationReason(
        code=ValidationCode.CASH_OUT_MISMATCH,
        message=f"Las justificaciones suman {justified} pero la salida es {exits.cash_out}",
        expected=exits.cash_out,
        actual=justified,
    )


def check_pix_account_split(entries: CashFlowEntries) -> Optional[ValidationReason]:
    """Con PIX en cuenta > 0, los clientes deben sumar exactamente el valor."""
    if entries.pix_account <= 0:
        return None
    if not entries.pix_account_parties:
        return ValidationReason(
            code=ValidationCode.PIX_ACCOUNT_WITHOUT_PARTIES,
            message="PIX en cuenta informado sin clientes",
            expected=entries.pix_account,
            actual=ZERO,
        )
    parties_total = _sum_amounts(entries.pix_account_parties)
    if to_cents(parties_total) == to_cents(entries.pix_account):
        return None
    return ValidationReason(
        code=ValidationCode.PIX_ACCOUNT_MISMATCH,
        message=f"Los clientes suman {parties_total} pero el PIX en cuenta es {entries.pix_account}",
        expected=entries.pix_account,
        actual=parties_total,
    )


def _to_amount(field: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise CashFlowFieldError(field, "se esperaba un valor numérico")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        raise CashFlowFieldError(field, f"valor numérico inválido: {value!r}")
    if not amount.is_finite():
        raise CashFlowFieldError(field, "el valor debe ser finito")
    return amount


def _to_count(field: str, value: Any) -> int:
    if isinstance(value, bool):
        raise CashFlowFieldError(field, "se esperaba un entero")
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise CashFlowFieldError(field, f"entero inválido: {value!r}")
    if count < 0:
        raise CashFlowFieldError(field, "no puede ser negativo")
    return count


def _to_text(field: str, value: Any) -> str:
    if not isinstance(value, str):
        raise CashFlowFieldError(field, "se esperaba un texto")
    return value


class CashFlowLedger:
    """
    Movimiento de caja de la sesión actual.

    - Setters tipados por categoría (monto, cantidad, texto, indicador, colección)
    - Totales y validaciones siempre derivados del estado actual
    - save/load/reset contra un KeyValueStore bajo `storage_key`
    - save_draft/load_draft: estado de trabajo sin validar bajo `draft_key`
    """

    def __init__(self, store: KeyValueStore, storage_key: Optional[str] = None,
                 draft_key: Optional[str] = None):
        self.store = store
        self.storage_key = storage_key or settings.CASH_FLOW_STORAGE_KEY
        self.draft_key = draft_key or settings.CASH_FLOW_DRAFT_KEY
        self._entries = CashFlowEntries()
        self._exits = CashFlowExits()
        self._cancellations: List[Cancellation] = []
        self._saved = self.snapshot()
        self._has_changes = False

    # ===== LECTURA =====

    @property
    def entries(self) -> CashFlowEntries:
        return self._entries

    @property
    def exits(self) -> CashFlowExits:
        return self._exits

    @property
    def cancellations(self) -> List[Cancellation]:
        return list(self._cancellations)

    @property
    def has_changes(self) -> bool:
        return self._has_changes

    @property
    def totals(self) -> CashFlowTotals:
        return compute_totals(self._entries, self._exits)

    def snapshot(self) -> CashFlowSnapshot:
        return CashFlowSnapshot(
            entries=self._entries,
            exits=self._exits,
            cancellations=list(self._cancellations),
        )

    # ===== SETTERS ESCALARES =====

    def set_entry_amount(self, field: EntryAmountField, value: Any) -> None:
        self._require(field, ENTRY_AMOUNT_FIELDS, "monto de entrada")
        self._update_entries({field: _to_amount(field, value)})

    def set_entry_count(self, field: EntryCountField, value: Any) -> None:
        self._require(field, ENTRY_COUNT_FIELDS, "cantidad de entrada")
        self._update_entries({field: _to_count(field, value)})

    def set_entry_text(self, field: EntryTextField, value: str) -> None:
        self._require(field, ENTRY_TEXT_FIELDS, "texto de entrada")
        self._update_entries({field: _to_text(field, value)})

    def set_exit_amount(self, field: ExitAmountField, value: Any) -> None:
        self._require(field, EXIT_AMOUNT_FIELDS, "monto de salida")
        self._update_exits({field: _to_amount(field, value)})

    def set_exit_text(self, field: ExitTextField, value: str) -> None:
        self._require(field, EXIT_TEXT_FIELDS, "texto de salida")
        self._update_exits({field: _to_text(field, value)})

    def set_exit_flag(self, field: ExitFlagField, value: bool) -> None:
        self._require(field, EXIT_FLAG_FIELDS, "indicador de salida")
        if not isinstance(value, bool):
            raise CashFlowFieldError(field, "se esperaba true o false")
        self._update_exits({field: value})

    # ===== COLECCIONES =====

    def replace_items(self, collection: CollectionName, items: Iterable[Any]) -> None:
        """Reemplaza la colección completa. En cheques, check_total acompaña la diferencia."""
        section, item_model = self._collection(collection)
        validated = [self._validate_item(collection, item_model, item) for item in items]
        if collection == "checks":
            current = self._entries
            delta = _sum_amounts(validated) - _sum_amounts(current.checks)
            self._update_entries({"checks": validated, "check_total": current.check_total + delta})
            return
        self._update_section(section, {collection: validated})

    def append_item(self, collection: CollectionName, item: Any) -> BaseModel:
        if collection == "checks":
            return self.add_check(item)
        section, item_model = self._collection(collection)
        validated = self._validate_item(collection, item_model, item)
        current = getattr(self._section(section), collection)
        self._update_section(section, {collection: [*current, validated]})
        return validated

    def remove_item(self, collection: CollectionName, index: int) -> BaseModel:
        """
        Raises:
            IndexError: índice fuera de rango (no se modifica nada)
        """
        if collection == "checks":
            return self.remove_check(index)
        section, _ = self._collection(collection)
        current = getattr(self._section(section), collection)
        if not 0 <= index < len(current):
            raise IndexError(f"{collection}: índice {index} fuera de rango")
        removed = current[index]
        self._update_section(section, {collection: current[:index] + current[index + 1:]})
        return removed

    def add_check(self, check: Any) -> Check:
        """Agrega el cheque y suma su valor a check_total en un solo paso."""
        validated = self._validate_item("checks", Check, check)
        current = self._entries
        self._update_entries({
            "checks": [*current.checks, validated],
            "check_total": current.check_total + validated.amount,
        })
        return validated

    def remove_check(self, index: int) -> Check:
        """Quita el cheque y resta su valor de check_total en un solo paso."""
        current = self._entries
        if not 0 <= index < len(current.checks):
            raise IndexError(f"checks: índice {index} fuera de rango")
        removed = current.checks[index]
        self._update_entries({
            "checks": current.checks[:index] + current.checks[index + 1:],
            "check_total": current.check_total - removed.amount,
        })
        return removed

    def set_cancellations(self, cancellations: Iterable[Any]) -> None:
        validated = [
            self._validate_item("cancellations", Cancellation, item) for item in cancellations
        ]
        self._cancellations = validated
        self._has_changes = True

    def add_cancellation(self, cancellation: Any) -> Cancellation:
        validated = self._validate_item("cancellations", Cancellation, cancellation)
        self._cancellations = [*self._cancellations, validated]
        self._has_changes = True
        return validated

    def apply(self, entries: CashFlowEntries, exits: CashFlowExits,
              cancellations: Iterable[Cancellation]) -> None:
        """Reemplaza el movimiento completo"""
        self._entries = entries
        self._exits = exits
        self._cancellations = list(cancellations)
        self._has_changes = True

    # ===== VALIDACIÓN =====

    def validate_cash_out(self) -> bool:
        return check_cash_out(self._exits) is None

    def validate_pix_account_split(self) -> bool:
        return check_pix_account_split(self._entries) is None

    def can_save(self) -> bool:
        return self.validate_cash_out() and self.validate_pix_account_split()

    def validation(self) -> CashFlowValidation:
        cash_out = check_cash_out(self._exits)
        pix_account = check_pix_account_split(self._entries)
        reasons = [reason for reason in (cash_out, pix_account) if reason is not None]
        return CashFlowValidation(
            valid=not reasons,
            cash_out_balanced=cash_out is None,
            pix_account_balanced=pix_account is None,
            reasons=reasons,
        )

    # ===== PERSISTENCIA =====

    def save(self) -> None:
        """
        Guarda el movimiento, descarta el borrador y limpia has_changes.

        Raises:
            CashFlowValidationError: el movimiento no cuadra (no se escribe nada)
            CashFlowPersistenceError: falla del almacén (el estado queda pendiente)
        """
        result = self.validation()
        if not result.valid:
            raise CashFlowValidationError(result.reasons)
        snapshot = self.snapshot()
        self._write(self.storage_key, snapshot)
        self._delete(self.draft_key)
        self._saved = snapshot
        self._has_changes = False
        logger.info(f"Movimiento de caja guardado en '{self.storage_key}'")

    def load(self) -> bool:
        """
        Carga el movimiento guardado, migrándolo a la versión actual.

        Si hubo que migrar o completar campos, el registro se vuelve a guardar
        de inmediato. Retorna False si no había nada guardado.
        """
        result = self._read(self.storage_key)
        if result is None:
            return False

        snapshot, upgraded = result
        self._restore(snapshot)
        self._saved = snapshot
        self._has_changes = False

        if upgraded:
            logger.info(f"Movimiento migrado a la versión {snapshot.schema_version}, guardando")
            self._write(self.storage_key, snapshot)
        return True

    def save_draft(self) -> None:
        """
        Guarda el estado actual como borrador, sin validar.

        has_changes pasa a indicar si el borrador difiere de lo guardado.
        """
        self._write(self.draft_key, self.snapshot())
        self._has_changes = not self._matches(self._saved)

    def load_draft(self) -> bool:
        """Aplica el borrador pendiente sobre lo cargado. Retorna False si no hay borrador."""
        result = self._read(self.draft_key)
        if result is None:
            return False
        snapshot, _ = result
        self._restore(snapshot)
        self._has_changes = not self._matches(self._saved)
        return True

    def discard_changes(self) -> None:
        """Borra el borrador y vuelve al último movimiento guardado."""
        self._delete(self.draft_key)
        self._restore(self._saved)
        self._has_changes = False

    def reset(self) -> None:
        """Vuelve todos los campos a sus valores por defecto y borra registro y borrador."""
        self._delete(self.storage_key)
        self._delete(self.draft_key)
        self._entries = CashFlowEntries()
        self._exits = CashFlowExits()
        self._cancellations = []
        self._saved = self.snapshot()
        self._has_changes = False
        logger.info("Movimiento de caja reiniciado")

    # ===== INTERNOS =====

    def _read(self, key: str) -> Optional[Tuple[CashFlowSnapshot, bool]]:
        try:
            raw = self.store.get(key)
        except Exception as e:
            raise CashFlowPersistenceError(f"No se pudo leer '{key}': {e}") from e
        if raw is None:
            return None

        try:
            record, upgraded = upgrade_snapshot(json.loads(raw))
            return CashFlowSnapshot.model_validate(record), upgraded
        except (ValueError, ValidationError) as e:
            logger.error(f"Error al cargar '{key}': {e}")
            raise CashFlowPersistenceError(f"Registro '{key}' ilegible: {e}") from e

    def _write(self, key: str, snapshot: CashFlowSnapshot) -> None:
        try:
            self.store.set(key, snapshot.model_dump_json())
        except Exception as e:
            logger.error(f"Error al guardar '{key}': {e}")
            raise CashFlowPersistenceError(f"No se pudo guardar '{key}': {e}") from e

    def _delete(self, key: str) -> None:
        try:
            self.store.delete(key)
        except Exception as e:
            raise CashFlowPersistenceError(f"No se pudo borrar '{key}': {e}") from e

    def _restore(self, snapshot: CashFlowSnapshot) -> None:
        self._entries = snapshot.entries
        self._exits = snapshot.exits
        self._cancellations = list(snapshot.cancellations)

    def _matches(self, snapshot: CashFlowSnapshot) -> bool:
        return (
            self._entries == snapshot.entries
            and self._exits == snapshot.exits
            and self._cancellations == list(snapshot.cancellations)
        )

    def _require(self, field: str, allowed: frozenset, category: str) -> None:
        if field not in allowed:
            raise CashFlowFieldError(field, f"no es un campo de tipo {category}")

    def _collection(self, collection: str) -> Tuple[str, Type[BaseModel]]:
        if collection not in COLLECTIONS:
            raise CashFlowFieldError(collection, "no es una colección")
        return COLLECTIONS[collection]

    def _validate_item(self, collection: str, item_model: Type[BaseModel], item: Any):
        if isinstance(item, item_model):
            return item
        try:
            return item_model.model_validate(item)
        except ValidationError as e:
            raise CashFlowFieldError(collection, f"ítem inválido: {e.errors()[0]['msg']}")

    def _section(self, section: str) -> BaseModel:
        return self._entries if section == "entries" else self._exits

    def _update_section(self, section: str, changes: Dict[str, Any]) -> None:
        if section == "entries":
            self._update_entries(changes)
        else:
            self._update_exits(changes)

    def _update_entries(self, changes: Dict[str, Any]) -> None:
        self._entries = self._entries.model_copy(update=changes)
        self._has_changes = True

    def _update_exits(self, changes: Dict[str, Any]) -> None:
        self._exits = self._exits.model_copy(update=changes)
        self._has_changes = True
