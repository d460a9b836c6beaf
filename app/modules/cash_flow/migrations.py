"""
Actualización del esquema del movimiento de caja persistido

Los registros sin `schema_version` son versión 1: el formato de la primera
versión del sistema, con nombres de campo en portugués (`dinheiro`,
`pixConta`, `cheques`, `cancelamentos`...). Cada paso transforma un registro
de la versión N a la N+1; al final se completan con el valor por defecto los
campos ausentes. Se ejecuta una sola vez, al cargar.

Un registro con claves desconocidas o con secciones que no son objetos se
rechaza con ValueError: nunca se descarta información en silencio.

Versión 1 -> 2:
- campos escalares e ítems de colecciones renombrados al esquema actual
- cliente{1,2,3}Nome/Valor -> entries.pix_account_parties (si no hay pixContaClientes)
- creditoDevolucao / cpfCreditoDevolucao -> exits.returns (si no hay devolucoes)
- correiosFrete / correiosTipo / correiosEstado / correiosClientes -> exits.postal_shipments
- cancelamentos -> cancellations; total y date son derivados y se descartan
"""

from copy import deepcopy
from typing import Any, Callable, Dict, Iterable, List, Tuple

from app.modules.cash_flow.schemas import (
    CURRENT_SCHEMA_VERSION, CashFlowEntries, CashFlowExits
)


Record = Dict[str, Any]


# ===== VERSIÓN 1 =====

RECORD_FIELDS_V1 = frozenset({"entries", "exits", "cancelamentos", "total", "date"})

ENTRY_FIELDS_V1 = {
    "dinheiro": "cash",
    "fundoCaixa": "opening_float",
    "cartao": "card",
    "cartaoLink": "card_link",
    "clienteCartaoLink": "card_link_customer",
    "parcelasCartaoLink": "card_link_installments",
    "boletos": "bank_slips",
    "clienteBoletos": "bank_slips_customer",
    "parcelasBoletos": "bank_slips_installments",
    "pixMaquininha": "pix_terminal",
    "pixConta": "pix_account",
    "cheque": "check_total",
    "outros": "other",
}

EXIT_FIELDS_V1 = {
    "descontos": "discounts",
    "saida": "cash_out",
    "justificativaSaida": "cash_out_reason",
    "justificativaCompra": "purchase_reason",
    "valorCompra": "purchase_amount",
    "justificativaSaidaDinheiro": "cash_withdrawal_reason",
    "valorSaidaDinheiro": "cash_withdrawal_amount",
    "valesIncluidosNoMovimento": "advances_included",
    "puxadorNome": "referrer_name",
    "puxadorPorcentagem": "referrer_percentage",
    "puxadorValor": "referrer_amount",
}

PARTY_V1 = {"nome": "name", "valor": "amount"}
CHECK_V1 = {
    "banco": "bank",
    "agencia": "branch",
    "numeroCheque": "check_number",
    "nomeCliente": "customer_name",
    "valor": "amount",
    "dataVencimento": "due_date",
}
RETURN_V1 = {"cpf": "cpf", "valor": "amount", "incluidoNoMovimento": "included"}
POSTAL_V1 = {
    "tipo": "service",
    "estado": "state",
    "cliente": "customer",
    "valor": "amount",
    "incluidoNoMovimento": "included",
}
CARRIER_V1 = {
    "nomeCliente": "customer_name",
    "estado": "state",
    "peso": "weight",
    "quantidade": "quantity",
    "valor": "amount",
}
CANCELLATION_V1 = {
    "id": "id",
    "numeroPedido": "order_number",
    "horaCancelamento": "cancelled_at",
    "vendedor": "seller",
    "numeroNovoPedido": "new_order_number",
    "motivo": "reason",
    "valor": "amount",
    "assinaturaGerente": "manager_signature",
    "data": "cancellation_date",
}

ENTRY_COLLECTIONS_V1 = {
    "pixContaClientes": ("pix_account_parties", PARTY_V1),
    "cheques": ("checks", CHECK_V1),
}
EXIT_COLLECTIONS_V1 = {
    "devolucoes": ("returns", RETURN_V1),
    "enviosCorreios": ("postal_shipments", POSTAL_V1),
    "enviosTransportadora": ("carrier_shipments", CARRIER_V1),
    "valesFuncionarios": ("employee_advances", PARTY_V1),
    "puxadorClientes": ("referrer_customers", PARTY_V1),
}

# Campos planos anteriores a las colecciones
LEGACY_SPLIT_SLOTS = ("cliente1", "cliente2", "cliente3")


# ===== HELPERS =====

def _require_object(value: Any, where: str) -> Record:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"'{where}' debe ser un objeto JSON")
    return dict(value)


def _require_list(value: Any, where: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"'{where}' debe ser una lista")
    return value


def _reject_unknown(keys: Iterable[str], where: str) -> None:
    unknown = sorted(keys)
    if unknown:
        raise ValueError(f"Campos desconocidos en '{where}': {unknown}")


def _rename(item: Any, mapping: Dict[str, str], where: str) -> Record:
    item = _require_object(item, where)
    _reject_unknown(set(item) - set(mapping), where)
    return {mapping[key]: value for key, value in item.items() if value is not None}


def _rename_items(items: Any, mapping: Dict[str, str], where: str) -> List[Record]:
    return [_rename(item, mapping, where) for item in _require_list(items, where)]


def _rename_section(legacy: Record, fields: Dict[str, str], collections: Dict, where: str) -> Record:
    _reject_unknown(set(legacy) - set(fields) - set(collections), where)
    section = {fields[key]: value for key, value in legacy.items() if key in fields and value is not None}
    for key, (name, mapping) in collections.items():
        if key in legacy:
            section[name] = _rename_items(legacy[key], mapping, f"{where}.{key}")
    return section


# ===== PASOS =====

def _entries_v1_to_v2(legacy: Record) -> Record:
    slots = [
        (legacy.pop(f"{slot}Nome", None) or "", legacy.pop(f"{slot}Valor", None) or 0)
        for slot in LEGACY_SPLIT_SLOTS
    ]
    entries = _rename_section(legacy, ENTRY_FIELDS_V1, ENTRY_COLLECTIONS_V1, "entries")

    legacy_parties = [{"name": name, "amount": amount} for name, amount in slots if name or amount]
    if legacy_parties and not entries.get("pix_account_parties"):
        entries["pix_account_parties"] = legacy_parties

    # Cheques a la vista guardados con vencimiento vacío
    for check in entries.get("checks", []):
        if not check.get("due_date"):
            check.pop("due_date", None)
    return entries


def _exits_v1_to_v2(legacy: Record) -> Record:
    credit = legacy.pop("creditoDevolucao", None) or 0
    credit_cpf = legacy.pop("cpfCreditoDevolucao", None) or ""
    legacy.pop("creditoDevolucaoIncluido", None)
    freight = legacy.pop("correiosFrete", None) or 0
    service = legacy.pop("correiosTipo", None) or ""
    state = legacy.pop("correiosEstado", None) or ""
    customers = legacy.pop("correiosClientes", None) or []

    exits = _rename_section(legacy, EXIT_FIELDS_V1, EXIT_COLLECTIONS_V1, "exits")

    # Los campos planos nunca sumaron en el total: se migran como no incluidos
    if credit and not exits.get("returns"):
        exits["returns"] = [{"cpf": credit_cpf, "amount": credit, "included": False}]
    if freight and not exits.get("postal_shipments"):
        exits["postal_shipments"] = [{
            "service": service,
            "state": state,
            "customer": customers if isinstance(customers, str) else ", ".join(customers),
            "amount": freight,
            "included": False,
        }]
    return exits


def _upgrade_v1_to_v2(record: Record) -> Record:
    _reject_unknown(set(record) - RECORD_FIELDS_V1 - {"schema_version"}, "registro")
    return {
        "entries": _entries_v1_to_v2(_require_object(record.get("entries"), "entries")),
        "exits": _exits_v1_to_v2(_require_object(record.get("exits"), "exits")),
        "cancellations": _rename_items(record.get("cancelamentos"), CANCELLATION_V1, "cancelamentos"),
    }


UPGRADES: Dict[int, Callable[[Record], Record]] = {
    1: _upgrade_v1_to_v2,
}


def _fill_defaults(section: Record, defaults: Record) -> List[str]:
    """Completa campos ausentes (o nulos) y retorna sus nombres"""
    filled = [name for name in defaults if section.get(name) is None]
    for name in filled:
        section[name] = deepcopy(defaults[name])
    return filled


def upgrade_snapshot(raw: Record) -> Tuple[Record, bool]:
    """
    Lleva un registro persistido a la versión actual del esquema.

    Returns:
        (registro actualizado, True si hubo que migrar o completar campos)

    Raises:
        ValueError: versión desconocida, secciones que no son objetos o
            campos desconocidos
    """
    if not isinstance(raw, dict):
        raise ValueError("El registro guardado no es un objeto JSON")

    record = deepcopy(raw)
    version = record.get("schema_version", 1)
    if isinstance(version, bool) or not isinstance(version, int) or not 1 <= version <= CURRENT_SCHEMA_VERSION:
        raise ValueError(f"Versión de esquema desconocida: {version!r}")

    changed = False
    while version < CURRENT_SCHEMA_VERSION:
        record = UPGRADES[version](record)
        version += 1
        changed = True
    record["schema_version"] = version

    entries = _require_object(record.get("entries"), "entries")
    exits = _require_object(record.get("exits"), "exits")
    filled = _fill_defaults(entries, CashFlowEntries().model_dump(mode="json"))
    filled += _fill_defaults(exits, CashFlowExits().model_dump(mode="json"))
    record["entries"] = entries
    record["exits"] = exits
    if record.get("cancellations") is None:
        record["cancellations"] = []
        filled.append("cancellations")
    else:
        _require_list(record["cancellations"], "cancellations")

    return record, changed or bool(filled)
