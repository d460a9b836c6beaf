"""
Tests para el módulo de Movimiento de Caja

Cubren:
- Conversión a centavos y totales derivados
- Validación de salida de caja y PIX en cuenta
- Cheques: check_total acompaña la lista
- Setters tipados por categoría
- Persistencia: save/load/reset, borrador, fallas del almacén, migración de versiones
- Endpoints de la API
"""

import json
import pytest
from datetime import date
from decimal import Decimal

from app.modules.cash_flow import (
    CashFlowFieldError, CashFlowLedger, CashFlowPersistenceError,
    CashFlowValidationError, compute_totals, to_cents, upgrade_snapshot
)
from app.modules.cash_flow.schemas import (
    CURRENT_SCHEMA_VERSION, CashFlowEntries, CashFlowExits, CashFlowSnapshot,
    Check, PartyAmount, PostalShipment, ReturnItem, ValidationCode
)
from app.modules.storage.models import KeyValueRecord
from app.modules.storage.service import InMemoryKeyValueStore, KeyValueStore


STORAGE_KEY = "cashFlowData"
DRAFT_KEY = "cashFlowDraft"


class FailingStore(KeyValueStore):
    """Almacén que falla al escribir"""

    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        raise OSError("disco lleno")

    def delete(self, key):
        self.data.pop(key, None)


@pytest.fixture
def ledger(memory_store):
    return CashFlowLedger(memory_store, STORAGE_KEY)


@pytest.fixture
def sample_check():
    return {
        "bank": "Itaú",
        "branch": "0123",
        "check_number": "000045",
        "customer_name": "Maria Silva",
        "amount": "250.00",
        "due_date": "2026-11-15",
    }


@pytest.fixture
def legacy_record():
    """Registro guardado por la primera versión del sistema (sin schema_version)"""
    return {
        "entries": {
            "dinheiro": 250,
            "fundoCaixa": 400,
            "cartao": 120.5,
            "cartaoLink": 0,
            "clienteCartaoLink": "",
            "parcelasCartaoLink": 0,
            "boletos": 0,
            "clienteBoletos": "",
            "parcelasBoletos": 0,
            "pixMaquininha": 35,
            "pixConta": 30,
            "cliente1Nome": "",
            "cliente1Valor": 0,
            "cliente2Nome": "",
            "cliente2Valor": 0,
            "cliente3Nome": "",
            "cliente3Valor": 0,
            "pixContaClientes": [{"nome": "Ana", "valor": 10}, {"nome": "Bia", "valor": 20}],
            "cheque": 200,
            "cheques": [{
                "banco": "Itaú",
                "agencia": "0123",
                "numeroCheque": "000045",
                "nomeCliente": "Maria Silva",
                "valor": 200,
                "dataVencimento": "2026-11-15",
            }],
            "outros": 5,
        },
        "exits": {
            "descontos": 0,
            "saida": 100,
            "justificativaSaida": "Compras do dia",
            "justificativaCompra": "Material de limpeza",
            "valorCompra": 60,
            "justificativaSaidaDinheiro": "Troco",
            "valorSaidaDinheiro": 40,
            "devolucoes": [{"cpf": "123.456.789-09", "valor": 15, "incluidoNoMovimento": True}],
            "enviosCorreios": [
                {"tipo": "SEDEX", "estado": "MG", "cliente": "Carla", "valor": 42.9, "incluidoNoMovimento": False}
            ],
            "enviosTransportadora": [],
            "valesFuncionarios": [{"nome": "João", "valor": 50}],
            "valesIncluidosNoMovimento": False,
            "puxadorNome": "",
            "puxadorPorcentagem": 0,
            "puxadorValor": 0,
            "puxadorClientes": [],
            "creditoDevolucao": 0,
            "cpfCreditoDevolucao": "",
            "creditoDevolucaoIncluido": False,
            "correiosFrete": 0,
            "correiosTipo": "",
            "correiosEstado": "",
            "correiosClientes": [],
        },
        "cancelamentos": [{
            "id": "c1",
            "numeroPedido": "1001",
            "horaCancelamento": "14:30",
            "vendedor": "Rita",
            "numeroNovoPedido": "1002",
            "motivo": "Troca de produto",
            "valor": 80,
            "assinaturaGerente": "Paulo",
            "data": "2026-10-19",
        }],
    }


@pytest.fixture
def legacy_flat_record():
    """Registro anterior a las colecciones: clientes, devolución y envío en campos planos"""
    return {
        "entries": {
            "dinheiro": 100,
            "pixConta": 30,
            "cliente1Nome": "Ana",
            "cliente1Valor": 10,
            "cliente2Nome": "Bia",
            "cliente2Valor": 20,
            "cliente3Nome": "",
            "cliente3Valor": 0,
        },
        "exits": {
            "saida": 0,
            "creditoDevolucao": 15,
            "cpfCreditoDevolucao": "123",
            "creditoDevolucaoIncluido": True,
            "correiosFrete": 42.9,
            "correiosTipo": "SEDEX",
            "correiosEstado": "MG",
            "correiosClientes": ["Carla", "Davi"],
        },
    }


# ===== CENTAVOS Y TOTALES =====

class TestToCents:

    def test_decimal(self):
        assert to_cents(Decimal("150.00")) == 15000

    def test_half_cent_rounds_up(self):
        assert to_cents(Decimal("50.005")) == 5001

    def test_float_noise_is_absorbed(self):
        assert to_cents(0.1 + 0.2) == 30

    def test_negative(self):
        assert to_cents(Decimal("-1.25")) == -125


class TestTotals:

    def test_defaults(self):
        totals = compute_totals(CashFlowEntries(), CashFlowExits())
        assert totals.total_entries == Decimal("400")
        assert totals.grand_total == Decimal("400")

    def test_checks_not_in_total_entries(self):
        entries = CashFlowEntries(
            cash=Decimal("100"),
            card=Decimal("50"),
            pix_terminal=Decimal("25"),
            check_total=Decimal("300"),
            checks=[Check(amount=Decimal("300"))],
        )
        totals = compute_totals(entries, CashFlowExits())
        assert totals.total_entries == Decimal("575")
        assert totals.total_checks == Decimal("300")
        assert totals.grand_total == Decimal("875")

    def test_only_included_returns_and_shipments(self):
        exits = CashFlowExits(
            returns=[
                ReturnItem(cpf="1", amount=Decimal("10"), included=True),
                ReturnItem(cpf="2", amount=Decimal("99"), included=False),
            ],
            postal_shipments=[
                PostalShipment(service="PAC", amount=Decimal("20"), included=True),
                PostalShipment(service="SEDEX", amount=Decimal("77"), included=False),
            ],
        )
        totals = compute_totals(CashFlowEntries(opening_float=Decimal("0")), exits)
        assert totals.total_returns == Decimal("10")
        assert totals.total_postal_shipments == Decimal("20")
        assert totals.grand_total == Decimal("30")

    def test_advances_flag(self):
        advances = [PartyAmount(name="João", amount=Decimal("50")), PartyAmount(name="Lia", amount=Decimal("25"))]
        entries = CashFlowEntries(opening_float=Decimal("0"))

        totals = compute_totals(entries, CashFlowExits(employee_advances=advances))
        assert totals.total_employee_advances == Decimal("75")
        assert totals.advances_impact == Decimal("0")
        assert totals.grand_total == Decimal("0")

        totals = compute_totals(entries, CashFlowExits(employee_advances=advances, advances_included=True))
        assert totals.advances_impact == Decimal("75")
        assert totals.grand_total == Decimal("75")

    def test_carrier_shipments_are_informational(self, ledger):
        ledger.append_item("carrier_shipments", {"customer_name": "Loja X", "amount": "500"})
        assert ledger.totals.grand_total == Decimal("400")


# ===== VALIDACIÓN =====

class TestValidation:

    def test_cash_out_balanced(self, ledger):
        ledger.set_exit_amount("cash_out", "100")
        ledger.set_exit_amount("purchase_amount", "60")
        ledger.set_exit_amount("cash_withdrawal_amount", "40")
        assert ledger.validate_cash_out()

    def test_cash_out_unbalanced(self, ledger):
        ledger.set_exit_amount("cash_out", "100")
        ledger.set_exit_amount("purchase_amount", "60")
        ledger.set_exit_amount("cash_withdrawal_amount", "30")
        assert not ledger.validate_cash_out()

        result = ledger.validation()
        assert not result.valid
        assert not result.cash_out_balanced
        assert result.reasons[0].code == ValidationCode.CASH_OUT_MISMATCH
        assert result.reasons[0].expected == Decimal("100")
        assert result.reasons[0].actual == Decimal("90")

    def test_cash_out_zero_needs_no_justification(self, ledger):
        ledger.set_exit_amount("purchase_amount", "60")
        assert ledger.validate_cash_out()

    def test_cash_out_compared_in_cents(self, ledger):
        ledger.set_exit_amount("cash_out", 0.3)
        ledger.set_exit_amount("purchase_amount", 0.1)
        ledger.set_exit_amount("cash_withdrawal_amount", 0.2)
        assert ledger.validate_cash_out()

    def test_pix_account_half_cent_mismatch(self, ledger):
        """50.005 redondea a 5001 centavos: 15001 != 15000"""
        ledger.set_entry_amount("pix_account", "150.00")
        ledger.replace_items("pix_account_parties", [
            {"name": "A", "amount": "50"},
            {"name": "B", "amount": "50"},
            {"name": "C", "amount": "50.005"},
        ])
        assert not ledger.validate_pix_account_split()
        assert ledger.validation().reasons[0].code == ValidationCode.PIX_ACCOUNT_MISMATCH

    def test_pix_account_balanced(self, ledger):
        ledger.set_entry_amount("pix_account", "150.00")
        ledger.replace_items("pix_account_parties", [
            {"name": "A", "amount": "50"},
            {"name": "B", "amount": "100.00"},
        ])
        assert ledger.validate_pix_account_split()
        assert ledger.can_save()

    def test_pix_account_without_parties(self, ledger):
        ledger.set_entry_amount("pix_account", "10")
        assert not ledger.validate_pix_account_split()
        assert ledger.validation().reasons[0].code == ValidationCode.PIX_ACCOUNT_WITHOUT_PARTIES

    def test_pix_account_zero_is_valid(self, ledger):
        assert ledger.validate_pix_account_split()

    def test_both_reasons_reported(self, ledger):
        ledger.set_exit_amount("cash_out", "10")
        ledger.set_entry_amount("pix_account", "10")
        codes = [reason.code for reason in ledger.validation().reasons]
        assert codes == [ValidationCode.CASH_OUT_MISMATCH, ValidationCode.PIX_ACCOUNT_WITHOUT_PARTIES]


# ===== CHEQUES =====

class TestChecks:

    def test_add_then_remove_restores_state(self, ledger, sample_check):
        ledger.set_entry_amount("check_total", "100")
        before = ledger.entries

        ledger.add_check(sample_check)
        assert ledger.entries.check_total == Decimal("350.00")
        assert len(ledger.entries.checks) == 1
        assert ledger.entries.checks[0].bank == "Itaú"

        removed = ledger.remove_check(0)
        assert removed.amount == Decimal("250.00")
        assert ledger.entries.checks == before.checks
        assert ledger.entries.check_total == before.check_total

    def test_remove_invalid_index(self, ledger, sample_check):
        ledger.add_check(sample_check)
        before = ledger.entries

        with pytest.raises(IndexError):
            ledger.remove_check(5)
        with pytest.raises(IndexError):
            ledger.remove_check(-1)
        assert ledger.entries == before

    def test_append_item_routes_checks(self, ledger, sample_check):
        ledger.append_item("checks", sample_check)
        assert ledger.entries.check_total == Decimal("250.00")
        ledger.remove_item("checks", 0)
        assert ledger.entries.check_total == Decimal("0")

    def test_replace_checks_adjusts_total_by_difference(self, ledger, sample_check):
        ledger.add_check(sample_check)
        ledger.replace_items("checks", [{"amount": "100"}, {"amount": "50"}])
        assert ledger.entries.check_total == Decimal("150.00")
        assert ledger.totals.total_checks == Decimal("150")

    def test_invalid_check_rejected(self, ledger):
        with pytest.raises(CashFlowFieldError) as exc:
            ledger.add_check({"amount": "abc"})
        assert exc.value.field == "checks"
        assert ledger.entries.checks == []


# ===== SETTERS =====

class TestSetters:

    def test_amount_marks_changes(self, ledger):
        assert not ledger.has_changes
        ledger.set_entry_amount("cash", "12.34")
        assert ledger.entries.cash == Decimal("12.34")
        assert ledger.has_changes

    def test_wrong_category_rejected(self, ledger):
        with pytest.raises(CashFlowFieldError) as exc:
            ledger.set_entry_amount("cash_out", "10")
        assert exc.value.field == "cash_out"

        with pytest.raises(CashFlowFieldError):
            ledger.set_exit_text("cash_out", "x")

        with pytest.raises(CashFlowFieldError):
            ledger.set_entry_amount("card_link_customer", "10")
        assert not ledger.has_changes

    def test_invalid_amount_rejected(self, ledger):
        for value in ("abc", True, "NaN", "Infinity"):
            with pytest.raises(CashFlowFieldError):
                ledger.set_entry_amount("cash", value)
        assert ledger.entries.cash == Decimal("0")

    def test_counts(self, ledger):
        ledger.set_entry_count("card_link_installments", "3")
        assert ledger.entries.card_link_installments == 3
        with pytest.raises(CashFlowFieldError):
            ledger.set_entry_count("card_link_installments", -1)

    def test_texts(self, ledger):
        ledger.set_entry_text("bank_slips_customer", "Loja Y")
        ledger.set_exit_text("cash_out_reason", "Compra de material")
        assert ledger.entries.bank_slips_customer == "Loja Y"
        assert ledger.exits.cash_out_reason == "Compra de material"

    @pytest.mark.parametrize("value", [None, 5, ["Loja Y"]])
    def test_text_requires_string(self, ledger, value):
        with pytest.raises(CashFlowFieldError) as exc:
            ledger.set_entry_text("bank_slips_customer", value)
        assert exc.value.field == "bank_slips_customer"

        with pytest.raises(CashFlowFieldError):
            ledger.set_exit_text("cash_out_reason", value)

        assert ledger.entries.bank_slips_customer == ""
        assert ledger.exits.cash_out_reason == ""
        assert not ledger.has_changes

    def test_flag_requires_bool(self, ledger):
        ledger.set_exit_flag("advances_included", True)
        assert ledger.exits.advances_included is True
        with pytest.raises(CashFlowFieldError):
            ledger.set_exit_flag("advances_included", "yes")

    def test_unknown_collection(self, ledger):
        with pytest.raises(CashFlowFieldError):
            ledger.append_item("invoices", {})

    def test_unknown_item_field(self, ledger):
        with pytest.raises(CashFlowFieldError):
            ledger.append_item("employee_advances", {"name": "João", "amount": "50", "notes": "x"})
        assert ledger.exits.employee_advances == []

    def test_remove_item_invalid_index(self, ledger):
        ledger.append_item("employee_advances", {"name": "João", "amount": "50"})
        with pytest.raises(IndexError):
            ledger.remove_item("employee_advances", 1)
        assert len(ledger.exits.employee_advances) == 1

    def test_cancellations(self, ledger):
        first = ledger.add_cancellation({"order_number": "1001", "reason": "Desistência", "amount": "80"})
        assert len(first.id) == 32
        ledger.set_cancellations([])
        assert ledger.cancellations == []


# ===== PERSISTENCIA =====

class TestPersistence:

    def test_save_refused_when_unbalanced(self, ledger, memory_store):
        ledger.set_exit_amount("cash_out", "100")
        with pytest.raises(CashFlowValidationError) as exc:
            ledger.save()
        assert exc.value.reasons[0].code == ValidationCode.CASH_OUT_MISMATCH
        assert STORAGE_KEY not in memory_store
        assert ledger.has_changes

    def test_save_and_load(self, ledger, memory_store, sample_check):
        ledger.set_entry_amount("cash", "200")
        ledger.add_check(sample_check)
        ledger.add_cancellation({"order_number": "1001", "amount": "80"})
        ledger.save()
        assert not ledger.has_changes

        stored = json.loads(memory_store.get(STORAGE_KEY))
        assert stored["schema_version"] == CURRENT_SCHEMA_VERSION

        restored = CashFlowLedger(memory_store, STORAGE_KEY)
        assert restored.load()
        assert restored.entries == ledger.entries
        assert restored.exits == ledger.exits
        assert restored.cancellations == ledger.cancellations
        assert not restored.has_changes

    def test_load_without_record(self, ledger):
        assert ledger.load() is False
        assert ledger.entries == CashFlowEntries()

    def test_reset_then_load_gives_defaults(self, ledger, memory_store, sample_check):
        ledger.set_entry_amount("cash", "200")
        ledger.add_check(sample_check)
        ledger.save()
        ledger.set_entry_amount("cash", "300")
        ledger.save_draft()

        ledger.reset()
        assert STORAGE_KEY not in memory_store
        assert DRAFT_KEY not in memory_store
        assert not ledger.has_changes

        assert ledger.load() is False
        assert ledger.load_draft() is False
        assert ledger.entries.opening_float == Decimal("400")
        assert ledger.entries.cash == Decimal("0")
        assert ledger.entries.checks == []
        assert ledger.exits.returns == []
        assert ledger.cancellations == []

    def test_store_failure_keeps_pending_changes(self):
        ledger = CashFlowLedger(FailingStore(), STORAGE_KEY)
        ledger.set_entry_amount("cash", "10")
        with pytest.raises(CashFlowPersistenceError):
            ledger.save()
        assert ledger.has_changes
        assert ledger.entries.cash == Decimal("10")

    def test_corrupt_record(self, memory_store):
        memory_store.set(STORAGE_KEY, "{not json")
        with pytest.raises(CashFlowPersistenceError):
            CashFlowLedger(memory_store, STORAGE_KEY).load()

    def test_unknown_version(self, memory_store):
        memory_store.set(STORAGE_KEY, json.dumps({"schema_version": 99}))
        with pytest.raises(CashFlowPersistenceError):
            CashFlowLedger(memory_store, STORAGE_KEY).load()

    def test_section_not_an_object(self, memory_store):
        raw = json.dumps({"schema_version": 2, "entries": [1]})
        memory_store.set(STORAGE_KEY, raw)
        with pytest.raises(CashFlowPersistenceError):
            CashFlowLedger(memory_store, STORAGE_KEY).load()
        assert memory_store.get(STORAGE_KEY) == raw

    def test_unknown_field_refused(self, memory_store):
        record = CashFlowSnapshot().model_dump(mode="json")
        record["entries"]["tip"] = "5"
        raw = json.dumps(record)
        memory_store.set(STORAGE_KEY, raw)
        with pytest.raises(CashFlowPersistenceError):
            CashFlowLedger(memory_store, STORAGE_KEY).load()
        assert memory_store.get(STORAGE_KEY) == raw


# ===== BORRADOR =====

class TestDraft:

    def test_draft_saved_without_validation(self, ledger, memory_store):
        ledger.set_exit_amount("cash_out", "100")
        ledger.save_draft()
        assert DRAFT_KEY in memory_store
        assert STORAGE_KEY not in memory_store
        assert ledger.has_changes

    def test_draft_applied_over_saved(self, ledger, memory_store):
        ledger.set_entry_amount("cash", "50")
        ledger.save()
        ledger.set_entry_amount("cash", "75")
        ledger.save_draft()

        restored = CashFlowLedger(memory_store, STORAGE_KEY)
        assert restored.load()
        assert restored.entries.cash == Decimal("50")
        assert restored.load_draft()
        assert restored.entries.cash == Decimal("75")
        assert restored.has_changes

    def test_draft_equal_to_saved_has_no_changes(self, ledger):
        ledger.set_entry_amount("cash", "50")
        ledger.save()
        ledger.set_entry_amount("cash", "60")
        ledger.set_entry_amount("cash", "50")
        ledger.save_draft()
        assert not ledger.has_changes

    def test_save_removes_draft(self, ledger, memory_store):
        ledger.set_entry_amount("cash", "50")
        ledger.save_draft()
        ledger.save()
        assert DRAFT_KEY not in memory_store
        assert not ledger.has_changes

    def test_failed_save_keeps_draft(self, ledger, memory_store):
        ledger.set_exit_amount("cash_out", "100")
        ledger.save_draft()
        with pytest.raises(CashFlowValidationError):
            ledger.save()
        assert DRAFT_KEY in memory_store
        assert STORAGE_KEY not in memory_store

    def test_discard_changes(self, ledger, memory_store):
        ledger.set_entry_amount("cash", "50")
        ledger.save()
        ledger.set_entry_amount("cash", "80")
        ledger.save_draft()

        ledger.discard_changes()
        assert ledger.entries.cash == Decimal("50")
        assert DRAFT_KEY not in memory_store
        assert not ledger.has_changes

    def test_edit_balanced_cash_out_field_by_field(self, ledger):
        ledger.set_exit_amount("purchase_amount", "60")
        ledger.set_exit_amount("cash_withdrawal_amount", "40")
        ledger.set_exit_amount("cash_out", "100")
        ledger.save()

        ledger.set_exit_amount("cash_out", "120")
        ledger.save_draft()
        assert not ledger.validate_cash_out()

        ledger.set_exit_amount("purchase_amount", "80")
        ledger.save_draft()
        assert ledger.validate_cash_out()
        ledger.save()
        assert ledger.exits.cash_out == Decimal("120")
        assert not ledger.has_changes

    def test_load_draft_without_draft(self, ledger):
        assert ledger.load_draft() is False
        assert not ledger.has_changes


# ===== MIGRACIONES =====

class TestMigrations:

    def test_upgrade_legacy_record(self, legacy_record):
        record, changed = upgrade_snapshot(legacy_record)
        assert changed
        assert record["schema_version"] == CURRENT_SCHEMA_VERSION

        snapshot = CashFlowSnapshot.model_validate(record)
        entries, exits = snapshot.entries, snapshot.exits
        assert entries.cash == Decimal("250")
        assert entries.opening_float == Decimal("400")
        assert entries.card == Decimal("120.5")
        assert entries.pix_terminal == Decimal("35")
        assert entries.pix_account_parties == [
            PartyAmount(name="Ana", amount=Decimal("10")),
            PartyAmount(name="Bia", amount=Decimal("20")),
        ]
        assert entries.check_total == Decimal("200")
        assert entries.checks[0].bank == "Itaú"
        assert entries.checks[0].check_number == "000045"
        assert entries.checks[0].due_date == date(2026, 11, 15)
        assert entries.other == Decimal("5")

        assert exits.cash_out == Decimal("100")
        assert exits.purchase_reason == "Material de limpeza"
        assert exits.cash_withdrawal_amount == Decimal("40")
        assert exits.returns == [
            ReturnItem(cpf="123.456.789-09", amount=Decimal("15"), included=True)
        ]
        assert exits.postal_shipments[0].service == "SEDEX"
        assert exits.postal_shipments[0].customer == "Carla"
        assert exits.employee_advances == [PartyAmount(name="João", amount=Decimal("50"))]

        cancellation = snapshot.cancellations[0]
        assert cancellation.id == "c1"
        assert cancellation.order_number == "1001"
        assert cancellation.seller == "Rita"
        assert cancellation.cancellation_date == "2026-10-19"

    def test_upgrade_keeps_totals(self, legacy_record):
        snapshot = CashFlowSnapshot.model_validate(upgrade_snapshot(legacy_record)[0])
        totals = compute_totals(snapshot.entries, snapshot.exits)
        assert totals.total_entries == Decimal("840.5")
        assert totals.grand_total == Decimal("1055.5")

        ledger = CashFlowLedger(InMemoryKeyValueStore(), STORAGE_KEY)
        ledger.apply(snapshot.entries, snapshot.exits, snapshot.cancellations)
        assert ledger.can_save()

    def test_upgrade_flat_fields(self, legacy_flat_record):
        """Los campos planos no sumaban: el total migrado es el mismo"""
        snapshot = CashFlowSnapshot.model_validate(upgrade_snapshot(legacy_flat_record)[0])
        assert snapshot.entries.pix_account_parties == [
            PartyAmount(name="Ana", amount=Decimal("10")),
            PartyAmount(name="Bia", amount=Decimal("20")),
        ]
        assert snapshot.exits.returns == [ReturnItem(cpf="123", amount=Decimal("15"), included=False)]
        shipment = snapshot.exits.postal_shipments[0]
        assert shipment.service == "SEDEX"
        assert shipment.customer == "Carla, Davi"
        assert not shipment.included

        totals = compute_totals(snapshot.entries, snapshot.exits)
        assert totals.grand_total == Decimal("530")

    def test_input_not_mutated(self, legacy_record):
        original = json.loads(json.dumps(legacy_record))
        upgrade_snapshot(legacy_record)
        assert legacy_record == original

    def test_current_record_unchanged(self):
        record = CashFlowSnapshot().model_dump(mode="json")
        upgraded, changed = upgrade_snapshot(record)
        assert not changed
        assert upgraded == record

    def test_missing_fields_filled(self):
        record, changed = upgrade_snapshot({"schema_version": 2, "entries": {"cash": "5"}})
        assert changed
        assert record["entries"]["checks"] == []
        assert record["exits"]["advances_included"] is False
        assert record["cancellations"] == []

    def test_not_an_object(self):
        with pytest.raises(ValueError):
            upgrade_snapshot(["cash", 10])

    @pytest.mark.parametrize("record", [
        {"schema_version": 2, "entries": [1]},
        {"schema_version": 2, "exits": "x"},
        {"schema_version": 2, "cancellations": {"id": "c1"}},
        {"entries": [1], "exits": {}},
        {"entries": {"cheques": {"banco": "Itaú"}}},
    ])
    def test_sections_must_have_their_shape(self, record):
        with pytest.raises(ValueError):
            upgrade_snapshot(record)

    def test_unknown_legacy_field_rejected(self, legacy_record):
        legacy_record["entries"]["gorjeta"] = 5
        with pytest.raises(ValueError, match="gorjeta"):
            upgrade_snapshot(legacy_record)

    def test_unknown_legacy_item_field_rejected(self, legacy_record):
        legacy_record["entries"]["cheques"][0]["observacao"] = "sem fundos"
        with pytest.raises(ValueError, match="observacao"):
            upgrade_snapshot(legacy_record)

    def test_unknown_legacy_top_level_key_rejected(self, legacy_record):
        legacy_record["caixa"] = "2"
        with pytest.raises(ValueError, match="caixa"):
            upgrade_snapshot(legacy_record)

    def test_derived_legacy_fields_dropped(self, legacy_record):
        legacy_record["total"] = 1055.5
        legacy_record["date"] = "2026-10-19"
        record, _ = upgrade_snapshot(legacy_record)
        assert "total" not in record
        assert "date" not in record

    def test_load_persists_upgraded_record(self, memory_store, legacy_record):
        memory_store.set(STORAGE_KEY, json.dumps(legacy_record))
        ledger = CashFlowLedger(memory_store, STORAGE_KEY)
        assert ledger.load()
        assert not ledger.has_changes
        assert ledger.entries.cash == Decimal("250")

        stored = json.loads(memory_store.get(STORAGE_KEY))
        assert stored["schema_version"] == CURRENT_SCHEMA_VERSION
        assert "dinheiro" not in stored["entries"]
        assert Decimal(stored["entries"]["cash"]) == Decimal("250")
        assert len(stored["cancellations"]) == 1

    def test_load_refuses_unknown_legacy_field(self, memory_store, legacy_record):
        legacy_record["exits"]["gorjeta"] = 5
        raw = json.dumps(legacy_record)
        memory_store.set(STORAGE_KEY, raw)
        with pytest.raises(CashFlowPersistenceError):
            CashFlowLedger(memory_store, STORAGE_KEY).load()
        assert memory_store.get(STORAGE_KEY) == raw


# ===== API =====

class TestCashFlowAPI:

    def test_get_default_state(self, client):
        response = client.get("/api/v1/cash-flow")
        assert response.status_code == 200
        data = response.json()
        assert data["schema_version"] == CURRENT_SCHEMA_VERSION
        assert Decimal(data["entries"]["opening_float"]) == Decimal("400")
        assert Decimal(data["totals"]["grand_total"]) == Decimal("400")
        assert data["validation"]["valid"] is True
        assert data["has_changes"] is False

    def test_update_amount_then_save(self, client):
        response = client.patch("/api/v1/cash-flow/entries/amounts/cash", json={"value": "100.50"})
        assert response.status_code == 200
        assert Decimal(response.json()["totals"]["total_entries"]) == Decimal("500.50")
        assert response.json()["has_changes"] is True

        data = client.get("/api/v1/cash-flow").json()
        assert Decimal(data["entries"]["cash"]) == Decimal("100.50")
        assert data["has_changes"] is True

        response = client.post("/api/v1/cash-flow/save")
        assert response.status_code == 200
        assert response.json()["has_changes"] is False
        assert client.get("/api/v1/cash-flow").json()["has_changes"] is False

    def test_unbalanced_draft_not_saved(self, client, db_session):
        response = client.patch("/api/v1/cash-flow/exits/amounts/cash_out", json={"value": 100})
        assert response.status_code == 200
        assert response.json()["validation"]["valid"] is False

        response = client.post("/api/v1/cash-flow/save")
        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["reasons"][0]["code"] == "cash_out_mismatch"

        data = client.get("/api/v1/cash-flow").json()
        assert Decimal(data["exits"]["cash_out"]) == Decimal("100")
        assert data["has_changes"] is True
        saved = db_session.query(KeyValueRecord).filter(KeyValueRecord.key == STORAGE_KEY).first()
        assert saved is None

    def test_edit_balanced_cash_out_field_by_field(self, client):
        for field, value in (("purchase_amount", "60"), ("cash_withdrawal_amount", "40"), ("cash_out", "100")):
            response = client.patch(f"/api/v1/cash-flow/exits/amounts/{field}", json={"value": value})
            assert response.status_code == 200
        assert client.post("/api/v1/cash-flow/save").status_code == 200

        response = client.patch("/api/v1/cash-flow/exits/amounts/cash_out", json={"value": "120"})
        assert response.status_code == 200
        assert response.json()["validation"]["cash_out_balanced"] is False

        response = client.patch("/api/v1/cash-flow/exits/amounts/purchase_amount", json={"value": "80"})
        assert response.status_code == 200
        assert response.json()["validation"]["cash_out_balanced"] is True
        assert response.json()["has_changes"] is True

        assert client.post("/api/v1/cash-flow/save").status_code == 200
        data = client.get("/api/v1/cash-flow").json()
        assert Decimal(data["exits"]["cash_out"]) == Decimal("120")
        assert Decimal(data["exits"]["purchase_amount"]) == Decimal("80")
        assert data["has_changes"] is False

    def test_discard(self, client):
        client.patch("/api/v1/cash-flow/entries/amounts/cash", json={"value": "100"})
        client.post("/api/v1/cash-flow/save")
        client.patch("/api/v1/cash-flow/entries/amounts/cash", json={"value": "999"})

        response = client.post("/api/v1/cash-flow/discard")
        assert response.status_code == 200
        assert Decimal(response.json()["entries"]["cash"]) == Decimal("100")
        assert response.json()["has_changes"] is False
        assert Decimal(client.get("/api/v1/cash-flow").json()["entries"]["cash"]) == Decimal("100")

    def test_replace_balanced(self, client):
        response = client.put("/api/v1/cash-flow", json={
            "entries": {"cash": "300", "pix_account": "150", "pix_account_parties": [
                {"name": "Ana", "amount": "100"}, {"name": "Bia", "amount": "50"}
            ]},
            "exits": {"cash_out": "100", "purchase_amount": "60", "cash_withdrawal_amount": "40"},
        })
        assert response.status_code == 200
        assert Decimal(response.json()["totals"]["grand_total"]) == Decimal("850")

        response = client.post("/api/v1/cash-flow/save")
        assert response.status_code == 200
        assert response.json()["has_changes"] is False

    def test_preview_does_not_save(self, client):
        response = client.post("/api/v1/cash-flow/preview", json={"exits": {"cash_out": "10"}})
        assert response.status_code == 200
        assert response.json()["validation"]["cash_out_balanced"] is False
        data = client.get("/api/v1/cash-flow").json()
        assert Decimal(data["exits"]["cash_out"]) == Decimal("0")
        assert data["has_changes"] is False

    def test_field_of_other_category(self, client):
        response = client.patch("/api/v1/cash-flow/entries/amounts/cash_out", json={"value": 10})
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "cash_out"

    def test_text_null_rejected(self, client):
        response = client.patch("/api/v1/cash-flow/exits/texts/cash_out_reason", json={"value": None})
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "cash_out_reason"
        assert client.get("/api/v1/cash-flow").json()["exits"]["cash_out_reason"] == ""

    def test_category_missing_in_section(self, client):
        response = client.patch("/api/v1/cash-flow/entries/flags/advances_included", json={"value": True})
        assert response.status_code == 404

    def test_checks_endpoints(self, client):
        response = client.post("/api/v1/cash-flow/checks", json={"bank": "Bradesco", "amount": "250.00"})
        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["entries"]["check_total"]) == Decimal("250")
        assert Decimal(data["totals"]["total_checks"]) == Decimal("250")

        assert client.delete("/api/v1/cash-flow/checks/3").status_code == 404

        response = client.delete("/api/v1/cash-flow/checks/0")
        assert response.status_code == 200
        assert response.json()["entries"]["checks"] == []
        assert Decimal(response.json()["entries"]["check_total"]) == Decimal("0")

    def test_collections_endpoints(self, client):
        response = client.post(
            "/api/v1/cash-flow/collections/returns",
            json={"cpf": "123", "amount": "20", "included": True}
        )
        assert response.status_code == 200
        assert Decimal(response.json()["totals"]["total_returns"]) == Decimal("20")

        response = client.delete("/api/v1/cash-flow/collections/returns/0")
        assert response.status_code == 200
        assert response.json()["exits"]["returns"] == []

        assert client.post("/api/v1/cash-flow/collections/unknown", json={}).status_code == 400

        response = client.post(
            "/api/v1/cash-flow/collections/returns",
            json={"cpf": "123", "amount": "20", "notes": "x"}
        )
        assert response.status_code == 400

    def test_cancellations_endpoint(self, client):
        response = client.put("/api/v1/cash-flow/cancellations", json=[
            {"order_number": "1001", "seller": "Rita", "reason": "Desistência", "amount": "80"}
        ])
        assert response.status_code == 200
        assert response.json()["cancellations"][0]["order_number"] == "1001"

    def test_reset(self, client):
        client.patch("/api/v1/cash-flow/entries/amounts/cash", json={"value": "100"})
        client.post("/api/v1/cash-flow/save")
        client.patch("/api/v1/cash-flow/entries/amounts/cash", json={"value": "5"})

        response = client.post("/api/v1/cash-flow/reset")
        assert response.status_code == 200
        assert Decimal(response.json()["entries"]["cash"]) == Decimal("0")
        data = client.get("/api/v1/cash-flow").json()
        assert Decimal(data["entries"]["cash"]) == Decimal("0")
        assert data["has_changes"] is False

    def test_legacy_record_upgraded_on_read(self, client, db_session, legacy_record):
        db_session.add(KeyValueRecord(key=STORAGE_KEY, value=json.dumps(legacy_record)))
        db_session.commit()

        response = client.get("/api/v1/cash-flow")
        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["entries"]["cash"]) == Decimal("250")
        assert len(data["entries"]["pix_account_parties"]) == 2
        assert Decimal(data["totals"]["grand_total"]) == Decimal("1055.5")
        assert data["has_changes"] is False

        db_session.expire_all()
        record = db_session.query(KeyValueRecord).filter(KeyValueRecord.key == STORAGE_KEY).first()
        assert json.loads(record.value)["schema_version"] == CURRENT_SCHEMA_VERSION

    def test_unreadable_record_recovered_by_reset(self, client, db_session):
        db_session.add(KeyValueRecord(key=STORAGE_KEY, value=json.dumps({"schema_version": 2, "entries": [1]})))
        db_session.commit()

        assert client.get("/api/v1/cash-flow").status_code == 500

        response = client.post("/api/v1/cash-flow/reset")
        assert response.status_code == 200
        assert client.get("/api/v1/cash-flow").status_code == 200
