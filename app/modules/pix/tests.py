"""
Tests para el módulo PIX

Cubren:
- CRC16/CCITT-FALSE y registros TLV
- Codificación del payload BR Code (determinismo, largos, CRC, rechazos)
- Validadores de llaves PIX
- Endpoints de cobros, payloads y configuración
"""

import pytest
from decimal import Decimal
from pydantic import ValidationError

from app.common.validators import validate_pix_key, format_phone_key
from app.modules.pix.exceptions import PixEncodingError
from app.modules.pix.payload import (
    crc16_ccitt, format_crc, format_tlv, parse_tlv, verify_payload,
    encode_payload, build_payload, build_payment_request, format_amount
)
from app.modules.pix.schemas import MerchantConfig, PaymentRequest, PixChargeCreate, PixKeyType


PIX_KEY = "+5511984801839"


@pytest.fixture
def merchant_config():
    return MerchantConfig(
        trade_name="Webyte Desenvolvimentos",
        city="Sao Paulo",
        pix_key=PIX_KEY,
        pix_key_type=PixKeyType.PHONE,
    )


def _records(payload: str) -> dict:
    return dict(parse_tlv(payload))


# ===== CRC / TLV =====

class TestCrc16:
    """Tests del checksum"""

    def test_check_value(self):
        """Valor de referencia del CRC-16/CCITT-FALSE"""
        assert crc16_ccitt(b"123456789") == 0x29B1

    def test_empty_input_returns_initial_register(self):
        assert crc16_ccitt(b"") == 0xFFFF

    def test_order_sensitive(self):
        assert crc16_ccitt(b"12") != crc16_ccitt(b"21")

    def test_format_is_four_uppercase_hex_digits(self):
        assert format_crc(0x1A) == "001A"
        assert format_crc(0x29B1) == "29B1"


class TestTlv:
    """Tests de registros TLV"""

    def test_format_tlv(self):
        assert format_tlv("00", "01") == "000201"
        assert format_tlv("59", "") == "5900"

    def test_format_tlv_max_length(self):
        assert format_tlv("05", "x" * 99) == "0599" + "x" * 99

    def test_format_tlv_rejects_more_than_99(self):
        with pytest.raises(PixEncodingError):
            format_tlv("05", "x" * 100)

    def test_parse_tlv(self):
        assert parse_tlv("0002015802BR") == [("00", "01"), ("58", "BR")]

    def test_parse_tlv_truncated(self):
        with pytest.raises(PixEncodingError):
            parse_tlv("0005abc")


# ===== PAYLOAD =====

class TestEncodePayload:
    """Tests del codificador de payloads"""

    def test_fixed_prefix(self):
        payload = build_payload("Webyte Desenvolvimentos", "Sao Paulo", PIX_KEY, Decimal("29.99"), "Teste")
        assert payload.startswith(
            "000201"
            "26360014br.gov.bcb.pix0114+5511984801839"
            "52040000"
            "5303986"
            "540529.99"
            "5802BR"
        )

    def test_deterministic(self):
        first = build_payload("Loja", "Campinas", PIX_KEY, "29.99", "Teste")
        second = build_payload("Loja", "Campinas", PIX_KEY, "29.99", "Teste")
        assert first == second

    def test_amount_two_fraction_digits(self):
        payload = build_payload("Loja", "Campinas", PIX_KEY, 29.99, "Teste")
        assert _records(payload)["54"] == "29.99"

        payload = build_payload("Loja", "Campinas", PIX_KEY, Decimal("10"), "Teste")
        assert _records(payload)["54"] == "10.00"

    def test_every_length_prefix_matches_value(self):
        payload = build_payload("Loja do Centro", "Campinas", PIX_KEY, "150.00", "Pedido 42")
        records = parse_tlv(payload)
        assert "".join(f"{tag}{len(value):02d}{value}" for tag, value in records) == payload

        nested = _records(payload)
        assert parse_tlv(nested["26"]) == [("00", "br.gov.bcb.pix"), ("01", PIX_KEY)]
        assert parse_tlv(nested["62"]) == [("05", "Pedido 42")]

    def test_record_order(self):
        payload = build_payload("Loja", "Campinas", PIX_KEY, "5.00", "Teste")
        tags = [tag for tag, _ in parse_tlv(payload)]
        assert tags == ["00", "26", "52", "53", "54", "58", "59", "60", "62", "63"]

    def test_checksum_record(self):
        payload = build_payload("Loja", "Campinas", PIX_KEY, "29.99", "Teste")
        assert payload[-8:-4] == "6304"
        crc = payload[-4:]
        assert len(crc) == 4
        assert crc == crc.upper()
        int(crc, 16)
        assert verify_payload(payload)

    def test_checksum_covers_crc_prefix(self):
        payload = build_payload("Loja", "Campinas", PIX_KEY, "29.99", "Teste")
        assert format_crc(crc16_ccitt(payload[:-4].encode("ascii"))) == payload[-4:]

    def test_verify_detects_tampering(self):
        payload = build_payload("Loja", "Campinas", PIX_KEY, "29.99", "Teste")
        tampered = payload.replace("29.99", "92.99")
        assert not verify_payload(tampered)
        assert not verify_payload(payload[:-8])

    def test_key_only_variant_has_no_amount(self):
        payload = build_payload("Loja", "Campinas", PIX_KEY)
        records = _records(payload)
        assert "54" not in records
        assert records["62"] == "0503***"
        assert verify_payload(payload)

    def test_name_and_city_truncated(self):
        payload = build_payload("N" * 30, "C" * 20, PIX_KEY, "1.00", "Teste")
        records = _records(payload)
        assert records["59"] == "N" * 25
        assert records["60"] == "C" * 15

    def test_accents_are_folded(self):
        payload = build_payload("Padaria São João", "São Paulo", PIX_KEY, "1.00", "Café")
        records = _records(payload)
        assert records["59"] == "Padaria Sao Joao"
        assert records["60"] == "Sao Paulo"
        assert verify_payload(payload)

    def test_reference_over_99_rejected(self):
        with pytest.raises(PixEncodingError) as exc:
            build_payload("Loja", "Campinas", PIX_KEY, "29.99", "x" * 100)
        assert exc.value.field == "reference"

    def test_reference_up_to_25_characters(self):
        payload = build_payload("Loja", "Campinas", PIX_KEY, "29.99", "R" * 25)
        assert parse_tlv(_records(payload)["62"]) == [("05", "R" * 25)]

    def test_reference_over_25_rejected(self):
        """La referencia no se trunca: 26 caracteres se rechazan"""
        with pytest.raises(PixEncodingError) as exc:
            build_payload("Loja", "Campinas", PIX_KEY, "29.99", "R" * 26)
        assert exc.value.field == "reference"

    def test_name_over_99_rejected(self):
        with pytest.raises(PixEncodingError) as exc:
            build_payload("N" * 100, "Campinas", PIX_KEY, "1.00")
        assert exc.value.field == "merchant_name"

    @pytest.mark.parametrize("amount", ["0", "-1.00", "29.999", "abc", "NaN"])
    def test_invalid_amount_rejected(self, amount):
        with pytest.raises(PixEncodingError) as exc:
            build_payload("Loja", "Campinas", PIX_KEY, amount, "Teste")
        assert exc.value.field == "amount"

    def test_non_positive_decimal_in_request_rejected(self):
        request = PaymentRequest(
            merchant_name="Loja", merchant_city="Campinas", pix_key=PIX_KEY,
            amount=Decimal("-5"), reference="Teste"
        )
        with pytest.raises(PixEncodingError):
            encode_payload(request)

    def test_non_ascii_key_rejected(self):
        with pytest.raises(PixEncodingError) as exc:
            build_payload("Loja", "Campinas", "joão@example.com")
        assert exc.value.field == "pix_key"

    def test_build_from_merchant_config(self, merchant_config):
        request = build_payment_request(merchant_config, amount="29.99", reference="Teste")
        assert request.amount == Decimal("29.99")
        assert encode_payload(request) == build_payload(
            "Webyte Desenvolvimentos", "Sao Paulo", PIX_KEY, "29.99", "Teste"
        )

    def test_independent_configs(self, merchant_config):
        other = merchant_config.model_copy(update={"trade_name": "Outra Loja"})
        first = encode_payload(build_payment_request(merchant_config, amount="1.00"))
        second = encode_payload(build_payment_request(other, amount="1.00"))
        assert first != second
        assert _records(second)["59"] == "Outra Loja"

    def test_format_amount(self):
        assert format_amount(Decimal("1234.5")) == "1234.50"


# ===== VALIDADORES =====

class TestPixChargeCreate:
    """Validación del valor de un cobro"""

    @pytest.mark.parametrize("amount", ["1e30", "10000000000000000", "0", "1.005"])
    def test_invalid_amount(self, amount):
        with pytest.raises(ValidationError):
            PixChargeCreate(amount=amount, customer={"name": "Cliente"})

    def test_valid_amount(self):
        charge = PixChargeCreate(amount="1234567890.12", customer={"name": "Cliente"})
        assert charge.amount == Decimal("1234567890.12")


class TestPixKeyValidators:

    def test_valid_keys(self):
        assert validate_pix_key("123.456.789-09", "cpf")
        assert validate_pix_key("12.345.678/0001-90", "cnpj")
        assert validate_pix_key("junior@webytebr.com", "email")
        assert validate_pix_key("+55 (11) 98480-1839", "phone")
        assert validate_pix_key("123e4567-e89b-12d3-a456-426614174000", "random")

    def test_invalid_keys(self):
        assert not validate_pix_key("1234", "cpf")
        assert not validate_pix_key("not-an-email", "email")
        assert not validate_pix_key("(11) 98480-1839", "phone")
        assert not validate_pix_key("123E4567-E89B-12D3-A456-426614174000", "random")
        assert not validate_pix_key("anything", "unknown")

    def test_format_phone_key(self):
        assert format_phone_key("55 11 98480-1839") == "+5511984801839"
        assert format_phone_key("invalid") == "invalid"

    def test_merchant_config_rejects_mismatched_key(self):
        with pytest.raises(ValueError):
            MerchantConfig(trade_name="Loja", city="Campinas", pix_key="abc", pix_key_type=PixKeyType.EMAIL)


# ===== API =====

class TestPixAPI:

    def test_create_and_get_charge(self, client):
        response = client.post("/api/v1/pix/charges", json={
            "amount": "29.99",
            "customer": {"name": "Maria Silva", "email": "maria@example.com"},
            "description": "Teste"
        })
        assert response.status_code == 201
        charge = response.json()
        assert len(charge["txid"]) == 25
        assert charge["description"] == "Teste"
        assert parse_tlv(_records(charge["payload"])["62"]) == [("05", charge["txid"])]
        assert charge["status"] == "active"
        assert Decimal(charge["amount"]) == Decimal("29.99")
        assert verify_payload(charge["payload"])
        assert _records(charge["payload"])["54"] == "29.99"

        response = client.get(f"/api/v1/pix/charges/{charge['txid']}")
        assert response.status_code == 200
        assert response.json()["payload"] == charge["payload"]

    def test_list_charges(self, client):
        for amount in ("10.00", "20.00"):
            client.post("/api/v1/pix/charges", json={"amount": amount, "customer": {"name": "Cliente"}})
        response = client.get("/api/v1/pix/charges")
        assert response.status_code == 200
        assert response.json()["total"] == 2

    def test_default_description_used(self, client):
        response = client.post("/api/v1/pix/charges", json={"amount": "5.00", "customer": {"name": "Cliente"}})
        assert response.status_code == 201
        assert response.json()["description"] == "Teste de 30 Dias - Sistema Movimento de Caixa"
        assert parse_tlv(_records(response.json()["payload"])["62"]) == [("05", response.json()["txid"])]

    def test_charge_not_found(self, client):
        assert client.get("/api/v1/pix/charges/doesnotexist").status_code == 404

    def test_charge_amount_with_three_decimals_rejected(self, client):
        response = client.post("/api/v1/pix/charges", json={"amount": "1.005", "customer": {"name": "Cliente"}})
        assert response.status_code == 422

    def test_charge_amount_out_of_range(self, client):
        response = client.post("/api/v1/pix/charges", json={"amount": "1e30", "customer": {"name": "Cliente"}})
        assert response.status_code == 422
        assert client.get("/api/v1/pix/charges").json()["total"] == 0

    def test_charge_invalid_customer_email(self, client):
        response = client.post("/api/v1/pix/charges", json={
            "amount": "10.00", "customer": {"name": "Cliente", "email": "no-es-email"}
        })
        assert response.status_code == 422

    def test_static_payload(self, client):
        response = client.get("/api/v1/pix/payload")
        assert response.status_code == 200
        payload = response.json()["payload"]
        assert "54" not in _records(payload)
        assert response.json()["crc"] == payload[-4:]

    def test_adhoc_payload_rejects_long_reference(self, client):
        response = client.post("/api/v1/pix/payload", json={"amount": "29.99", "reference": "x" * 100})
        assert response.status_code == 422
        assert response.json()["detail"]["field"] == "reference"

        response = client.post("/api/v1/pix/payload", json={"amount": "29.99", "reference": "R" * 26})
        assert response.status_code == 422
        assert response.json()["detail"]["field"] == "reference"

    def test_update_config_changes_payload(self, client):
        response = client.patch("/api/v1/pix/config", json={"trade_name": "Nova Loja", "city": "Campinas"})
        assert response.status_code == 200
        assert response.json()["trade_name"] == "Nova Loja"

        payload = client.get("/api/v1/pix/payload").json()["payload"]
        records = _records(payload)
        assert records["59"] == "Nova Loja"
        assert records["60"] == "Campinas"

    def test_update_config_rejects_key_of_wrong_type(self, client):
        response = client.patch("/api/v1/pix/config", json={"pix_key": "not-a-phone"})
        assert response.status_code == 422
        assert client.get("/api/v1/pix/config").json()["pix_key"] == "+5511984801839"

    def test_update_config_normalizes_phone_key(self, client):
        response = client.patch("/api/v1/pix/config", json={"pix_key": "55 (11) 98480-1839"})
        assert response.status_code == 200
        assert response.json()["pix_key"] == "+5511984801839"

    def test_validate_key_endpoint(self, client):
        response = client.post("/api/v1/pix/validate-key", json={"key": "12345678909", "key_type": "cpf"})
        assert response.status_code == 200
        assert response.json()["valid"] is True
