"""
Codificador de payloads PIX (BR Code, formato EMV QRCPS-MPM)

El payload es una secuencia de registros TLV `<id 2 dígitos><largo 2 dígitos><valor>`
terminada por el registro CRC `6304XXXX`. Funciones puras, sin estado compartido:
la configuración del comercio llega siempre como argumento.
"""

from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple, Union
import unicodedata

from app.modules.pix.exceptions import PixEncodingError
from app.modules.pix.schemas import MerchantConfig, PaymentRequest


# ===== IDs EMV =====

ID_PAYLOAD_FORMAT = "00"
ID_MERCHANT_ACCOUNT = "26"
ID_MERCHANT_ACCOUNT_GUI = "00"
ID_MERCHANT_ACCOUNT_KEY = "01"
ID_MERCHANT_CATEGORY = "52"
ID_CURRENCY = "53"
ID_AMOUNT = "54"
ID_COUNTRY = "58"
ID_MERCHANT_NAME = "59"
ID_MERCHANT_CITY = "60"
ID_ADDITIONAL_DATA = "62"
ID_REFERENCE_LABEL = "05"
ID_CRC = "63"

PAYLOAD_FORMAT_VERSION = "01"
PIX_GUI = "br.gov.bcb.pix"
MERCHANT_CATEGORY_CODE = "0000"
CURRENCY_BRL = "986"
COUNTRY_CODE = "BR"
NO_REFERENCE = "***"

MAX_VALUE_LENGTH = 99
MAX_MERCHANT_NAME_LENGTH = 25
MAX_MERCHANT_CITY_LENGTH = 15
MAX_REFERENCE_LENGTH = 25
CRC_LENGTH = 4

CRC_POLYNOMIAL = 0x1021
CRC_INITIAL = 0xFFFF


def crc16_ccitt(data: bytes, initial: int = CRC_INITIAL) -> int:
    """
    CRC-16/CCITT-FALSE (polinomio 0x1021, inicial 0xFFFF, sin reflexión).
    """
    crc = initial
    for byte in data:
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = (crc << 1) ^ CRC_POLYNOMIAL
            else:
                crc <<= 1
            crc &= 0xFFFF
    return crc


def format_crc(crc: int) -> str:
    return f"{crc & 0xFFFF:04X}"


def format_tlv(tag: str, value: str) -> str:
    """
    Construye un registro TLV. El largo siempre va con dos dígitos,
    por lo que valores de más de 99 caracteres se rechazan.
    """
    if len(value) > MAX_VALUE_LENGTH:
        raise PixEncodingError(
            f"tag {tag}",
            f"el valor tiene {len(value)} caracteres (máximo {MAX_VALUE_LENGTH})"
        )
    return f"{tag}{len(value):02d}{value}"


def parse_tlv(payload: str) -> List[Tuple[str, str]]:
    """
    Decodifica una secuencia de registros TLV en pares (tag, valor).

    Raises:
        PixEncodingError: si el texto no es una secuencia TLV bien formada
    """
    records = []
    position = 0
    while position < len(payload):
        header = payload[position:position + 4]
        if len(header) < 4 or not header.isdigit():
            raise PixEncodingError("payload", f"cabecera TLV inválida en la posición {position}")
        tag, length = header[:2], int(header[2:])
        value = payload[position + 4:position + 4 + length]
        if len(value) != length:
            raise PixEncodingError("payload", f"registro {tag} truncado")
        records.append((tag, value))
        position += 4 + length
    return records


def verify_payload(payload: str) -> bool:
    """Recalcula el CRC del payload y lo compara con el registro 6304 final."""
    crc_prefix = f"{ID_CRC}{CRC_LENGTH:02d}"
    if len(payload) < len(crc_prefix) + CRC_LENGTH:
        return False
    if payload[-(len(crc_prefix) + CRC_LENGTH):-CRC_LENGTH] != crc_prefix:
        return False
    try:
        body = payload[:-CRC_LENGTH].encode("ascii")
    except UnicodeEncodeError:
        return False
    return format_crc(crc16_ccitt(body)) == payload[-CRC_LENGTH:]


def format_amount(amount: Union[Decimal, int, float, str]) -> str:
    """
    Formatea el valor con exactamente dos decimales y sin separador de miles (ej. '29.99').

    Raises:
        PixEncodingError: si el valor no es positivo o tiene más de dos decimales
    """
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except InvalidOperation:
        raise PixEncodingError("amount", f"valor inválido: {amount!r}")
    if not value.is_finite():
        raise PixEncodingError("amount", "el valor debe ser un número finito")
    if value <= 0:
        raise PixEncodingError("amount", "el valor debe ser mayor a cero")
    try:
        quantized = value.quantize(Decimal("0.01"))
    except InvalidOperation:
        raise PixEncodingError("amount", "valor fuera de rango")
    if value != quantized:
        raise PixEncodingError("amount", "el valor admite como máximo dos decimales")
    return f"{quantized:.2f}"


def _fold_ascii(text: str) -> str:
    """Quita acentos y descarta caracteres fuera de ASCII ('São Paulo' -> 'Sao Paulo')."""
    normalized = unicodedata.normalize("NFKD", text)
    return normalized.encode("ascii", "ignore").decode("ascii")


def _check_length(field: str, value: str) -> None:
    if len(value) > MAX_VALUE_LENGTH:
        raise PixEncodingError(
            field, f"tiene {len(value)} caracteres (máximo {MAX_VALUE_LENGTH})"
        )


def _clean_text(field: str, value: str, max_length: Optional[int] = None) -> str:
    _check_length(field, value)
    cleaned = _fold_ascii(value).strip()
    if not cleaned:
        raise PixEncodingError(field, "no puede estar vacío")
    if max_length is not None:
        cleaned = cleaned[:max_length].rstrip()
    return cleaned


def _clean_key(pix_key: str) -> str:
    _check_length("pix_key", pix_key)
    key = pix_key.strip()
    if not key:
        raise PixEncodingError("pix_key", "no puede estar vacía")
    if not all(32 <= ord(char) < 127 for char in key):
        raise PixEncodingError("pix_key", "solo admite caracteres ASCII imprimibles")
    return key


def encode_payload(request: PaymentRequest) -> str:
    """
    Genera el payload BR Code de una solicitud de pago.

    Sin `amount` se genera un QR estático sin valor fijo (el pagador lo informa).
    Sin `reference` se usa '***', el identificador reservado para "sin txid".
    La referencia admite hasta 25 caracteres y no se trunca.

    Raises:
        PixEncodingError: ningún payload parcial se retorna si algún campo es inválido
    """
    name = _clean_text("merchant_name", request.merchant_name, MAX_MERCHANT_NAME_LENGTH)
    city = _clean_text("merchant_city", request.merchant_city, MAX_MERCHANT_CITY_LENGTH)
    key = _clean_key(request.pix_key)
    reference = NO_REFERENCE
    if request.reference is not None and request.reference.strip():
        reference = _clean_text("reference", request.reference)
        if len(reference) > MAX_REFERENCE_LENGTH:
            raise PixEncodingError(
                "reference", f"tiene {len(reference)} caracteres (máximo {MAX_REFERENCE_LENGTH})"
            )

    merchant_account = (
        format_tlv(ID_MERCHANT_ACCOUNT_GUI, PIX_GUI)
        + format_tlv(ID_MERCHANT_ACCOUNT_KEY, key)
    )
    additional_data = format_tlv(ID_REFERENCE_LABEL, reference)

    records = [
        format_tlv(ID_PAYLOAD_FORMAT, PAYLOAD_FORMAT_VERSION),
        format_tlv(ID_MERCHANT_ACCOUNT, merchant_account),
        format_tlv(ID_MERCHANT_CATEGORY, MERCHANT_CATEGORY_CODE),
        format_tlv(ID_CURRENCY, CURRENCY_BRL),
    ]
    if request.amount is not None:
        records.append(format_tlv(ID_AMOUNT, format_amount(request.amount)))
    records.extend([
        format_tlv(ID_COUNTRY, COUNTRY_CODE),
        format_tlv(ID_MERCHANT_NAME, name),
        format_tlv(ID_MERCHANT_CITY, city),
        format_tlv(ID_ADDITIONAL_DATA, additional_data),
    ])

    # El CRC cubre todo el payload incluyendo el prefijo "6304"
    body = "".join(records) + f"{ID_CRC}{CRC_LENGTH:02d}"
    return body + format_crc(crc16_ccitt(body.encode("ascii")))


def _to_decimal(amount: Optional[Union[Decimal, int, float, str]]) -> Optional[Decimal]:
    if amount is None:
        return None
    format_amount(amount)
    return amount if isinstance(amount, Decimal) else Decimal(str(amount))


def build_payment_request(
    config: MerchantConfig,
    amount: Optional[Union[Decimal, int, float, str]] = None,
    reference: Optional[str] = None
) -> PaymentRequest:
    """Arma la solicitud de pago a partir de la configuración del comercio."""
    return PaymentRequest(
        merchant_name=config.trade_name,
        merchant_city=config.city,
        pix_key=config.pix_key,
        amount=_to_decimal(amount),
        reference=reference,
    )


def build_payload(
    merchant_name: str,
    merchant_city: str,
    pix_key: str,
    amount: Optional[Union[Decimal, int, float, str]] = None,
    reference: Optional[str] = None
) -> str:
    """Atajo: construye la solicitud y la codifica en un solo paso."""
    return encode_payload(PaymentRequest(
        merchant_name=merchant_name,
        merchant_city=merchant_city,
        pix_key=pix_key,
        amount=_to_decimal(amount),
        reference=reference,
    ))
