"""
Módulo PIX - Movimento de Caixa

FUNCIONALIDADES:
- Codificador de payloads BR Code (TLV EMV + CRC16/CCITT-FALSE)
- Cobros PIX con QR estático y expiración configurable
- Configuración del comercio explícita (nunca estado global)
- Validación de llaves PIX (CPF, CNPJ, e-mail, teléfono, aleatoria)

La rasterización del QR queda fuera: la API entrega solo el texto del payload.
"""

from .exceptions import PixEncodingError
from .payload import (
    encode_payload, build_payload, build_payment_request,
    crc16_ccitt, parse_tlv, verify_payload, format_tlv
)
from .schemas import MerchantConfig, PaymentRequest, PixKeyType, PixChargeStatus

__all__ = [
    "PixEncodingError",
    "encode_payload",
    "build_payload",
    "build_payment_request",
    "crc16_ccitt",
    "parse_tlv",
    "verify_payload",
    "format_tlv",
    "MerchantConfig",
    "PaymentRequest",
    "PixKeyType",
    "PixChargeStatus",
]
