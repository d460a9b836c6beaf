"""
Validadores de llaves PIX (Brasil)
"""
import re


PIX_KEY_TYPES = ("cpf", "cnpj", "email", "phone", "random")


def _digits(value: str) -> str:
    return re.sub(r'\D', '', value)


def validate_cpf_key(key: str) -> bool:
    """
    Valida llave PIX de tipo CPF.
    - 11 dígitos después de limpiar puntos y guiones
    """
    return re.match(r'^\d{11}$', _digits(key)) is not None


def validate_cnpj_key(key: str) -> bool:
    """
    Valida llave PIX de tipo CNPJ.
    - 14 dígitos después de limpiar puntos, barra y guiones
    """
    return re.match(r'^\d{14}$', _digits(key)) is not None


def validate_email_key(key: str) -> bool:
    return re.match(r'^[^\s@]+@[^\s@]+\.[^\s@]+$', key) is not None


def validate_phone_key(key: str) -> bool:
    """
    Valida llave PIX de tipo teléfono.
    Formatos válidos (después de limpiar espacios, paréntesis y guiones):
    - +55DDNNNNNNNNN (móvil)
    - +55DDNNNNNNNN (fijo)
    - 55DD... sin el +
    """
    cleaned = re.sub(r'[\s\-\(\)]', '', key)
    return re.match(r'^\+?55\d{10,11}$', cleaned) is not None


def validate_random_key(key: str) -> bool:
    """Llave aleatoria: UUID en minúsculas"""
    return re.match(
        r'^[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}$', key
    ) is not None


_VALIDATORS = {
    "cpf": validate_cpf_key,
    "cnpj": validate_cnpj_key,
    "email": validate_email_key,
    "phone": validate_phone_key,
    "random": validate_random_key,
}


def validate_pix_key(key: str, key_type: str) -> bool:
    """
    Valida una llave PIX según el tipo indicado.
    Tipos desconocidos son siempre inválidos.
    """
    validator = _VALIDATORS.get(key_type)
    if validator is None:
        return False
    return validator(key)


def format_phone_key(key: str) -> str:
    """
    Formatea teléfono al formato de llave PIX +55DDNNNNNNNNN
    """
    if not validate_phone_key(key):
        return key  # Retorna sin cambios si no es válido

    cleaned = re.sub(r'[\s\-\(\)]', '', key)
    if cleaned.startswith('+'):
        return cleaned
    return '+' + cleaned
