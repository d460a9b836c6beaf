"""
Excepciones del codificador de payloads PIX
"""


class PixEncodingError(ValueError):
    """
    El payload no se puede codificar con los datos recibidos.

    `field` indica el campo que provocó el rechazo (ej. 'merchant_name',
    'amount', 'reference') para que la interfaz pueda señalarlo.
    """

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message
