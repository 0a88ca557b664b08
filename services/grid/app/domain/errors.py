"""
Excepciones del dominio Grid.
"""
from typing import Optional


class GridTradingError(Exception):
    """Base de los errores del servicio."""


class PriceSlippageError(GridTradingError):
    """La cotización queda fuera del precio aceptable para el peldaño."""


class InsufficientBalanceError(GridTradingError):
    """No hay saldo del token para vender."""


class UnsupportedAggregatorError(GridTradingError):
    """El agregador configurado por el usuario no existe."""


class VenueError(GridTradingError):
    """Error devuelto por un agregador de liquidez."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"code: {code}, message: {message}")


class SwapExecutionError(GridTradingError):
    """Fallo al enviar un swap; tx_hash queda disponible si ya estaba firmado."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(message)


class TxNotFoundError(GridTradingError):
    """La transacción todavía no es visible en la cadena."""


class ProgramError(GridTradingError):
    """La transacción se ejecutó pero el programa falló en cadena."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Program Error: {detail}")


class WalletNotFoundError(GridTradingError):
    """El usuario no tiene wallet registrada."""
