"""
Modelos de base de datos del bot de grid trading.
Importa todos los modelos para que SQLAlchemy registre sus tablas.
"""

from .base import Base, DecimalString
from .strategy import Strategy
from .grid import Grid
from .order import Order
from .user_settings import UserSettings
from .wallet import Wallet

__all__ = [
    'Base',
    'DecimalString',
    'Strategy',
    'Grid',
    'Order',
    'UserSettings',
    'Wallet',
]
