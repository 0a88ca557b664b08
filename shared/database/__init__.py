"""
Módulo de base de datos del bot de grid trading.
"""
from .session import SessionLocal, init_database, get_db_session
from . import models

from .models import Base, Strategy, Grid, Order, UserSettings, Wallet

__all__ = ['SessionLocal', 'init_database', 'get_db_session', 'models', 'Base',
           'Strategy', 'Grid', 'Order', 'UserSettings', 'Wallet']
