"""
Servicios compartidos: logging y notificaciones de Telegram.
"""
from .logging_config import setup_logging, get_logger
from .telegram_base import TelegramBaseService

__all__ = [
    'setup_logging',
    'get_logger',
    'TelegramBaseService',
]
