"""
Servicio de notificaciones para Grid Trading.
"""
from typing import Optional

from app.domain.interfaces import NotificationService
from shared.services.logging_config import get_logger
from shared.services.telegram_base import TelegramBaseService

logger = get_logger(__name__)


class TelegramNotificationService(NotificationService):
    """Implementación de notificaciones usando Telegram (chat privado = user_id)."""

    def __init__(self, telegram_service: Optional[TelegramBaseService] = None):
        self.telegram_service = telegram_service or TelegramBaseService()
        logger.info("✅ TelegramNotificationService inicializado.")

    def send(self, user_id: int, text: str) -> bool:
        try:
            return self.telegram_service.send_message(text, chat_id=str(user_id), parse_mode="Markdown")
        except Exception as e:
            logger.error(f"❌ Error enviando notificación al usuario {user_id}: {e}")
            return False
