"""
Servicio base de Telegram.
Usa python-telegram-bot para enviar notificaciones a los usuarios del bot.
"""
import asyncio
from typing import Optional
from telegram import Bot
from shared.config.settings import settings
from shared.services.logging_config import get_logger

logger = get_logger(__name__)


class TelegramBaseService:
    """
    Servicio base de Telegram que envía mensajes síncronos
    a un chat concreto usando python-telegram-bot.
    """

    def __init__(self, bot_token: Optional[str] = None):
        """Inicializa el servicio base de Telegram."""
        token = bot_token or settings.TELEGRAM_BOT_TOKEN
        if not token:
            raise ValueError("Token de Telegram no configurado")

        self.bot_token = token
        self._bot = Bot(token=self.bot_token)

    def send_message(self, message: str, chat_id: str, parse_mode: str = "Markdown") -> bool:
        """
        Envía un mensaje a Telegram usando python-telegram-bot.

        Args:
            message: Mensaje a enviar
            chat_id: ID del chat (en este bot coincide con el user_id)
            parse_mode: Modo de formato de Telegram

        Returns:
            True si el mensaje se envió correctamente
        """
        if not chat_id:
            logger.error("❌ Chat ID no configurado")
            return False

        try:
            # Usar asyncio para llamar al método asíncrono del bot
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)

            try:
                loop.run_until_complete(
                    self._bot.send_message(
                        chat_id=chat_id,
                        text=message,
                        parse_mode=parse_mode,
                        disable_web_page_preview=True
                    )
                )
                logger.info(f"✅ Mensaje enviado a Telegram (chat {chat_id})")
                return True
            finally:
                loop.close()

        except Exception as e:
            logger.error(f"❌ Error enviando mensaje a Telegram: {e}")
            return False

