"""
Tests para el descifrado de wallets y las notificaciones de Telegram.
"""
from unittest.mock import Mock

import pytest
from cryptography.fernet import Fernet
from solders.keypair import Keypair

from app.infrastructure.notification_service import TelegramNotificationService
from app.infrastructure.wallet_cipher import WalletCipher


class TestWalletCipher:

    @pytest.fixture
    def cipher(self):
        return WalletCipher(Fernet.generate_key().decode())

    def test_load_keypair_roundtrip(self, cipher):
        keypair = Keypair()
        encrypted = cipher.encrypt(str(keypair))

        assert cipher.load_keypair(encrypted).pubkey() == keypair.pubkey()

    def test_invalid_key(self):
        with pytest.raises(ValueError):
            WalletCipher("not-a-fernet-key")


class TestTelegramNotificationService:

    def test_send_uses_user_id_as_chat(self):
        telegram = Mock()
        telegram.send_message.return_value = True

        assert TelegramNotificationService(telegram).send(42, "hola")
        telegram.send_message.assert_called_once_with("hola", chat_id="42", parse_mode="Markdown")

    def test_send_errors_are_swallowed(self):
        telegram = Mock()
        telegram.send_message.side_effect = RuntimeError("network")

        assert TelegramNotificationService(telegram).send(42, "hola") is False
