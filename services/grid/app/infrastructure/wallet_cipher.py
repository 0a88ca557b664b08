"""
Descifrado de las claves privadas de las wallets de usuario.
"""
from typing import Optional

from cryptography.fernet import Fernet
from solders.keypair import Keypair

from shared.config.settings import settings


class WalletCipher:
    """Descifra claves privadas (base58) guardadas con Fernet."""

    def __init__(self, encryption_key: Optional[str] = None):
        key = encryption_key or settings.WALLET_ENCRYPTION_KEY
        if not key:
            raise ValueError("WALLET_ENCRYPTION_KEY no configurada")

        try:
            self.cipher = Fernet(key.encode() if isinstance(key, str) else key)
        except Exception as e:
            raise ValueError(f"WALLET_ENCRYPTION_KEY con formato inválido: {e}")

    def encrypt(self, private_key: str) -> str:
        return self.cipher.encrypt(private_key.encode()).decode()

    def decrypt(self, encrypted_value: str) -> str:
        return self.cipher.decrypt(encrypted_value.encode()).decode()

    def load_keypair(self, encrypted_value: str) -> Keypair:
        """Descifra la clave y construye el Keypair firmante."""
        return Keypair.from_base58_string(self.decrypt(encrypted_value))
