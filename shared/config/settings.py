"""
Configuración compartida del bot de grid trading en Solana.
Centraliza todas las variables de entorno y configuraciones.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        extra='ignore'  # Ignorar campos extra del .env
    )

    PROJECT_NAME: str = "Sol Grid Bot"
    DATABASE_URL: str = "sqlite:///./gridbot.db"  # Fallback por defecto

    # Configuración para notificaciones de Telegram
    TELEGRAM_BOT_TOKEN: str = ""

    # Nodo RPC de Solana y valores por defecto de los ajustes de usuario
    SOLANA_RPC_URL: str = "https://api.mainnet-beta.solana.com"
    SOLANA_MAX_RETRIES: int = 3
    SOLANA_SLIPPAGE_BPS: int = 250
    SOLANA_MAX_LAMPORTS: int = 1_000_000
    SOLANA_PRIORITY_LEVEL: str = "high"  # 'medium', 'high', 'veryHigh'
    SOLANA_DEX_AGGREGATOR: str = "jup"  # 'jup', 'okx', 'relay'

    # Agregador Jupiter
    JUPITER_URL: str = "https://lite-api.jup.ag"
    JUPITER_API_KEY: str = ""

    # Agregador OKX Web3
    OKX_API_KEY: str = ""
    OKX_SECRET_KEY: str = ""
    OKX_PASSPHRASE: str = ""

    # Clave Fernet para descifrar las claves privadas de las wallets
    WALLET_ENCRYPTION_KEY: str = ""

    # Proxy HTTP opcional para las llamadas a los agregadores
    HTTP_PROXY: str = ""

# Instancia global compartida
settings = Settings()
