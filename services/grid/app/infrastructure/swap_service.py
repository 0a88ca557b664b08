"""
Capa de abstracción de swaps.
Resuelve wallet y ajustes del usuario y normaliza cotización/ejecución entre venues.
"""
from dataclasses import dataclass, field
from typing import Dict, Optional

import httpx
from solders.keypair import Keypair

from app.config import USDC_MINT
from app.domain.entities import DexAggregator, PriorityLevel, UserSettings, VenueQuote
from app.domain.errors import WalletNotFoundError
from app.domain.interfaces import UnitOfWork, VenueClient
from app.infrastructure.solana_rpc import SolanaRpcClient
from app.infrastructure.venues import (
    VENUE_FACTORIES, ChainsCache, VenueFactory, build_http_client, create_venue_client,
)
from app.infrastructure.wallet_cipher import WalletCipher
from shared.config.settings import Settings, settings as app_settings
from shared.services.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class SwapContext:
    """Dependencias compartidas por todos los SwapService del proceso."""
    uow: UnitOfWork
    rpc: SolanaRpcClient
    cipher: WalletCipher
    chains_cache: ChainsCache = field(default_factory=ChainsCache)
    config: Settings = field(default_factory=lambda: app_settings)
    venue_factories: Dict[DexAggregator, VenueFactory] = field(default_factory=lambda: dict(VENUE_FACTORIES))
    # Un único pool de conexiones para todos los venues
    http_client: httpx.Client = field(default_factory=build_http_client)

    def close(self):
        self.http_client.close()


class SwapTransaction:
    """Cotización lista para ejecutar con la wallet del usuario."""

    def __init__(self, service: 'SwapService', venue: VenueClient, quote: VenueQuote, signer: str):
        self._service = service
        self._venue = venue
        self._quote = quote
        self._signer = signer

    def signer(self) -> str:
        return self._signer

    def out_amount(self) -> int:
        return self._quote.out_amount

    def slippage_bps(self) -> int:
        return self._quote.slippage_bps

    def swap(self) -> str:
        """Firma y envía la transacción. Devuelve el hash."""
        keypair = self._service.get_keypair()
        user_settings = self._service.get_settings()
        return self._venue.execute(
            self._quote,
            keypair,
            priority_level=PriorityLevel(user_settings.priority_level),
            max_retries=user_settings.max_retries,
            max_lamports=user_settings.max_lamports,
        )


class SwapService:
    """
    Ámbito de swap de un usuario.
    La wallet descifrada y los ajustes se resuelven una vez y se reutilizan.
    """

    def __init__(self, context: SwapContext, user_id: int):
        self.context = context
        self.user_id = user_id
        self._keypair: Optional[Keypair] = None
        self._settings: Optional[UserSettings] = None

    def get_keypair(self) -> Keypair:
        if self._keypair is not None:
            return self._keypair

        wallet = self.context.uow.wallets.find_by_user_id(self.user_id)
        if wallet is None:
            logger.error(f"❌ Wallet no encontrada para el usuario {self.user_id}")
            raise WalletNotFoundError(f"wallet not found, user_id: {self.user_id}")

        try:
            self._keypair = self.context.cipher.load_keypair(wallet.private_key)
        except Exception as e:
            logger.error(f"❌ Error descifrando la clave del usuario {self.user_id}: {e}")
            raise
        return self._keypair

    def get_settings(self) -> UserSettings:
        if self._settings is not None:
            return self._settings

        user_settings = self.context.uow.settings.find_by_user_id(self.user_id)
        if user_settings is None:
            # Valores por defecto del servicio, no se persisten
            config = self.context.config
            user_settings = UserSettings(
                user_id=self.user_id,
                max_retries=config.SOLANA_MAX_RETRIES,
                slippage_bps=config.SOLANA_SLIPPAGE_BPS,
                max_lamports=config.SOLANA_MAX_LAMPORTS,
                priority_level=PriorityLevel(config.SOLANA_PRIORITY_LEVEL),
                dex_aggregator=config.SOLANA_DEX_AGGREGATOR,
            )

        self._settings = user_settings
        return user_settings

    def resolve_slippage_bps(self, output_mint: str, exit: bool = False) -> int:
        """Slippage base; ventas a USDC usan el de venta y, si es salida, el de salida."""
        user_settings = self.get_settings()
        slippage_bps = user_settings.slippage_bps
        if output_mint == USDC_MINT and user_settings.sell_slippage_bps is not None:
            slippage_bps = user_settings.sell_slippage_bps
            if exit and user_settings.exit_slippage_bps is not None:
                slippage_bps = user_settings.exit_slippage_bps
        return slippage_bps

    def quote(self, input_mint: str, output_mint: str, amount: int, exit: bool = False) -> SwapTransaction:
        """
        Cotiza `amount` (unidades atómicas) de input_mint a output_mint en el venue del usuario.

        Raises:
            WalletNotFoundError, UnsupportedAggregatorError, VenueError
        """
        signer = str(self.get_keypair().pubkey())
        user_settings = self.get_settings()
        slippage_bps = self.resolve_slippage_bps(output_mint, exit)

        venue = create_venue_client(
            user_settings.dex_aggregator,
            self.context.rpc,
            self.context.chains_cache,
            http_client=self.context.http_client,
            factories=self.context.venue_factories,
        )
        venue_quote = venue.quote(signer, input_mint, output_mint, amount, slippage_bps)
        logger.debug(
            f"💱 Cotización {input_mint} -> {output_mint}: in={amount}, out={venue_quote.out_amount}, "
            f"slippage={slippage_bps}bps"
        )
        return SwapTransaction(self, venue, venue_quote, signer)
