"""
Registro de venues de liquidez por agregador.
Cada llamada construye un cliente nuevo sobre el cliente HTTP compartido.
"""
from typing import Callable, Dict, Optional

import httpx

from app.config import HTTP_TIMEOUT_SECONDS
from app.domain.entities import DexAggregator
from app.domain.errors import UnsupportedAggregatorError
from app.domain.interfaces import VenueClient
from app.infrastructure.solana_rpc import SolanaRpcClient
from shared.config.settings import settings

from .jupiter_client import JupiterClient
from .okx_client import OkxClient
from .relay_client import ChainsCache, RelayClient

VenueFactory = Callable[[SolanaRpcClient, ChainsCache, httpx.Client], VenueClient]

VENUE_FACTORIES: Dict[DexAggregator, VenueFactory] = {
    DexAggregator.JUPITER: lambda rpc, chains_cache, http_client: JupiterClient(rpc, http_client=http_client),
    DexAggregator.OKX: lambda rpc, chains_cache, http_client: OkxClient(rpc, http_client=http_client),
    DexAggregator.RELAY: lambda rpc, chains_cache, http_client: RelayClient(rpc, chains_cache, http_client=http_client),
}


def build_http_client() -> httpx.Client:
    """Cliente HTTP para los agregadores (timeout y proxy de la configuración)."""
    return httpx.Client(timeout=HTTP_TIMEOUT_SECONDS, proxy=settings.HTTP_PROXY or None)


def create_venue_client(aggregator, rpc: SolanaRpcClient, chains_cache: ChainsCache,
                        http_client: Optional[httpx.Client] = None,
                        factories: Dict[DexAggregator, VenueFactory] = None) -> VenueClient:
    registry = factories if factories is not None else VENUE_FACTORIES
    try:
        key = DexAggregator(aggregator)
    except ValueError:
        raise UnsupportedAggregatorError(f"unsupported dex aggregator: {aggregator}")

    factory = registry.get(key)
    if factory is None:
        raise UnsupportedAggregatorError(f"unsupported dex aggregator: {aggregator}")
    return factory(rpc, chains_cache, http_client)


__all__ = [
    'ChainsCache',
    'JupiterClient',
    'OkxClient',
    'RelayClient',
    'VENUE_FACTORIES',
    'build_http_client',
    'create_venue_client',
]
