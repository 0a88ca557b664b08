"""
Cliente de Relay.link para swaps dentro de la misma cadena (Solana -> Solana).
"""
import math
import threading
from decimal import Decimal
from typing import Callable, Dict, List, Optional

import httpx
from solders.compute_budget import set_compute_unit_price
from solders.keypair import Keypair

from app.config import HTTP_TIMEOUT_SECONDS, QUICKNODE_GAS_TRACKER_URL, RELAY_BASE_URL, RELAY_SOLANA_CHAIN_ID
from app.domain.entities import PriorityLevel, VenueQuote
from app.domain.errors import VenueError
from app.domain.interfaces import VenueClient
from app.infrastructure.solana_rpc import SolanaRpcClient
from app.infrastructure.venues.instructions import build_instruction, decode_hex
from shared.config.settings import settings
from shared.services.logging_config import get_logger

logger = get_logger(__name__)

# Percentil del gas tracker usado para cada nivel de prioridad
PRIORITY_FEE_PERCENTILES = {
    PriorityLevel.MEDIUM: "60",
    PriorityLevel.HIGH: "75",
    PriorityLevel.VERY_HIGH: "85",
}


class ChainsCache:
    """
    Metadatos de cadenas de Relay, descargados una única vez.
    Un fallo de descarga no se cachea: se reintenta en la siguiente consulta.
    """

    def __init__(self, fetch_chains: Optional[Callable[[], List[dict]]] = None):
        self._fetch_chains = fetch_chains or self._download_chains
        self._lock = threading.Lock()
        self._chains: Optional[Dict[int, dict]] = None

    @staticmethod
    def _download_chains() -> List[dict]:
        with httpx.Client(timeout=HTTP_TIMEOUT_SECONDS, proxy=settings.HTTP_PROXY or None) as client:
            response = client.get(f"{RELAY_BASE_URL}/chains")
            response.raise_for_status()
            return response.json().get("chains") or []

    def get(self, chain_id: int) -> Optional[dict]:
        with self._lock:
            if self._chains is None:
                try:
                    chains = self._fetch_chains()
                except Exception as e:
                    logger.error(f"❌ Error descargando cadenas de Relay: {e}")
                    return None
                self._chains = {int(chain["id"]): chain for chain in chains}
            return self._chains.get(chain_id)


class RelayClient(VenueClient):
    """Cotiza con /quote y construye la transacción a partir de sus instrucciones."""

    def __init__(self, rpc: SolanaRpcClient, chains_cache: ChainsCache,
                 http_client: Optional[httpx.Client] = None):
        self.rpc = rpc
        self.chains_cache = chains_cache
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=HTTP_TIMEOUT_SECONDS, proxy=settings.HTTP_PROXY or None)

    def close(self):
        """Cierra el cliente HTTP solo si lo creó este venue."""
        if self._owns_client:
            self._client.close()

    def quote(self, user_account: str, input_mint: str, output_mint: str,
              amount: int, slippage_bps: int) -> VenueQuote:
        chain = self.chains_cache.get(RELAY_SOLANA_CHAIN_ID)
        if chain is None:
            raise VenueError("chain", "unsupported chain")

        payload = {
            "user": user_account,
            "originChainId": chain["id"],
            "destinationChainId": chain["id"],
            "originCurrency": input_mint,
            "destinationCurrency": output_mint,
            "amount": str(amount),
            "tradeType": "EXACT_INPUT",
            "slippageTolerance": slippage_bps,
        }
        response = self._client.post(f"{RELAY_BASE_URL}/quote", json=payload)
        data = response.json()
        if response.status_code != 200:
            raise VenueError(str(data.get("errorCode", response.status_code)), data.get("message", response.text))

        details = data.get("details") or {}
        origin = (details.get("slippageTolerance") or {}).get("origin") or {}
        return VenueQuote(
            out_amount=int(details["currencyOut"]["amount"]),
            slippage_bps=math.ceil(Decimal(str(origin.get("percent", "0")))),
            raw=data,
        )

    def get_priority_fee(self, priority_level: PriorityLevel) -> int:
        """Micro-lamports por unidad de cómputo según el gas tracker de QuickNode."""
        response = self._client.get(QUICKNODE_GAS_TRACKER_URL)
        if response.status_code != 200:
            raise VenueError(str(response.status_code), f"gas tracker: {response.text}")

        percentiles = response.json()["sol"]["per_compute_unit"]["percentiles"]
        key = PRIORITY_FEE_PERCENTILES.get(PriorityLevel(priority_level))
        if key is None:
            return 0
        return int(percentiles[key])

    def execute(self, quote: VenueQuote, keypair: Keypair, priority_level: PriorityLevel,
                max_retries: int, max_lamports: int) -> str:
        steps = quote.raw.get("steps") or []
        if len(steps) != 1 or len(steps[0].get("items") or []) != 1:
            raise VenueError("steps", "instructions not found")
        item_data = steps[0]["items"][0].get("data") or {}
        if not item_data.get("instructions"):
            raise VenueError("steps", "instructions not found")

        blockhash = self.rpc.get_latest_blockhash()
        priority_fee = self.get_priority_fee(priority_level)

        instructions = [set_compute_unit_price(priority_fee)]
        for item in item_data["instructions"]:
            instructions.append(build_instruction(item["programId"], item.get("keys") or [], decode_hex(item.get("data", ""))))
        lookup_tables = self.rpc.get_address_lookup_tables(item_data.get("addressLookupTableAddresses") or [])

        tx = self.rpc.compile_transaction(keypair, instructions, lookup_tables, blockhash)
        tx_hash = self.rpc.send_transaction(tx, max_retries=max_retries)
        logger.info(f"🔁 Swap enviado por Relay: {tx_hash}")
        return tx_hash
