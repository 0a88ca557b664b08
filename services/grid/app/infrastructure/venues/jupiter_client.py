"""
Cliente del agregador Jupiter (API swap v1).
"""
import base64
from typing import Optional

import httpx
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from app.config import HTTP_TIMEOUT_SECONDS
from app.domain.entities import PriorityLevel, VenueQuote
from app.domain.errors import VenueError
from app.domain.interfaces import VenueClient
from app.infrastructure.solana_rpc import SolanaRpcClient
from shared.config.settings import settings
from shared.services.logging_config import get_logger

logger = get_logger(__name__)


class JupiterClient(VenueClient):
    """Cotiza con /quote y obtiene de /swap la transacción lista para firmar."""

    def __init__(self, rpc: SolanaRpcClient, base_url: Optional[str] = None,
                 api_key: Optional[str] = None, http_client: Optional[httpx.Client] = None):
        self.rpc = rpc
        self.base_url = (base_url or settings.JUPITER_URL).rstrip('/')
        self.api_key = api_key if api_key is not None else settings.JUPITER_API_KEY
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=HTTP_TIMEOUT_SECONDS, proxy=settings.HTTP_PROXY or None)

    def close(self):
        """Cierra el cliente HTTP solo si lo creó este venue."""
        if self._owns_client:
            self._client.close()

    def _headers(self) -> dict:
        if not self.api_key:
            return {}
        return {"x-api-key": self.api_key}

    def _check(self, response: httpx.Response) -> dict:
        if response.status_code != 200:
            raise VenueError(str(response.status_code), response.text)
        return response.json()

    def quote(self, user_account: str, input_mint: str, output_mint: str,
              amount: int, slippage_bps: int) -> VenueQuote:
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": slippage_bps,
            "swapMode": "ExactIn",
        }
        response = self._client.get(f"{self.base_url}/swap/v1/quote", params=params, headers=self._headers())
        data = self._check(response)
        if "outAmount" not in data:
            raise VenueError("quote", data.get("error", "missing outAmount"))

        return VenueQuote(
            out_amount=int(data["outAmount"]),
            slippage_bps=int(data.get("slippageBps", slippage_bps)),
            raw=data,
        )

    def execute(self, quote: VenueQuote, keypair: Keypair, priority_level: PriorityLevel,
                max_retries: int, max_lamports: int) -> str:
        payload = {
            "userPublicKey": str(keypair.pubkey()),
            "quoteResponse": quote.raw,
            "dynamicComputeUnitLimit": True,
            "prioritizationFeeLamports": {
                "priorityLevelWithMaxLamports": {
                    "maxLamports": max_lamports,
                    "priorityLevel": PriorityLevel(priority_level).value,
                },
            },
        }
        response = self._client.post(f"{self.base_url}/swap/v1/swap", json=payload, headers=self._headers())
        data = self._check(response)

        if data.get("simulationError"):
            raise VenueError("simulation", str(data["simulationError"]))
        if not data.get("swapTransaction"):
            raise VenueError("swap", "missing swapTransaction")

        unsigned = VersionedTransaction.from_bytes(base64.b64decode(data["swapTransaction"]))
        signed = VersionedTransaction(unsigned.message, [keypair])

        tx_hash = self.rpc.send_transaction(signed, max_retries=max_retries)
        logger.info(f"🪐 Swap enviado por Jupiter: {tx_hash}")
        return tx_hash
