"""
Cliente del agregador DEX de OKX Web3.
Las peticiones privadas se firman con HMAC-SHA256.
"""
import base64
import hashlib
import hmac
import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from urllib.parse import urlencode

import httpx
from solders.keypair import Keypair

from app.config import HTTP_TIMEOUT_SECONDS, OKX_BASE_URL, OKX_SOLANA_CHAIN_INDEX
from app.domain.entities import PriorityLevel, VenueQuote
from app.domain.errors import VenueError
from app.domain.interfaces import VenueClient
from app.infrastructure.solana_rpc import SolanaRpcClient
from app.infrastructure.venues.instructions import build_instruction, decode_base64
from shared.config.settings import settings
from shared.services.logging_config import get_logger

logger = get_logger(__name__)

SWAP_INSTRUCTION_PATH = "/api/v5/dex/aggregator/swap-instruction"


class OkxClient(VenueClient):
    """La cotización devuelve directamente las instrucciones del swap."""

    def __init__(self, rpc: SolanaRpcClient, api_key: Optional[str] = None,
                 secret_key: Optional[str] = None, passphrase: Optional[str] = None,
                 http_client: Optional[httpx.Client] = None):
        self.rpc = rpc
        self.api_key = api_key or settings.OKX_API_KEY
        self.secret_key = secret_key or settings.OKX_SECRET_KEY
        self.passphrase = passphrase or settings.OKX_PASSPHRASE
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=HTTP_TIMEOUT_SECONDS, proxy=settings.HTTP_PROXY or None)

    def close(self):
        """Cierra el cliente HTTP solo si lo creó este venue."""
        if self._owns_client:
            self._client.close()

    def sign(self, timestamp: str, method: str, request_path: str, body: str = "") -> str:
        """Firma base64(HMAC-SHA256(timestamp + método + ruta + cuerpo))."""
        message = f"{timestamp}{method}{request_path}{body}"
        digest = hmac.new(self.secret_key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).digest()
        return base64.b64encode(digest).decode()

    @staticmethod
    def _timestamp() -> str:
        now = datetime.now(timezone.utc)
        return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"

    def _get(self, path: str, params: dict) -> dict:
        request_path = f"{path}?{urlencode(params)}"
        timestamp = self._timestamp()
        headers = {
            "OK-ACCESS-KEY": self.api_key,
            "OK-ACCESS-PASSPHRASE": self.passphrase,
            "OK-ACCESS-SIGN": self.sign(timestamp, "GET", request_path),
            "OK-ACCESS-TIMESTAMP": timestamp,
        }
        response = self._client.get(f"{OKX_BASE_URL}{request_path}", headers=headers)
        if response.status_code != 200:
            raise VenueError(str(response.status_code), response.text)

        body = response.json()
        if str(body.get("code")) != "0":
            raise VenueError(str(body.get("code")), body.get("msg", ""))
        return body.get("data")

    def quote(self, user_account: str, input_mint: str, output_mint: str,
              amount: int, slippage_bps: int) -> VenueQuote:
        params = {
            "chainIndex": OKX_SOLANA_CHAIN_INDEX,
            "amount": str(amount),
            "fromTokenAddress": input_mint,
            "toTokenAddress": output_mint,
            "slippage": str(Decimal(slippage_bps) / Decimal(10000)),
            "userWalletAddress": user_account,
        }
        data = self._get(SWAP_INSTRUCTION_PATH, params)
        if isinstance(data, list):
            data = data[0] if data else {}

        router_result = data.get("routerResult") or {}
        tx_info = data.get("tx") or {}
        slippage = Decimal(str(tx_info.get("slippage", "0")))

        return VenueQuote(
            out_amount=int(router_result["toTokenAmount"]),
            slippage_bps=math.ceil(slippage * 10000),
            raw=data,
        )

    def execute(self, quote: VenueQuote, keypair: Keypair, priority_level: PriorityLevel,
                max_retries: int, max_lamports: int) -> str:
        blockhash = self.rpc.get_latest_blockhash()

        instructions = [
            build_instruction(item["programId"], item.get("accounts") or [], decode_base64(item.get("data", "")))
            for item in quote.raw.get("instructionLists") or []
        ]
        lookup_tables = self.rpc.get_address_lookup_tables(quote.raw.get("addressLookupTableAccount") or [])

        tx = self.rpc.compile_transaction(keypair, instructions, lookup_tables, blockhash)
        tx_hash = self.rpc.send_transaction(tx, max_retries=max_retries)
        logger.info(f"🅾️ Swap enviado por OKX: {tx_hash}")
        return tx_hash
