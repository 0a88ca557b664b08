"""
Cliente RPC de Solana sobre solana-py.
Consulta saldos y resultados de transacciones, y firma/envía los swaps.
"""
import threading
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed, Finalized, Processed
from solana.rpc.core import RPCException
from solana.rpc.types import TokenAccountOpts, TxOpts
from solders.address_lookup_table_account import AddressLookupTable, AddressLookupTableAccount
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from app.config import HTTP_TIMEOUT_SECONDS
from app.domain.entities import TokenBalanceChange
from app.domain.errors import GridTradingError, ProgramError, SwapExecutionError, TxNotFoundError
from app.domain.interfaces import ChainInspector
from shared.config.settings import settings
from shared.services.logging_config import get_logger

logger = get_logger(__name__)


class SolanaRpcError(GridTradingError):
    """Error devuelto por el nodo RPC o por el transporte."""


def describe_program_error(err) -> str:
    """Nombre del error de `meta.err`."""
    if isinstance(err, dict):
        return ", ".join(err.keys())
    if isinstance(err, str):
        return err
    name = type(err).__name__
    if name == "TransactionErrorFieldless":
        return str(err).rsplit(".", 1)[-1]
    if name.startswith("TransactionError"):
        return name[len("TransactionError"):]
    return str(err)


class SolanaRpcClient(ChainInspector):
    """Implementación de ChainInspector sobre el cliente síncrono de solana-py."""

    def __init__(self, rpc_url: Optional[str] = None, client: Optional[Client] = None):
        self.rpc_url = rpc_url or settings.SOLANA_RPC_URL
        self._client = client or Client(self.rpc_url, timeout=HTTP_TIMEOUT_SECONDS)

        # Metadatos inmutables: decimales por mint y tablas de direcciones
        self._cache_lock = threading.Lock()
        self._decimals_cache: Dict[str, int] = {}
        self._lookup_table_cache: Dict[str, AddressLookupTableAccount] = {}

    def close(self):
        """Cierra la sesión HTTP del proveedor."""
        self._client._provider.session.close()

    def _call(self, method: str, *args, **kwargs):
        try:
            return getattr(self._client, method)(*args, **kwargs)
        except (RPCException, SolanaRpcException) as e:
            raise SolanaRpcError(f"{method}: {e}") from e

    # === CONSULTAS (ChainInspector) ===

    def get_token_balance_changes(self, tx_hash: str, owner: str) -> Dict[str, TokenBalanceChange]:
        resp = self._call(
            "get_transaction",
            Signature.from_string(tx_hash),
            encoding="json",
            commitment=Confirmed,
            max_supported_transaction_version=0,
        )
        if resp.value is None:
            raise TxNotFoundError(f"tx not found: {tx_hash}")

        meta = resp.value.transaction.meta
        if meta is None:
            raise TxNotFoundError(f"tx without meta: {tx_hash}")
        if meta.err is not None:
            raise ProgramError(describe_program_error(meta.err))

        pre_balances = self._owner_balances(meta.pre_token_balances or [], owner)
        post_balances = self._owner_balances(meta.post_token_balances or [], owner)

        changes: Dict[str, TokenBalanceChange] = {}
        for mint in set(pre_balances) | set(post_balances):
            pre = pre_balances.get(mint, Decimal('0'))
            post = post_balances.get(mint, Decimal('0'))
            changes[mint] = TokenBalanceChange(pre=pre, post=post, change=post - pre)
        return changes

    @staticmethod
    def _owner_balances(balances: list, owner: str) -> Dict[str, Decimal]:
        totals: Dict[str, Decimal] = {}
        for item in balances:
            if item.owner is None or str(item.owner) != owner:
                continue
            ui_amount = item.ui_token_amount.ui_amount_string
            if not ui_amount:
                continue
            mint = str(item.mint)
            totals[mint] = totals.get(mint, Decimal('0')) + Decimal(ui_amount)
        return totals

    def get_token_balance(self, mint: str, owner: str) -> Tuple[int, int]:
        resp = self._call(
            "get_token_accounts_by_owner_json_parsed",
            Pubkey.from_string(owner),
            TokenAccountOpts(mint=Pubkey.from_string(mint)),
            commitment=Finalized,
        )
        accounts = resp.value or []

        # Sin cuenta asociada el saldo es cero
        if not accounts:
            return 0, self.get_token_decimals(mint)

        balance = 0
        decimals = None
        for account in accounts:
            token_amount = account.account.data.parsed["info"]["tokenAmount"]
            balance += int(token_amount["amount"])
            decimals = int(token_amount["decimals"])
        return balance, decimals

    def get_token_decimals(self, mint: str) -> int:
        with self._cache_lock:
            if mint in self._decimals_cache:
                return self._decimals_cache[mint]

        resp = self._call("get_token_supply", Pubkey.from_string(mint))
        decimals = int(resp.value.decimals)
        with self._cache_lock:
            self._decimals_cache[mint] = decimals
        return decimals

    def get_latest_blockhash(self) -> Hash:
        resp = self._call("get_latest_blockhash", commitment=Confirmed)
        return resp.value.blockhash

    def get_address_lookup_tables(self, addresses: Sequence[str]) -> List[AddressLookupTableAccount]:
        missing = []
        with self._cache_lock:
            for address in addresses:
                if address not in self._lookup_table_cache:
                    missing.append(address)

        if missing:
            resp = self._call("get_multiple_accounts", [Pubkey.from_string(a) for a in missing])
            for address, account in zip(missing, resp.value):
                if account is None:
                    raise SolanaRpcError(f"lookup table not found: {address}")
                table = AddressLookupTable.deserialize(bytes(account.data))
                with self._cache_lock:
                    self._lookup_table_cache[address] = AddressLookupTableAccount(
                        key=Pubkey.from_string(address), addresses=list(table.addresses)
                    )

        with self._cache_lock:
            return [self._lookup_table_cache[address] for address in addresses]

    # === FIRMA Y ENVÍO ===

    def compile_transaction(self, keypair: Keypair, instructions: List[Instruction],
                            lookup_tables: List[AddressLookupTableAccount],
                            blockhash: Hash) -> VersionedTransaction:
        """Compila un mensaje v0 pagado por `keypair` y lo firma."""
        message = MessageV0.try_compile(keypair.pubkey(), instructions, lookup_tables, blockhash)
        return VersionedTransaction(message, [keypair])

    def send_transaction(self, tx: VersionedTransaction, max_retries: int) -> str:
        """
        Envía la transacción sin simulación previa ni espera de confirmación.
        Si el envío falla, el error lleva la firma para poder rastrearla.
        """
        signature = str(tx.signatures[0])
        opts = TxOpts(skip_preflight=True, skip_confirmation=True,
                      preflight_commitment=Processed, max_retries=max_retries)
        try:
            resp = self._call("send_raw_transaction", bytes(tx), opts=opts)
        except Exception as e:
            raise SwapExecutionError(f"could not send transaction: {e}", tx_hash=signature) from e
        return str(resp.value)
