"""
Ejecución de ventas de token -> USDC compartida por la estrategia y el keeper.
"""
from decimal import Decimal
from typing import Callable, Optional

from app.config import USDC_DECIMALS, USDC_MINT
from app.domain.entities import Order, OrderSide, OrderStatus, Strategy
from app.domain.errors import InsufficientBalanceError, PriceSlippageError, WalletNotFoundError
from app.domain.interfaces import ChainInspector, UnitOfWork
from app.domain.units import format_units, parse_units
from shared.services.logging_config import get_logger

logger = get_logger(__name__)


class TradeExecutor:
    """
    Vende tokens de una estrategia a USDC.

    Responsabilidades:
    - Limitar la cantidad al saldo real del token en la wallet
    - Rechazar la venta si la cotización queda por debajo del precio mínimo
    - Enviar el swap y devolver la orden pendiente (sin persistir)
    """

    def __init__(self, uow: UnitOfWork, chain: ChainInspector, swap_service_factory: Callable):
        self.uow = uow
        self.chain = chain
        self.swap_service_factory = swap_service_factory

    def sell_token(self, strategy: Strategy, title: str, quantity: Optional[Decimal],
                   min_price: Optional[Decimal], exit: bool) -> Order:
        """
        Args:
            strategy: Estrategia dueña de la posición
            title: Motivo de la venta (solo para logs)
            quantity: Cantidad a vender; None vende todo el saldo
            min_price: Precio mínimo aceptable en USDC por token
            exit: True si es una liquidación (usa el slippage de salida)

        Returns:
            Orden de venta pendiente con el hash del swap

        Raises:
            WalletNotFoundError, InsufficientBalanceError, PriceSlippageError
            y cualquier error del venue o del RPC
        """
        wallet = self.uow.wallets.find_by_user_id(strategy.user_id)
        if wallet is None:
            logger.error(f"❌ {title} - wallet no encontrada para el usuario {strategy.user_id}")
            raise WalletNotFoundError(f"wallet not found, user_id: {strategy.user_id}")

        raw_balance, decimals = self.chain.get_token_balance(strategy.token, wallet.account)
        balance = parse_units(raw_balance, decimals)
        if quantity is None:
            quantity = balance
        elif quantity > balance:
            logger.warning(
                f"⚠️ {title} - cantidad mayor que el saldo, strategy: {strategy.guid}, "
                f"quantity: {quantity}, balance: {balance}"
            )
            quantity = balance

        if quantity <= 0:
            logger.warning(f"⚠️ {title} - sin saldo de {strategy.symbol} para vender")
            raise InsufficientBalanceError(f"no {strategy.symbol} balance to sell")

        swap_service = self.swap_service_factory(strategy.user_id)
        tx = swap_service.quote(strategy.token, USDC_MINT, format_units(quantity, decimals), exit=exit)

        out_amount = parse_units(tx.out_amount(), USDC_DECIMALS)
        quote_price = out_amount / quantity
        if min_price is not None and quote_price < min_price:
            logger.debug(
                f"🔍 {title} - cotización por debajo del mínimo, {strategy.symbol}: "
                f"quote_price={quote_price}, min_price={min_price}"
            )
            raise PriceSlippageError("price too low")

        tx_hash = tx.swap()
        logger.info(
            f"💰 {title} - venta enviada, user: {strategy.user_id}, {quantity} {strategy.symbol} "
            f"-> {out_amount} USDC, hash: {tx_hash}"
        )

        return Order(
            account=tx.signer(),
            token=strategy.token,
            symbol=strategy.symbol,
            strategy_id=strategy.guid,
            type=OrderSide.SELL,
            price=quote_price,
            final_price=quote_price,
            in_amount=quantity,
            out_amount=out_amount,
            status=OrderStatus.PENDING,
            tx_hash=tx_hash,
        )
