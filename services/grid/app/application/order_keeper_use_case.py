"""
Caso de uso para conciliar órdenes pendientes con su resultado en la cadena.
"""
import threading
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict

from app.config import (
    GMGN_TOKEN_URL, ORDER_CONFIRMATION_TIMEOUT, PENDING_ORDERS_BATCH_SIZE, SOLSCAN_TX_URL, USDC_MINT,
)
from app.domain.entities import GridStatus, Order, OrderSide, TokenBalanceChange
from app.domain.errors import ProgramError, TxNotFoundError
from app.domain.interfaces import ChainInspector, NotificationService, UnitOfWork
from app.domain.units import format_price, truncate
from app.application.trade_execution import TradeExecutor
from shared.services.logging_config import get_logger

logger = get_logger(__name__)


class OrderKeeperUseCase:
    """
    Keeper de órdenes pendientes.

    Responsabilidades:
    - Consultar las variaciones de saldo de cada transacción pendiente
    - Cerrar órdenes confirmadas y actualizar grillas, beneficio y ancla
    - Rechazar órdenes fallidas o caducadas y revertir sus grillas
    - Reintentar las liquidaciones rechazadas
    - Notificar cada resultado al dueño de la wallet
    """

    def __init__(
        self,
        uow: UnitOfWork,
        chain: ChainInspector,
        swap_service_factory: Callable,
        notification_service: NotificationService,
        now_fn: Callable[[], datetime] = datetime.utcnow,
    ):
        self.uow = uow
        self.chain = chain
        self.notification_service = notification_service
        self.trade_executor = TradeExecutor(uow, chain, swap_service_factory)
        self.now_fn = now_fn
        # Serializa el job periódico y las ejecuciones manuales
        self._run_lock = threading.Lock()
        logger.info("✅ OrderKeeperUseCase inicializado.")

    def run_once(self) -> Dict[str, int]:
        """
        Procesa un lote de órdenes pendientes (las más antiguas primero).

        Returns:
            Dict con el número de órdenes cerradas, rechazadas y en espera
        """
        with self._run_lock:
            return self._run_batch()

    def _run_batch(self) -> Dict[str, int]:
        summary = {'closed': 0, 'rejected': 0, 'waiting': 0}
        try:
            orders = self.uow.orders.find_pending_orders(PENDING_ORDERS_BATCH_SIZE)
        except Exception as e:
            logger.error(f"❌ Error obteniendo órdenes pendientes: {e}")
            return summary

        now = self.now_fn()
        for order in orders:
            try:
                outcome = self._process_order(order, now)
            except Exception as e:
                logger.error(f"❌ Error procesando la orden {order.id} ({order.tx_hash}): {e}")
                outcome = 'waiting'
            summary[outcome] += 1

        if orders:
            logger.debug(f"🔄 Lote de órdenes procesado: {summary}")
        return summary

    def _process_order(self, order: Order, now: datetime) -> str:
        """Clasifica una orden pendiente. Devuelve 'closed', 'rejected' o 'waiting'."""
        try:
            changes = self.chain.get_token_balance_changes(order.tx_hash, order.account)
        except ProgramError as e:
            return 'rejected' if self._handle_reject_order(order, str(e)) else 'waiting'
        except TxNotFoundError:
            if order.create_time is not None and now - order.create_time > ORDER_CONFIRMATION_TIMEOUT:
                return 'rejected' if self._handle_reject_order(order, "timeout") else 'waiting'
            return 'waiting'
        except Exception as e:
            logger.error(f"❌ Error consultando la transacción {order.tx_hash}: {e}")
            return 'waiting'

        return 'closed' if self._handle_close_order(order, changes) else 'waiting'

    # === CIERRE ===

    def _handle_close_order(self, order: Order, changes: Dict[str, TokenBalanceChange]) -> bool:
        cost = Decimal('0')
        final_price = Decimal('0')

        if order.type == OrderSide.BUY:
            token_change = changes.get(order.token, TokenBalanceChange())
            if token_change.change != 0:
                final_price = order.in_amount / token_change.change
            out_amount = token_change.change
        else:
            usdc_change = changes.get(USDC_MINT, TokenBalanceChange())
            if order.in_amount != 0:
                final_price = usdc_change.change / order.in_amount
            out_amount = usdc_change.change

            if order.grid_buy_cost is not None:
                cost = order.grid_buy_cost
            elif order.grid_id is not None:
                grid = self.uow.grids.find_by_guid(order.grid_id)
                if grid is not None:
                    cost = grid.amount
                else:
                    logger.warning(f"⚠️ Grilla {order.grid_id} no encontrada para la orden {order.id}")

        strategy = self.uow.strategies.find_by_guid(order.strategy_id)

        try:
            with self.uow.transaction() as tx:
                closed = tx.orders.set_closed_status(order.id, final_price, out_amount)
                if closed:
                    if order.grid_id is not None:
                        if order.type == OrderSide.BUY:
                            tx.grids.set_bought_status(order.grid_id, final_price, out_amount)
                        else:
                            tx.grids.delete_by_guid(order.grid_id)

                    if cost != 0:
                        tx.orders.update_profit(order.id, out_amount - cost)

                    if strategy is not None and order.grid_id is not None and strategy.first_order_id is None:
                        tx.strategies.update_first_order_id(strategy.id, order.id)
        except Exception as e:
            logger.error(f"❌ Error cerrando la orden {order.id} ({order.tx_hash}): {e}")
            return False

        if not closed:
            logger.debug(f"🔍 Orden {order.id} ya finalizada, se omite")
            return False

        logger.info(
            f"✅ Orden {order.id} cerrada, type: {order.type.value}, final_price: {final_price}, "
            f"out_amount: {out_amount}, hash: {order.tx_hash}"
        )

        usdc_change = changes.get(USDC_MINT, TokenBalanceChange())
        token_link = f"[{order.symbol}]({GMGN_TOKEN_URL.format(order.token)})"
        tx_link = f"[>>]({SOLSCAN_TX_URL.format(order.tx_hash)})"
        if order.type == OrderSide.BUY:
            self._send_notification(order, (
                f"🟢 Grilla `#{order.grid_number}` compra {truncate(abs(usdc_change.change), 2)}U {token_link} "
                f"💰 Saldo: {truncate(usdc_change.post, 2)}U {tx_link}"
            ), force=False)
        elif order.grid_id is not None:
            self._send_notification(order, (
                f"🔴 Grilla `#{order.grid_number}` venta {truncate(abs(usdc_change.change), 2)}U {token_link} "
                f"💰 Saldo: {truncate(usdc_change.post, 2)}U {tx_link}"
            ), force=False)
        else:
            self._send_notification(order, (
                f"✅ Liquidación de *{order.symbol}* completada, precio: {format_price(final_price)}, "
                f"💰 Importe: {truncate(out_amount, 2)}U {tx_link}"
            ), force=True)
        return True

    # === RECHAZO ===

    def _handle_reject_order(self, order: Order, reason: str) -> bool:
        try:
            with self.uow.transaction() as tx:
                rejected = tx.orders.set_rejected_status(order.id, reason)
                if rejected and order.grid_id is not None:
                    if order.type == OrderSide.BUY:
                        tx.grids.delete_by_guid(order.grid_id)
                    else:
                        tx.grids.update_status_by_guid(order.grid_id, GridStatus.BOUGHT)
        except Exception as e:
            logger.error(f"❌ Error rechazando la orden {order.id} ({order.tx_hash}): {e}")
            return False

        if not rejected:
            logger.debug(f"🔍 Orden {order.id} ya finalizada, se omite")
            return False

        logger.info(f"🚫 Orden {order.id} rechazada, hash: {order.tx_hash}, reason: {reason}")

        token_link = f"[{order.symbol}]({GMGN_TOKEN_URL.format(order.token)})"
        tx_link = f"[>>]({SOLSCAN_TX_URL.format(order.tx_hash)})"
        if order.type == OrderSide.BUY:
            self._send_notification(order, (
                f"❌ Grilla `#{order.grid_number}` compra {truncate(order.in_amount, 2)}U {token_link}, "
                f"motivo: liquidez insuficiente o slippage {tx_link}"
            ), force=False)
        elif order.grid_id is not None:
            self._send_notification(order, (
                f"❌ Grilla `#{order.grid_number}` venta de {order.in_amount} {token_link} fallida, "
                f"motivo: liquidez insuficiente o slippage {tx_link}"
            ), force=False)
        else:
            self._send_notification(order, (
                f"❌ Liquidación de *{order.symbol}* fallida, "
                f"motivo: liquidez insuficiente o slippage {tx_link}"
            ), force=True)
            self._retry_exit(order)
        return True

    def _retry_exit(self, order: Order) -> None:
        """Repite una liquidación rechazada con la misma cantidad y sin precio mínimo."""
        strategy = self.uow.strategies.find_by_guid(order.strategy_id)
        if strategy is None:
            logger.error(f"❌ Estrategia {order.strategy_id} no encontrada para reintentar la liquidación")
            return

        self._send_notification(order, f"♻️ Reintentando la liquidación de *{order.symbol}*", force=True)

        try:
            new_order = self.trade_executor.sell_token(strategy, "Reintento de liquidación", order.in_amount, None, exit=True)
        except Exception as e:
            logger.error(f"❌ Reintento de liquidación fallido, strategy: {order.strategy_id}, token: {order.symbol}: {e}")
            self._send_notification(
                order, f"❌ No se pudo reintentar la liquidación de *{order.symbol}*, vende manualmente", force=True
            )
            return

        new_order.grid_buy_cost = order.grid_buy_cost
        try:
            with self.uow.transaction() as tx:
                tx.orders.save(new_order)
        except Exception as e:
            logger.error(f"❌ Error guardando la orden de reintento ({new_order.tx_hash}): {e}")

    # === NOTIFICACIONES ===

    def _send_notification(self, order: Order, text: str, force: bool) -> None:
        """Notifica al dueño de la cuenta; sin `force` respeta las preferencias de la estrategia."""
        try:
            wallet = self.uow.wallets.find_by_account(order.account)
            if wallet is None:
                logger.error(f"❌ Wallet no encontrada para la cuenta {order.account}")
                return

            if order.strategy_id:
                strategy = self.uow.strategies.find_by_guid(order.strategy_id)
                if strategy is None:
                    logger.error(f"❌ Estrategia {order.strategy_id} no encontrada")
                    return
                if not force and not strategy.enable_push_notification:
                    return
        except Exception as e:
            logger.error(f"❌ Error preparando la notificación de la orden {order.id}: {e}")
            return

        if not wallet.user_id:
            logger.warning("⚠️ Usuario sin cuenta de Telegram, notificación omitida")
            return

        if not self.notification_service.send(wallet.user_id, text):
            logger.warning(f"⚠️ No se pudo notificar al usuario {wallet.user_id}")
