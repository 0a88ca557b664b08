"""
Caso de uso principal: evaluación por tick de una estrategia de grid.

Orden de evaluación (la primera salida que se cumple termina el tick):
1. Protección contra caídas bruscas
2. Salida por precio máximo
3. Toma de ganancias global
4. Objetivo de ganancias absoluto
5. Límite de pérdidas absoluto
6. Toma de ganancias por grilla (no termina el tick)
7. Tendencia de peldaños y alertas fuera de rango
8. Stop-loss por precio mínimo
9. Stop-loss dinámico por grilla
10. Compra de una grilla nueva
"""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from app.config import EXIT_PRICE_DISCOUNT, FIVE_KLINE_WINDOW, USDC_DECIMALS, USDC_MINT
from app.domain.entities import (
    Grid, GridStatus, Ohlc, OpenPosition, Order, OrderSide, OrderStatus, Strategy, StrategyStatus,
)
from app.domain.interfaces import (
    ChainInspector, NotificationService, StrategyScheduler, TickStrategy, UnitOfWork,
)
from app.domain.units import format_price, format_units, parse_units, truncate
from app.application.trade_execution import TradeExecutor
from app.infrastructure.grid_calculator import GridTradingCalculator, MAX_GRID_NUMBER
from shared.services.logging_config import get_logger

logger = get_logger(__name__)

HUNDRED = Decimal(100)


def open_position(grids: List[Grid]) -> OpenPosition:
    """Coste y cantidad agregados de las grillas compradas."""
    position = OpenPosition()
    for grid in grids:
        if grid.status != GridStatus.BOUGHT:
            continue
        position.total_amount += grid.amount
        position.total_quantity += grid.quantity
        position.grids.append(grid)
    return position


def calculate_total_profit(uow: UnitOfWork, strategy: Strategy, grids: List[Grid],
                           latest_price: Decimal) -> Decimal:
    """Beneficio realizado desde el ancla más el no realizado de las grillas compradas."""
    realized = Decimal('0')
    if strategy.first_order_id is not None:
        realized = uow.orders.total_profit(strategy.guid, strategy.first_order_id)

    unrealized = Decimal('0')
    for grid in grids:
        if grid.status != GridStatus.BOUGHT:
            continue
        unrealized += grid.quantity * latest_price - grid.amount
    return realized + unrealized


class GridStrategy(TickStrategy):
    """
    Estrategia de grid para un token contra USDC.
    Se relee la estrategia de la base de datos en cada tick.
    """

    def __init__(
        self,
        strategy_id: str,
        token_address: str,
        uow: UnitOfWork,
        chain: ChainInspector,
        swap_service_factory: Callable,
        notification_service: NotificationService,
        scheduler: StrategyScheduler,
        grid_calculator: Optional[GridTradingCalculator] = None,
        now_fn: Callable[[], datetime] = datetime.utcnow,
    ):
        self._strategy_id = strategy_id
        self._token_address = token_address
        self.uow = uow
        self.chain = chain
        self.swap_service_factory = swap_service_factory
        self.notification_service = notification_service
        self.scheduler = scheduler
        self.grid_calculator = grid_calculator or GridTradingCalculator()
        self.trade_executor = TradeExecutor(uow, chain, swap_service_factory)
        self.now_fn = now_fn

    @property
    def id(self) -> str:
        return self._strategy_id

    @property
    def token_address(self) -> str:
        return self._token_address

    def on_tick(self, ohlcs: List[Ohlc]) -> None:
        if not ohlcs:
            return

        try:
            self._evaluate(ohlcs)
        except Exception as e:
            logger.error(f"❌ Error evaluando la estrategia {self._strategy_id}: {e}")

    def _evaluate(self, ohlcs: List[Ohlc]) -> None:
        strategy = self.uow.strategies.find_by_guid(self._strategy_id)
        if strategy is None:
            logger.warning(f"⚠️ Estrategia {self._strategy_id} no encontrada")
            return
        if strategy.status != StrategyStatus.ACTIVE:
            logger.debug(f"⏸️ Estrategia {self._strategy_id} inactiva")
            return

        grids = self.uow.grids.find_by_strategy_id(strategy.guid)
        latest_price = ohlcs[-1].close

        # 1-5. Salidas de la posición completa
        if self._handle_waterfall_drop(strategy, grids, ohlcs):
            return
        if self._handle_upper_bound_exit(strategy, grids, latest_price):
            return

        total_profit = calculate_total_profit(self.uow, strategy, grids, latest_price)
        if self._handle_global_take_profit(strategy, grids, total_profit, latest_price):
            return
        if self._handle_take_profit_at_target(strategy, grids, total_profit, latest_price):
            return
        if self._handle_stop_loss_at_threshold(strategy, grids, total_profit, latest_price):
            return

        # 6. Toma de ganancias por grilla
        for grid in grids:
            if grid.status == GridStatus.BOUGHT:
                self._handle_take_profit(strategy, grid, latest_price)

        # 7. Tendencia de peldaños
        ratio = strategy.take_profit_ratio / HUNDRED
        grid_levels = self.grid_calculator.generate_grid(
            strategy.lower_price_bound, strategy.upper_price_bound, ratio
        )
        grid_number = self.grid_calculator.calculate_grid_position(
            grid_levels, latest_price, strategy.upper_price_bound
        )

        trend = self.grid_calculator.decode_grid_trend(strategy.grid_trend)
        if grid_number is not None:
            trend = self.grid_calculator.update_grid_trend(trend, grid_number)
        elif latest_price > strategy.upper_price_bound:
            trend = self.grid_calculator.update_grid_trend(trend, MAX_GRID_NUMBER)
        self._save_grid_trend(strategy, trend)

        if grid_number is None:
            logger.debug(
                f"📉 Fuera de rango, strategy: {strategy.guid}, price: {latest_price}, "
                f"L: {strategy.lower_price_bound}, U: {strategy.upper_price_bound}"
            )
            if latest_price > strategy.upper_price_bound:
                self._send_upper_threshold_alert(strategy, latest_price)
            else:
                self._send_lower_threshold_alert(strategy, latest_price)

                # 8. Stop-loss por precio mínimo
                exit_price = strategy.lower_price_bound * (1 - ratio)
                if latest_price < exit_price:
                    self._handle_price_range_stop_loss(strategy, grids, latest_price, exit_price)
            return

        # 9. Stop-loss dinámico
        if strategy.dynamic_stop_loss and strategy.max_grid_limit is not None:
            for grid in grids:
                if grid.status != GridStatus.BOUGHT:
                    continue
                if grid.grid_number - grid_number < strategy.max_grid_limit:
                    continue
                self._handle_dynamic_stop_loss(strategy, grid, grid_number, latest_price)

        # 10. Compra de grilla nueva
        if len(trend) < 2 or not self.grid_calculator.is_min_grid_number(grids, grid_number):
            logger.debug(f"🔍 Tendencia ambigua, strategy: {strategy.guid}, trend: {trend}")
            return
        if any(grid.grid_number == grid_number for grid in grids):
            logger.debug(f"🔍 Grilla #{grid_number} ya ocupada, strategy: {strategy.guid}")
            return

        # El precio de compra aceptado llega hasta el techo de la banda actual
        if grid_number + 1 < len(grid_levels):
            ceiling_price = grid_levels[grid_number + 1]
        else:
            ceiling_price = strategy.upper_price_bound
        self._handle_grid_buy(strategy, ohlcs, grids, grid_number, ceiling_price)

    def _save_grid_trend(self, strategy: Strategy, trend: List[int]) -> None:
        encoded = self.grid_calculator.encode_grid_trend(trend)
        if encoded == (strategy.grid_trend or ""):
            return
        try:
            self.uow.strategies.update_grid_trend(strategy.id, encoded)
            strategy.grid_trend = encoded
        except Exception as e:
            logger.error(f"❌ Error guardando la tendencia de {strategy.guid}: {e}")

    # === LIQUIDACIÓN COMPLETA ===

    def _liquidate(self, strategy: Strategy, grids: List[Grid], latest_price: Decimal, title: str) -> None:
        """
        Vende toda la posición, borra las grillas, limpia el ancla de beneficio
        y desactiva la estrategia. Si la venta falla el error se propaga y
        no se modifica ningún estado.
        """
        position = open_position(grids)

        order = None
        if grids and position.total_quantity > 0:
            min_price = latest_price * (1 - EXIT_PRICE_DISCOUNT)
            order = self.trade_executor.sell_token(strategy, title, None, min_price, exit=True)
            order.grid_buy_cost = position.total_amount

        try:
            with self.uow.transaction() as tx:
                tx.grids.delete_by_strategy_id(strategy.guid)
                if order is not None:
                    tx.orders.save(order)
                tx.strategies.update_first_order_id(strategy.id, None)
                tx.strategies.update_status_by_guid(strategy.guid, StrategyStatus.INACTIVE)
        except Exception as e:
            logger.error(f"❌ {title} - error guardando la liquidación de {strategy.guid}: {e}")

        for grid in position.grids:
            grid.status = GridStatus.SELLING

        self.scheduler.stop_strategy(strategy.guid)
        logger.info(f"🛑 {title} - estrategia {strategy.guid} liquidada y detenida")

    def _notify(self, strategy: Strategy, text: str) -> bool:
        sent = self.notification_service.send(strategy.user_id, text)
        if not sent:
            logger.warning(f"⚠️ No se pudo notificar al usuario {strategy.user_id}")
        return sent

    def _handle_waterfall_drop(self, strategy: Strategy, grids: List[Grid], ohlcs: List[Ohlc]) -> bool:
        if not strategy.drop_on or strategy.candles_to_check <= 0:
            return False
        if strategy.drop_threshold is None or strategy.drop_threshold <= 0:
            return False

        window = ohlcs[-strategy.candles_to_check:]
        open_price = window[0].open
        if open_price <= 0:
            return False

        latest_price = window[-1].close
        drop = (open_price - latest_price) / open_price * HUNDRED
        if drop < strategy.drop_threshold or latest_price > strategy.upper_price_bound:
            return False

        logger.info(
            f"🌊 Protección contra caídas, strategy: {strategy.guid}, price: {latest_price}, "
            f"drop: {truncate(drop, 2)}%, threshold: {strategy.drop_threshold}%"
        )
        self._liquidate(strategy, grids, latest_price, "Protección contra caídas")

        self._notify(strategy, (
            f"🚨*{strategy.symbol}* activó la protección contra caídas!\n\n`{strategy.token}`\n\n"
            f"🎯 Umbral de caída: {truncate(strategy.drop_threshold, 2)}%\n"
            f"💥 Caída actual: {truncate(drop, 2)}%\n\n"
            f"✅ Posición liquidada y estrategia detenida!"
        ))
        return True

    def _handle_upper_bound_exit(self, strategy: Strategy, grids: List[Grid], latest_price: Decimal) -> bool:
        if strategy.upper_bound_exit is None or strategy.upper_bound_exit <= 0:
            return False
        if latest_price <= strategy.upper_bound_exit:
            return False

        logger.info(
            f"🚀 Precio de salida superado, strategy: {strategy.guid}, price: {latest_price}, "
            f"exit: {strategy.upper_bound_exit}"
        )
        self._liquidate(strategy, grids, latest_price, "Salida por precio máximo")

        self._notify(strategy, (
            f"🚨*{strategy.symbol}* superó el precio de salida!\n\n`{strategy.token}`\n\n"
            f"🎯 Precio objetivo: {strategy.upper_bound_exit}U\n"
            f"💥 Precio actual: {format_price(latest_price)}U\n\n"
            f"✅ Posición liquidada y estrategia detenida!"
        ))
        return True

    def _handle_global_take_profit(self, strategy: Strategy, grids: List[Grid],
                                   total_profit: Decimal, latest_price: Decimal) -> bool:
        if strategy.global_take_profit_ratio is None or strategy.global_take_profit_ratio <= 0:
            return False

        position = open_position(grids)
        if position.total_amount == 0:
            return False

        ratio = total_profit / position.total_amount
        if ratio < strategy.global_take_profit_ratio:
            return False

        logger.info(
            f"🎯 Toma de ganancias global, strategy: {strategy.guid}, price: {latest_price}, "
            f"ratio: {truncate(ratio * HUNDRED, 2)}%"
        )
        self._liquidate(strategy, grids, latest_price, "Toma de ganancias global")

        self._notify(strategy, (
            f"🚨*{strategy.symbol}* alcanzó la toma de ganancias global!\n\n`{strategy.token}`\n\n"
            f"🎯 Rentabilidad: {truncate(ratio * HUNDRED, 2)}%\n"
            f"💥 Precio actual: {format_price(latest_price)}U\n\n"
            f"✅ Posición liquidada y estrategia detenida!"
        ))
        return True

    def _handle_take_profit_at_target(self, strategy: Strategy, grids: List[Grid],
                                      total_profit: Decimal, latest_price: Decimal) -> bool:
        if strategy.take_profit_exit is None or strategy.take_profit_exit <= 0:
            return False
        if total_profit < strategy.take_profit_exit:
            return False

        logger.info(
            f"🎯 Objetivo de ganancias alcanzado, strategy: {strategy.guid}, "
            f"profit: {total_profit}, target: {strategy.take_profit_exit}"
        )
        self._liquidate(strategy, grids, latest_price, "Objetivo de ganancias")

        self._notify(strategy, (
            f"🚨*{strategy.symbol}* alcanzó el objetivo de ganancias!\n\n`{strategy.token}`\n\n"
            f"🎯 Objetivo: {strategy.take_profit_exit}U\n"
            f"💥 Ganancia estimada: {truncate(total_profit, 2)}U\n\n"
            f"✅ Posición liquidada y estrategia detenida!"
        ))
        return True

    def _handle_stop_loss_at_threshold(self, strategy: Strategy, grids: List[Grid],
                                       total_profit: Decimal, latest_price: Decimal) -> bool:
        if strategy.stop_loss_exit is None or strategy.stop_loss_exit <= 0:
            return False
        if total_profit > -strategy.stop_loss_exit:
            return False

        logger.info(
            f"🔻 Límite de pérdidas alcanzado, strategy: {strategy.guid}, "
            f"profit: {total_profit}, threshold: {strategy.stop_loss_exit}"
        )
        self._liquidate(strategy, grids, latest_price, "Límite de pérdidas")

        self._notify(strategy, (
            f"🚨*{strategy.symbol}* alcanzó el límite de pérdidas!\n\n`{strategy.token}`\n\n"
            f"🎯 Pérdida: {truncate(total_profit, 2)}U\n"
            f"💥 Precio actual: {format_price(latest_price)}U\n\n"
            f"✅ Posición liquidada y estrategia detenida!"
        ))
        return True

    def _handle_price_range_stop_loss(self, strategy: Strategy, grids: List[Grid],
                                      latest_price: Decimal, exit_price: Decimal) -> None:
        position = open_position(grids)
        if not grids or position.total_quantity <= 0:
            logger.debug(f"🔍 Sin posición que liquidar, strategy: {strategy.guid}")
            return
        if not strategy.enable_auto_exit:
            return

        logger.info(
            f"🔻 Stop-loss por precio mínimo, strategy: {strategy.guid}, price: {latest_price}, "
            f"quantity: {position.total_quantity}"
        )
        try:
            self._liquidate(strategy, grids, latest_price, "Stop-loss por precio mínimo")
        except Exception as e:
            logger.error(f"❌ Stop-loss por precio mínimo fallido, strategy: {strategy.guid}: {e}")
            return

        self._notify(strategy, (
            f"🚨*{strategy.symbol}* cayó por debajo del precio de salida!\n\n`{strategy.token}`\n\n"
            f"🎯 Precio de salida: {format_price(exit_price)}U\n"
            f"💥 Precio actual: {format_price(latest_price)}U\n\n"
            f"✅ Posición liquidada y estrategia detenida!"
        ))

    # === VENTAS POR GRILLA ===

    def _handle_take_profit(self, strategy: Strategy, grid: Grid, latest_price: Decimal) -> None:
        if not strategy.enable_auto_sell or grid.status != GridStatus.BOUGHT:
            return

        min_price = grid.final_price * (1 + strategy.take_profit_ratio / HUNDRED)
        if latest_price < min_price:
            return

        try:
            order = self.trade_executor.sell_token(strategy, "Toma de ganancias", grid.quantity, min_price, exit=False)
        except Exception as e:
            logger.warning(f"⚠️ Toma de ganancias de la grilla #{grid.grid_number} cancelada: {e}")
            return

        order.grid_id = grid.guid
        order.grid_number = grid.grid_number
        order.grid_buy_cost = grid.amount

        try:
            with self.uow.transaction() as tx:
                tx.grids.set_selling_status(grid.guid)
                tx.orders.save(order)
                tx.strategies.clear_last_lower_threshold_alert_time(strategy.id)
                tx.strategies.clear_last_upper_threshold_alert_time(strategy.id)
        except Exception as e:
            logger.error(f"❌ Error guardando la toma de ganancias de la grilla #{grid.grid_number}: {e}")
            return

        grid.status = GridStatus.SELLING
        logger.info(f"💰 Grilla #{grid.grid_number} en venta, strategy: {strategy.guid}, hash: {order.tx_hash}")

    def _handle_dynamic_stop_loss(self, strategy: Strategy, grid: Grid, grid_number: int,
                                  latest_price: Decimal) -> None:
        logger.info(
            f"🔻 Stop-loss dinámico, strategy: {strategy.guid}, grilla #{grid.grid_number}, "
            f"peldaño actual: {grid_number}, price: {latest_price}"
        )
        min_price = latest_price * (1 - EXIT_PRICE_DISCOUNT)
        try:
            order = self.trade_executor.sell_token(strategy, "Stop-loss dinámico", grid.quantity, min_price, exit=True)
        except Exception as e:
            logger.warning(f"⚠️ Stop-loss dinámico de la grilla #{grid.grid_number} cancelado: {e}")
            return

        order.grid_id = grid.guid
        order.grid_number = grid.grid_number
        order.grid_buy_cost = grid.amount

        try:
            with self.uow.transaction() as tx:
                tx.grids.set_selling_status(grid.guid)
                tx.orders.save(order)
        except Exception as e:
            logger.error(f"❌ Error guardando el stop-loss dinámico de la grilla #{grid.grid_number}: {e}")

        grid.status = GridStatus.SELLING

        loss = grid.amount - order.out_amount
        drop = loss / grid.amount * HUNDRED if grid.amount else Decimal('0')
        self._notify(strategy, (
            f"🚨*{strategy.symbol}* grilla `#{grid.grid_number}` ejecutó stop-loss dinámico\n\n"
            f"Caída actual: *{truncate(drop, 2)}%*, pérdida estimada: *{truncate(loss, 2)}U*"
        ))

    # === COMPRAS ===

    def _volume_gates_pass(self, strategy: Strategy, ohlcs: List[Ohlc]) -> bool:
        if strategy.last_kline_volume:
            volume = ohlcs[-1].volume
            if len(ohlcs) > 1 and volume < ohlcs[-2].volume:
                volume = ohlcs[-2].volume
            if volume < strategy.last_kline_volume:
                logger.debug(
                    f"🔍 Compra cancelada por volumen de la última vela, "
                    f"volume: {volume}, require: {strategy.last_kline_volume}"
                )
                return False

        if strategy.five_kline_volume:
            total_volume = sum((ohlc.volume for ohlc in ohlcs[-FIVE_KLINE_WINDOW:]), Decimal('0'))
            if total_volume < strategy.five_kline_volume:
                logger.debug(
                    f"🔍 Compra cancelada por volumen de las últimas {FIVE_KLINE_WINDOW} velas, "
                    f"volume: {total_volume}, require: {strategy.five_kline_volume}"
                )
                return False
        return True

    def _handle_grid_buy(self, strategy: Strategy, ohlcs: List[Ohlc], grids: List[Grid],
                         grid_number: int, ceiling_price: Decimal) -> None:
        if not strategy.enable_auto_buy:
            return
        if strategy.max_grid_limit and strategy.max_grid_limit > 0 and len(grids) >= strategy.max_grid_limit:
            return
        if not self._volume_gates_pass(strategy, ohlcs):
            return

        try:
            decimals = self.chain.get_token_decimals(strategy.token)
            swap_service = self.swap_service_factory(strategy.user_id)
            tx = swap_service.quote(USDC_MINT, strategy.token, format_units(strategy.initial_order_size, USDC_DECIMALS))
        except Exception as e:
            logger.error(f"❌ Error cotizando la compra de {strategy.symbol}: {e}")
            return

        out_quantity = parse_units(tx.out_amount(), decimals)
        if out_quantity <= 0:
            logger.warning(f"⚠️ Cotización vacía para {strategy.symbol}")
            return

        quote_price = strategy.initial_order_size / out_quantity
        logger.debug(
            f"🔍 Compra de grilla, {strategy.symbol}: latest={ohlcs[-1].close}, "
            f"ceiling_price={ceiling_price}, quote_price={quote_price}"
        )
        if quote_price > ceiling_price:
            logger.debug(f"🔍 Cotización por encima de la banda, compra cancelada ({strategy.symbol})")
            return

        try:
            tx_hash = tx.swap()
        except Exception as e:
            tx_hash = getattr(e, 'tx_hash', None)
            logger.error(f"❌ Error enviando la compra de {strategy.symbol}, hash: {tx_hash}: {e}")
            return

        logger.info(
            f"🛒 Compra enviada, user: {strategy.user_id}, strategy: {strategy.guid}, "
            f"grilla #{grid_number}, hash: {tx_hash}"
        )

        grid = Grid(
            guid=str(uuid.uuid4()),
            account=tx.signer(),
            token=strategy.token,
            symbol=strategy.symbol,
            strategy_id=strategy.guid,
            grid_number=grid_number,
            order_price=quote_price,
            final_price=quote_price,
            amount=strategy.initial_order_size,
            quantity=out_quantity,
            status=GridStatus.BUYING,
        )
        order = Order(
            account=grid.account,
            token=grid.token,
            symbol=grid.symbol,
            strategy_id=grid.strategy_id,
            type=OrderSide.BUY,
            price=grid.order_price,
            final_price=grid.final_price,
            in_amount=grid.amount,
            out_amount=grid.quantity,
            status=OrderStatus.PENDING,
            tx_hash=tx_hash,
            grid_id=grid.guid,
            grid_number=grid.grid_number,
        )

        try:
            with self.uow.transaction() as uow:
                uow.grids.save(grid)
                uow.orders.save(order)
        except Exception as e:
            logger.error(f"❌ Error guardando la grilla #{grid_number} y su orden: {e}")

    # === ALERTAS ===

    def _send_upper_threshold_alert(self, strategy: Strategy, latest_price: Decimal) -> None:
        if not strategy.enable_push_notification or strategy.last_upper_threshold_alert_time is not None:
            return

        upper = strategy.upper_price_bound
        percentage = (latest_price - upper) / upper * HUNDRED
        text = (
            f"🚨*{strategy.symbol}* superó el límite superior de precio!\n\n`{strategy.token}`\n\n"
            f"💥 Precio actual: {format_price(latest_price)} (límite: {upper})\n"
            f"📈 Por encima del límite: {truncate(percentage, 2)}%\n\n"
            f"✅ La toma de ganancias sigue activa!\n"
            f"⚠️ Se pausaron las nuevas compras!"
        )
        if not self._notify(strategy, text):
            return

        try:
            self.uow.strategies.update_last_upper_threshold_alert_time(strategy.id, self.now_fn())
        except Exception as e:
            logger.error(f"❌ Error guardando la hora de la alerta superior de {strategy.guid}: {e}")

    def _send_lower_threshold_alert(self, strategy: Strategy, latest_price: Decimal) -> None:
        if not strategy.enable_push_notification or strategy.last_lower_threshold_alert_time is not None:
            return

        lower = strategy.lower_price_bound
        percentage = (lower - latest_price) / lower * HUNDRED
        text = (
            f"🚨*{strategy.symbol}* cayó por debajo del límite inferior de precio!\n\n`{strategy.token}`\n\n"
            f"💥 Precio actual: {format_price(latest_price)} (límite: {lower})\n"
            f"📉 Por debajo del límite: {truncate(percentage, 2)}%\n\n"
            f"✅ La toma de ganancias sigue activa!\n"
            f"⚠️ Se pausaron las nuevas compras!"
        )
        if not self._notify(strategy, text):
            return

        try:
            self.uow.strategies.update_last_lower_threshold_alert_time(strategy.id, self.now_fn())
        except Exception as e:
            logger.error(f"❌ Error guardando la hora de la alerta inferior de {strategy.guid}: {e}")
