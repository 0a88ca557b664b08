"""
Repositorios de base de datos para el servicio Grid.
"""
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Callable, ContextManager, List, Optional

from sqlalchemy.orm import Session

from app.domain.entities import (
    DexAggregator, Grid, GridStatus, Order, OrderSide, OrderStatus, PriorityLevel,
    Strategy, StrategyStatus, UserSettings, Wallet,
)
from app.domain.interfaces import (
    GridRepository, OrderRepository, SettingsRepository, StrategyRepository,
    UnitOfWork, WalletRepository,
)
from shared.database import models
from shared.database.session import SessionLocal
from shared.services.logging_config import get_logger

logger = get_logger(__name__)

SessionScope = Callable[[], ContextManager[Session]]


class DatabaseStrategyRepository(StrategyRepository):
    """Estrategias sobre SQLAlchemy."""

    def __init__(self, session_scope: SessionScope):
        self._session_scope = session_scope

    def find_by_guid(self, guid: str) -> Optional[Strategy]:
        with self._session_scope() as db:
            row = db.query(models.Strategy).filter(models.Strategy.guid == guid).first()
            return self._map_strategy_to_entity(row) if row else None

    def find_all_active(self, offset: int = 0, limit: int = 100) -> List[Strategy]:
        with self._session_scope() as db:
            rows = db.query(models.Strategy).filter(
                models.Strategy.status == StrategyStatus.ACTIVE.value
            ).order_by(models.Strategy.id.asc()).offset(offset).limit(limit).all()
            return [self._map_strategy_to_entity(row) for row in rows]

    def update_grid_trend(self, strategy_id: int, grid_trend: str) -> None:
        self._update(strategy_id, {models.Strategy.grid_trend: grid_trend})

    def update_last_lower_threshold_alert_time(self, strategy_id: int, when: datetime) -> None:
        self._update(strategy_id, {models.Strategy.last_lower_threshold_alert_time: when})

    def update_last_upper_threshold_alert_time(self, strategy_id: int, when: datetime) -> None:
        self._update(strategy_id, {models.Strategy.last_upper_threshold_alert_time: when})

    def clear_last_lower_threshold_alert_time(self, strategy_id: int) -> None:
        self._update(strategy_id, {models.Strategy.last_lower_threshold_alert_time: None})

    def clear_last_upper_threshold_alert_time(self, strategy_id: int) -> None:
        self._update(strategy_id, {models.Strategy.last_upper_threshold_alert_time: None})

    def update_first_order_id(self, strategy_id: int, order_id: Optional[int]) -> None:
        self._update(strategy_id, {models.Strategy.first_order_id: order_id})

    def update_status_by_guid(self, guid: str, status: StrategyStatus) -> None:
        with self._session_scope() as db:
            db.query(models.Strategy).filter(models.Strategy.guid == guid).update(
                {models.Strategy.status: StrategyStatus(status).value,
                 models.Strategy.update_time: datetime.utcnow()},
                synchronize_session=False,
            )

    def _update(self, strategy_id: int, values: dict) -> None:
        values[models.Strategy.update_time] = datetime.utcnow()
        with self._session_scope() as db:
            db.query(models.Strategy).filter(models.Strategy.id == strategy_id).update(
                values, synchronize_session=False
            )

    def _map_strategy_to_entity(self, row: models.Strategy) -> Strategy:
        """Convierte un modelo de BD a entidad de dominio."""
        return Strategy(
            id=row.id,
            guid=row.guid,
            user_id=row.user_id,
            token=row.token,
            symbol=row.symbol,
            take_profit_ratio=row.take_profit_ratio,
            upper_price_bound=row.upper_price_bound,
            lower_price_bound=row.lower_price_bound,
            initial_order_size=row.initial_order_size,
            status=StrategyStatus(row.status),
            martin_factor=row.martin_factor,
            max_grid_limit=row.max_grid_limit,
            last_kline_volume=row.last_kline_volume,
            five_kline_volume=row.five_kline_volume,
            first_order_id=row.first_order_id,
            upper_bound_exit=row.upper_bound_exit,
            stop_loss_exit=row.stop_loss_exit,
            take_profit_exit=row.take_profit_exit,
            global_take_profit_ratio=row.global_take_profit_ratio,
            dynamic_stop_loss=bool(row.dynamic_stop_loss),
            drop_on=bool(row.drop_on),
            candles_to_check=row.candles_to_check or 0,
            drop_threshold=row.drop_threshold,
            enable_auto_buy=bool(row.enable_auto_buy),
            enable_auto_sell=bool(row.enable_auto_sell),
            enable_auto_exit=bool(row.enable_auto_exit),
            enable_push_notification=bool(row.enable_push_notification),
            grid_trend=row.grid_trend,
            last_lower_threshold_alert_time=row.last_lower_threshold_alert_time,
            last_upper_threshold_alert_time=row.last_upper_threshold_alert_time,
            create_time=row.create_time,
            update_time=row.update_time,
        )


class DatabaseGridRepository(GridRepository):
    """Grillas sobre SQLAlchemy."""

    def __init__(self, session_scope: SessionScope):
        self._session_scope = session_scope

    def find_by_strategy_id(self, strategy_id: str) -> List[Grid]:
        with self._session_scope() as db:
            rows = db.query(models.Grid).filter(
                models.Grid.strategy_id == strategy_id
            ).order_by(models.Grid.grid_number.asc()).all()
            return [self._map_grid_to_entity(row) for row in rows]

    def find_by_guid(self, guid: str) -> Optional[Grid]:
        with self._session_scope() as db:
            row = db.query(models.Grid).filter(models.Grid.guid == guid).first()
            return self._map_grid_to_entity(row) if row else None

    def save(self, grid: Grid) -> Grid:
        with self._session_scope() as db:
            row = models.Grid(
                guid=grid.guid,
                account=grid.account,
                token=grid.token,
                symbol=grid.symbol,
                strategy_id=grid.strategy_id,
                grid_number=grid.grid_number,
                order_price=grid.order_price,
                final_price=grid.final_price,
                amount=grid.amount,
                quantity=grid.quantity,
                status=GridStatus(grid.status).value,
            )
            db.add(row)
            db.flush()
            return self._map_grid_to_entity(row)

    def set_selling_status(self, guid: str) -> None:
        self.update_status_by_guid(guid, GridStatus.SELLING)

    def set_bought_status(self, guid: str, final_price: Decimal, quantity: Decimal) -> None:
        with self._session_scope() as db:
            db.query(models.Grid).filter(models.Grid.guid == guid).update(
                {models.Grid.status: GridStatus.BOUGHT.value,
                 models.Grid.final_price: final_price,
                 models.Grid.quantity: quantity,
                 models.Grid.update_time: datetime.utcnow()},
                synchronize_session=False,
            )

    def update_status_by_guid(self, guid: str, status: GridStatus) -> None:
        with self._session_scope() as db:
            db.query(models.Grid).filter(models.Grid.guid == guid).update(
                {models.Grid.status: GridStatus(status).value,
                 models.Grid.update_time: datetime.utcnow()},
                synchronize_session=False,
            )

    def delete_by_guid(self, guid: str) -> int:
        with self._session_scope() as db:
            return db.query(models.Grid).filter(models.Grid.guid == guid).delete(
                synchronize_session=False
            )

    def delete_by_strategy_id(self, strategy_id: str) -> int:
        with self._session_scope() as db:
            return db.query(models.Grid).filter(models.Grid.strategy_id == strategy_id).delete(
                synchronize_session=False
            )

    def _map_grid_to_entity(self, row: models.Grid) -> Grid:
        return Grid(
            id=row.id,
            guid=row.guid,
            account=row.account,
            token=row.token,
            symbol=row.symbol,
            strategy_id=row.strategy_id,
            grid_number=row.grid_number,
            order_price=row.order_price,
            final_price=row.final_price,
            amount=row.amount,
            quantity=row.quantity,
            status=GridStatus(row.status),
        )


class DatabaseOrderRepository(OrderRepository):
    """Órdenes sobre SQLAlchemy."""

    def __init__(self, session_scope: SessionScope):
        self._session_scope = session_scope

    def save(self, order: Order) -> Order:
        with self._session_scope() as db:
            row = models.Order(
                account=order.account,
                token=order.token,
                symbol=order.symbol,
                grid_id=order.grid_id,
                grid_number=order.grid_number,
                grid_buy_cost=order.grid_buy_cost,
                strategy_id=order.strategy_id,
                type=OrderSide(order.type).value,
                price=order.price,
                final_price=order.final_price,
                in_amount=order.in_amount,
                out_amount=order.out_amount,
                status=OrderStatus(order.status).value,
                tx_hash=order.tx_hash,
                reason=order.reason or '',
                profit=order.profit,
            )
            if order.create_time is not None:
                row.create_time = order.create_time
            db.add(row)
            db.flush()
            return self._map_order_to_entity(row)

    def find_by_id(self, order_id: int) -> Optional[Order]:
        with self._session_scope() as db:
            row = db.query(models.Order).filter(models.Order.id == order_id).first()
            return self._map_order_to_entity(row) if row else None

    def total_profit(self, strategy_id: str, first_order_id: int) -> Decimal:
        with self._session_scope() as db:
            profits = db.query(models.Order.profit).filter(
                models.Order.strategy_id == strategy_id,
                models.Order.id >= first_order_id,
            ).all()
            return sum((profit for (profit,) in profits if profit is not None), Decimal('0'))

    def find_pending_orders(self, limit: int) -> List[Order]:
        with self._session_scope() as db:
            rows = db.query(models.Order).filter(
                models.Order.status == OrderStatus.PENDING.value
            ).order_by(models.Order.id.asc()).limit(limit).all()
            return [self._map_order_to_entity(row) for row in rows]

    def update_profit(self, order_id: int, profit: Decimal) -> None:
        self._update(order_id, {models.Order.profit: profit})

    def set_closed_status(self, order_id: int, final_price: Decimal, out_amount: Decimal) -> bool:
        return self._update(order_id, {
            models.Order.status: OrderStatus.CLOSED.value,
            models.Order.final_price: final_price,
            models.Order.out_amount: out_amount,
        }, only_pending=True) > 0

    def set_rejected_status(self, order_id: int, reason: str) -> bool:
        return self._update(order_id, {
            models.Order.status: OrderStatus.REJECTED.value,
            models.Order.reason: reason[:255],
        }, only_pending=True) > 0

    def _update(self, order_id: int, values: dict, only_pending: bool = False) -> int:
        values[models.Order.update_time] = datetime.utcnow()
        with self._session_scope() as db:
            query = db.query(models.Order).filter(models.Order.id == order_id)
            if only_pending:
                query = query.filter(models.Order.status == OrderStatus.PENDING.value)
            return query.update(values, synchronize_session=False)

    def _map_order_to_entity(self, row: models.Order) -> Order:
        return Order(
            id=row.id,
            account=row.account,
            token=row.token,
            symbol=row.symbol,
            grid_id=row.grid_id,
            grid_number=row.grid_number,
            grid_buy_cost=row.grid_buy_cost,
            strategy_id=row.strategy_id,
            type=OrderSide(row.type),
            price=row.price,
            final_price=row.final_price,
            in_amount=row.in_amount,
            out_amount=row.out_amount,
            status=OrderStatus(row.status),
            tx_hash=row.tx_hash,
            reason=row.reason or '',
            profit=row.profit,
            create_time=row.create_time,
        )


class DatabaseSettingsRepository(SettingsRepository):

    def __init__(self, session_scope: SessionScope):
        self._session_scope = session_scope

    def find_by_user_id(self, user_id: int) -> Optional[UserSettings]:
        with self._session_scope() as db:
            row = db.query(models.UserSettings).filter(models.UserSettings.user_id == user_id).first()
            if row is None:
                return None
            return UserSettings(
                id=row.id,
                user_id=row.user_id,
                max_retries=row.max_retries,
                slippage_bps=row.slippage_bps,
                sell_slippage_bps=row.sell_slippage_bps,
                exit_slippage_bps=row.exit_slippage_bps,
                max_lamports=row.max_lamports,
                priority_level=PriorityLevel(row.priority_level),
                dex_aggregator=DexAggregator(row.dex_aggregator),
            )


class DatabaseWalletRepository(WalletRepository):

    def __init__(self, session_scope: SessionScope):
        self._session_scope = session_scope

    def find_by_user_id(self, user_id: int) -> Optional[Wallet]:
        with self._session_scope() as db:
            row = db.query(models.Wallet).filter(models.Wallet.user_id == user_id).first()
            return self._map_wallet_to_entity(row) if row else None

    def find_by_account(self, account: str) -> Optional[Wallet]:
        with self._session_scope() as db:
            row = db.query(models.Wallet).filter(models.Wallet.account == account).first()
            return self._map_wallet_to_entity(row) if row else None

    def _map_wallet_to_entity(self, row: models.Wallet) -> Wallet:
        return Wallet(id=row.id, user_id=row.user_id, account=row.account, private_key=row.private_key)


class SqlAlchemyUnitOfWork(UnitOfWork):
    """
    Unidad de trabajo sobre una fábrica de sesiones de SQLAlchemy.

    Sin sesión propia, cada llamada a un repositorio abre, confirma y cierra su
    sesión. La instancia devuelta por `transaction()` comparte una única sesión
    que se confirma al salir del bloque o se revierte si hay una excepción.
    """

    def __init__(self, session_factory=SessionLocal, session: Optional[Session] = None):
        self._session_factory = session_factory
        self._session = session

        self.strategies = DatabaseStrategyRepository(self._session_scope)
        self.grids = DatabaseGridRepository(self._session_scope)
        self.orders = DatabaseOrderRepository(self._session_scope)
        self.settings = DatabaseSettingsRepository(self._session_scope)
        self.wallets = DatabaseWalletRepository(self._session_scope)

    @contextmanager
    def _session_scope(self):
        if self._session is not None:
            yield self._session
            return

        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @contextmanager
    def transaction(self):
        if self._session is not None:
            yield self
            return

        db = self._session_factory()
        try:
            yield SqlAlchemyUnitOfWork(self._session_factory, session=db)
            db.commit()
        except Exception as e:
            logger.error(f"❌ Transacción revertida: {e}")
            db.rollback()
            raise
        finally:
            db.close()
