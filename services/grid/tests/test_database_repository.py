"""
Tests para los repositorios SQLAlchemy y la unidad de trabajo.
"""
import uuid
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import orm

from app.domain.entities import (
    DexAggregator, Grid, GridStatus, Order, OrderSide, OrderStatus, PriorityLevel, StrategyStatus,
)
from shared.database import models
from conftest import ACCOUNT, TOKEN, USER_ID


def _grid(strategy_guid, grid_number=0):
    return Grid(
        guid=str(uuid.uuid4()), account=ACCOUNT, token=TOKEN, symbol="SOL", strategy_id=strategy_guid,
        grid_number=grid_number, order_price=Decimal("1.05"), final_price=Decimal("1.05"),
        amount=Decimal("10"), quantity=Decimal("9.523809523"), status=GridStatus.BUYING,
    )


def _order(strategy_guid, grid=None, profit=None):
    return Order(
        account=ACCOUNT, token=TOKEN, symbol="SOL", strategy_id=strategy_guid, type=OrderSide.BUY,
        price=Decimal("1.05"), final_price=Decimal("1.05"), in_amount=Decimal("10"),
        out_amount=Decimal("9.523809523"), status=OrderStatus.PENDING, tx_hash="hash",
        grid_id=grid.guid if grid else None, grid_number=grid.grid_number if grid else None, profit=profit,
    )


class TestStrategyRepository:

    def test_find_all_active_paginates_by_id(self, uow, make_strategy):
        guids = [make_strategy(token=f"TOKEN{i}") for i in range(3)]
        make_strategy(token="OFF", status="inactive")

        first_page = uow.strategies.find_all_active(offset=0, limit=2)
        second_page = uow.strategies.find_all_active(offset=2, limit=2)

        assert [s.guid for s in first_page] == guids[:2]
        assert [s.guid for s in second_page] == guids[2:]

    def test_decimal_fields_keep_precision(self, uow, make_strategy):
        guid = make_strategy(lower_price_bound=Decimal("0.000001234567891"))

        strategy = uow.strategies.find_by_guid(guid)

        assert strategy.lower_price_bound == Decimal("0.000001234567891")
        assert strategy.take_profit_ratio == Decimal("5")
        assert strategy.status == StrategyStatus.ACTIVE

    def test_alert_times_and_trend(self, uow, make_strategy):
        guid = make_strategy()
        strategy_id = uow.strategies.find_by_guid(guid).id
        when = datetime(2025, 1, 1, 8, 30)

        uow.strategies.update_grid_trend(strategy_id, "3:2")
        uow.strategies.update_last_lower_threshold_alert_time(strategy_id, when)
        uow.strategies.update_last_upper_threshold_alert_time(strategy_id, when)
        uow.strategies.clear_last_upper_threshold_alert_time(strategy_id)

        strategy = uow.strategies.find_by_guid(guid)
        assert strategy.grid_trend == "3:2"
        assert strategy.last_lower_threshold_alert_time == when
        assert strategy.last_upper_threshold_alert_time is None

    def test_update_status_by_guid(self, uow, make_strategy):
        guid = make_strategy()

        uow.strategies.update_status_by_guid(guid, StrategyStatus.INACTIVE)

        assert uow.strategies.find_by_guid(guid).status == StrategyStatus.INACTIVE
        assert uow.strategies.find_all_active() == []


class TestGridRepository:

    def test_save_and_status_transitions(self, uow, make_strategy):
        guid = make_strategy()
        grid = uow.grids.save(_grid(guid))

        uow.grids.set_bought_status(grid.guid, Decimal("1.04"), Decimal("9.6"))
        bought = uow.grids.find_by_guid(grid.guid)
        assert bought.status == GridStatus.BOUGHT
        assert bought.final_price == Decimal("1.04")
        assert bought.quantity == Decimal("9.6")
        assert bought.order_price == Decimal("1.05")

        uow.grids.set_selling_status(grid.guid)
        assert uow.grids.find_by_guid(grid.guid).status == GridStatus.SELLING

    def test_find_by_strategy_orders_by_grid_number(self, uow, make_strategy):
        guid = make_strategy()
        uow.grids.save(_grid(guid, 3))
        uow.grids.save(_grid(guid, 1))

        assert [g.grid_number for g in uow.grids.find_by_strategy_id(guid)] == [1, 3]

    def test_one_grid_per_rung(self, uow, make_strategy):
        guid = make_strategy()
        uow.grids.save(_grid(guid, 1))

        with pytest.raises(Exception):
            uow.grids.save(_grid(guid, 1))

    def test_delete(self, uow, make_strategy):
        guid = make_strategy()
        first = uow.grids.save(_grid(guid, 0))
        uow.grids.save(_grid(guid, 1))

        assert uow.grids.delete_by_guid(first.guid) == 1
        assert uow.grids.delete_by_strategy_id(guid) == 1
        assert uow.grids.find_by_strategy_id(guid) == []


class TestOrderRepository:

    def test_pending_orders_oldest_first(self, uow, make_strategy):
        guid = make_strategy()
        first = uow.orders.save(_order(guid))
        second = uow.orders.save(_order(guid))
        uow.orders.set_closed_status(first.id, Decimal("1.1"), Decimal("9"))

        pending = uow.orders.find_pending_orders(10)

        assert [o.id for o in pending] == [second.id]
        closed = uow.orders.find_by_id(first.id)
        assert closed.status == OrderStatus.CLOSED
        assert closed.final_price == Decimal("1.1")
        assert closed.create_time is not None

    def test_total_profit_from_anchor(self, uow, make_strategy):
        guid = make_strategy()
        uow.orders.save(_order(guid, profit=Decimal("-3")))
        anchor = uow.orders.save(_order(guid, profit=Decimal("1.5")))
        uow.orders.save(_order(guid))
        uow.orders.save(_order(guid, profit=Decimal("2.25")))

        assert uow.orders.total_profit(guid, anchor.id) == Decimal("3.75")
        assert uow.orders.total_profit("other", anchor.id) == Decimal("0")

    def test_rejected_reason(self, uow, make_strategy):
        guid = make_strategy()
        order = uow.orders.save(_order(guid))

        uow.orders.set_rejected_status(order.id, "timeout")

        rejected = uow.orders.find_by_id(order.id)
        assert rejected.status == OrderStatus.REJECTED
        assert rejected.reason == "timeout"

    def test_terminal_status_only_from_pending(self, uow, make_strategy):
        guid = make_strategy()
        order = uow.orders.save(_order(guid))

        assert uow.orders.set_closed_status(order.id, Decimal("1.1"), Decimal("9")) is True
        assert uow.orders.set_rejected_status(order.id, "timeout") is False
        assert uow.orders.set_closed_status(order.id, Decimal("2"), Decimal("1")) is False

        stored = uow.orders.find_by_id(order.id)
        assert stored.status == OrderStatus.CLOSED
        assert stored.final_price == Decimal("1.1")
        assert stored.reason == ""


class TestUnitOfWork:

    def test_transaction_commits_together(self, uow, make_strategy):
        guid = make_strategy()
        grid = _grid(guid)

        with uow.transaction() as tx:
            tx.grids.save(grid)
            tx.orders.save(_order(guid, grid))

        assert uow.grids.find_by_guid(grid.guid) is not None
        assert len(uow.orders.find_pending_orders(10)) == 1

    def test_transaction_rolls_back_on_error(self, uow, make_strategy):
        guid = make_strategy()
        grid = _grid(guid)

        with pytest.raises(RuntimeError):
            with uow.transaction() as tx:
                tx.grids.save(grid)
                tx.orders.save(_order(guid, grid))
                raise RuntimeError("boom")

        assert uow.grids.find_by_guid(grid.guid) is None
        assert uow.orders.find_pending_orders(10) == []


class TestSettingsAndWallets:

    def test_settings_mapping(self, uow, session_factory):
        with session_factory() as db:
            db.add(models.UserSettings(
                user_id=USER_ID, max_retries=3, slippage_bps=100, sell_slippage_bps=200,
                exit_slippage_bps=None, max_lamports=5000, priority_level="veryHigh", dex_aggregator="relay",
            ))
            db.commit()

        user_settings = uow.settings.find_by_user_id(USER_ID)

        assert user_settings.priority_level == PriorityLevel.VERY_HIGH
        assert user_settings.dex_aggregator == DexAggregator.RELAY
        assert user_settings.exit_slippage_bps is None
        assert uow.settings.find_by_user_id(USER_ID + 1) is None

    def test_wallet_lookups(self, uow, wallet):
        assert uow.wallets.find_by_user_id(USER_ID).account == ACCOUNT
        assert uow.wallets.find_by_account(ACCOUNT).user_id == USER_ID
        assert uow.wallets.find_by_account("unknown") is None


class TestModels:

    def test_declarative_base_registers_all_tables(self):
        assert isinstance(models.Base.registry, orm.registry)
        assert set(models.Base.metadata.tables) == {"grid", "orders", "strategy", "settings", "wallet"}
