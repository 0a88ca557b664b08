"""
Tests para la evaluación por tick de GridStrategy sobre una base de datos en memoria.
"""
from datetime import datetime
from decimal import Decimal
from unittest.mock import Mock

import pytest

from app.application.grid_strategy_use_case import GridStrategy, calculate_total_profit, open_position
from app.config import USDC_MINT
from app.domain.entities import GridStatus, OrderSide, StrategyStatus
from app.infrastructure.grid_calculator import MAX_GRID_NUMBER
from conftest import ACCOUNT, TOKEN, USER_ID, candle

NOW = datetime(2025, 1, 1, 12, 0, 0)


class TestGridStrategy:

    @pytest.fixture
    def swap_tx(self):
        tx = Mock()
        tx.signer.return_value = ACCOUNT
        tx.swap.return_value = "swap-hash"
        return tx

    @pytest.fixture
    def swap_service(self, swap_tx):
        service = Mock()
        service.quote.return_value = swap_tx
        return service

    @pytest.fixture
    def chain(self):
        chain = Mock()
        chain.get_token_decimals.return_value = 6
        return chain

    @pytest.fixture
    def notifier(self):
        notifier = Mock()
        notifier.send.return_value = True
        return notifier

    @pytest.fixture
    def scheduler(self):
        return Mock()

    @pytest.fixture
    def build(self, uow, chain, swap_service, notifier, scheduler):
        def _build(guid):
            return GridStrategy(
                strategy_id=guid,
                token_address=TOKEN,
                uow=uow,
                chain=chain,
                swap_service_factory=Mock(return_value=swap_service),
                notification_service=notifier,
                scheduler=scheduler,
                now_fn=lambda: NOW,
            )
        return _build

    # === LIQUIDACIONES ===

    def test_waterfall_drop_liquidates_and_stops(self, uow, wallet, make_strategy, make_grid, build,
                                                 chain, swap_service, swap_tx, scheduler, notifier):
        guid = make_strategy(lower_price_bound=Decimal("0.5"), drop_on=True, candles_to_check=3,
                             drop_threshold=Decimal("15"))
        make_grid(guid, 12, amount="10", quantity="10", final_price="0.897")
        chain.get_token_balance.return_value = (10_000_000, 6)
        swap_tx.out_amount.return_value = 8_000_000

        # 20% de caída entre la apertura de la ventana (1.00) y el último cierre (0.80)
        build(guid).on_tick([candle("1.00", "0.95"), candle("0.95", "0.9"), candle("0.9", "0.8")])

        swap_service.quote.assert_called_once_with(TOKEN, USDC_MINT, 10_000_000, exit=True)
        assert uow.grids.find_by_strategy_id(guid) == []
        strategy = uow.strategies.find_by_guid(guid)
        assert strategy.status == StrategyStatus.INACTIVE
        assert strategy.first_order_id is None

        orders = uow.orders.find_pending_orders(10)
        assert len(orders) == 1
        assert orders[0].type == OrderSide.SELL
        assert orders[0].grid_id is None
        assert orders[0].grid_buy_cost == Decimal("10")
        assert orders[0].tx_hash == "swap-hash"

        scheduler.stop_strategy.assert_called_once_with(guid)
        assert "protección contra caídas" in notifier.send.call_args[0][1]

    def test_small_drop_does_not_liquidate(self, uow, wallet, make_strategy, make_grid, build,
                                           swap_service, scheduler):
        guid = make_strategy(drop_on=True, candles_to_check=3, drop_threshold=Decimal("15"),
                             enable_auto_sell=False)
        make_grid(guid, 2, amount="10", quantity="10", final_price="1.1025")

        build(guid).on_tick([candle("1.5", "1.45"), candle("1.45", "1.4"), candle("1.4", "1.35")])

        swap_service.quote.assert_not_called()
        scheduler.stop_strategy.assert_not_called()
        assert uow.strategies.find_by_guid(guid).status == StrategyStatus.ACTIVE

    def test_global_take_profit_liquidates(self, uow, wallet, make_strategy, make_grid, build,
                                           chain, swap_tx, scheduler):
        guid = make_strategy(global_take_profit_ratio=Decimal("0.10"))
        make_grid(guid, 0, amount="1000", quantity="1000", final_price="1")
        chain.get_token_balance.return_value = (1_000_000_000, 6)
        swap_tx.out_amount.return_value = 1_105_000_000

        build(guid).on_tick([candle("1.1", "1.105")])

        assert uow.strategies.find_by_guid(guid).status == StrategyStatus.INACTIVE
        assert uow.grids.find_by_strategy_id(guid) == []
        assert uow.orders.find_pending_orders(10)[0].grid_buy_cost == Decimal("1000")
        scheduler.stop_strategy.assert_called_once_with(guid)

    def test_global_take_profit_below_ratio_keeps_running(self, uow, wallet, make_strategy, make_grid,
                                                          build, swap_service, scheduler):
        guid = make_strategy(global_take_profit_ratio=Decimal("0.10"), enable_auto_sell=False)
        make_grid(guid, 0, amount="1000", quantity="1000", final_price="1")

        build(guid).on_tick([candle("1.09", "1.095")])

        swap_service.quote.assert_not_called()
        scheduler.stop_strategy.assert_not_called()
        assert uow.strategies.find_by_guid(guid).status == StrategyStatus.ACTIVE

    def test_failed_liquidation_sell_leaves_state_untouched(self, uow, wallet, make_strategy, make_grid,
                                                            build, chain, swap_tx, scheduler):
        guid = make_strategy(upper_bound_exit=Decimal("1.5"))
        make_grid(guid, 0, amount="10", quantity="10", final_price="1")
        chain.get_token_balance.return_value = (10_000_000, 6)
        # Cotización muy por debajo del precio mínimo de salida
        swap_tx.out_amount.return_value = 1_000_000

        build(guid).on_tick([candle("1.5", "1.6")])

        swap_tx.swap.assert_not_called()
        scheduler.stop_strategy.assert_not_called()
        assert uow.strategies.find_by_guid(guid).status == StrategyStatus.ACTIVE
        assert len(uow.grids.find_by_strategy_id(guid)) == 1

    def test_upper_bound_exit_liquidates(self, uow, wallet, make_strategy, make_grid, build,
                                         chain, swap_service, swap_tx, scheduler, notifier):
        guid = make_strategy(upper_bound_exit=Decimal("1.5"))
        make_grid(guid, 0, amount="10", quantity="10", final_price="1")
        chain.get_token_balance.return_value = (10_000_000, 6)
        swap_tx.out_amount.return_value = 16_000_000

        build(guid).on_tick([candle("1.5", "1.6")])

        swap_service.quote.assert_called_once_with(TOKEN, USDC_MINT, 10_000_000, exit=True)
        assert uow.strategies.find_by_guid(guid).status == StrategyStatus.INACTIVE
        assert uow.grids.find_by_strategy_id(guid) == []
        scheduler.stop_strategy.assert_called_once_with(guid)
        assert "precio de salida" in notifier.send.call_args[0][1]

    def test_take_profit_target_liquidates(self, uow, wallet, make_strategy, make_grid, build,
                                           chain, swap_tx, scheduler, notifier):
        guid = make_strategy(take_profit_exit=Decimal("5"))
        make_grid(guid, 0, amount="100", quantity="100", final_price="1")
        chain.get_token_balance.return_value = (100_000_000, 6)
        swap_tx.out_amount.return_value = 106_000_000

        # Beneficio no realizado: 100 * 1.06 - 100 = 6
        build(guid).on_tick([candle("1.05", "1.06")])

        assert uow.strategies.find_by_guid(guid).status == StrategyStatus.INACTIVE
        assert uow.orders.find_pending_orders(10)[0].grid_buy_cost == Decimal("100")
        scheduler.stop_strategy.assert_called_once_with(guid)
        assert "objetivo de ganancias" in notifier.send.call_args[0][1]

    def test_stop_loss_target_triggers_at_threshold(self, uow, wallet, make_strategy, make_grid, build,
                                                     chain, swap_tx, scheduler, notifier):
        guid = make_strategy(stop_loss_exit=Decimal("5"))
        make_grid(guid, 0, amount="105", quantity="100", final_price="1.05")
        chain.get_token_balance.return_value = (100_000_000, 6)
        swap_tx.out_amount.return_value = 100_000_000

        # Pérdida exactamente igual al límite: 100 * 1.0 - 105 = -5
        build(guid).on_tick([candle("1.01", "1.0")])

        assert uow.strategies.find_by_guid(guid).status == StrategyStatus.INACTIVE
        assert uow.grids.find_by_strategy_id(guid) == []
        scheduler.stop_strategy.assert_called_once_with(guid)
        assert "límite de pérdidas" in notifier.send.call_args[0][1]

    def test_stop_loss_target_not_reached(self, uow, wallet, make_strategy, make_grid, build,
                                          swap_service, scheduler):
        guid = make_strategy(stop_loss_exit=Decimal("5"))
        make_grid(guid, 0, amount="105", quantity="100", final_price="1.05")

        build(guid).on_tick([candle("1.0", "1.01")])

        swap_service.quote.assert_not_called()
        scheduler.stop_strategy.assert_not_called()
        assert uow.strategies.find_by_guid(guid).status == StrategyStatus.ACTIVE

    def test_price_floor_stop_loss(self, uow, wallet, make_strategy, make_grid, build,
                                   chain, swap_tx, scheduler):
        guid = make_strategy(enable_auto_exit=True)
        make_grid(guid, 0, amount="10", quantity="10", final_price="1")
        chain.get_token_balance.return_value = (10_000_000, 6)
        swap_tx.out_amount.return_value = 9_000_000

        build(guid).on_tick([candle("0.95", "0.9")])

        assert uow.strategies.find_by_guid(guid).status == StrategyStatus.INACTIVE
        scheduler.stop_strategy.assert_called_once_with(guid)

    # === VENTAS POR GRILLA ===

    def test_grid_take_profit_marks_grid_selling(self, uow, wallet, make_strategy, make_grid, build,
                                                 chain, swap_service, swap_tx, session_factory):
        guid = make_strategy()
        grid_guid = make_grid(guid, 0, amount="10", quantity="10", final_price="1")
        chain.get_token_balance.return_value = (10_000_000, 6)
        swap_tx.out_amount.return_value = 10_600_000

        build(guid).on_tick([candle("1.05", "1.06")])

        swap_service.quote.assert_called_once_with(TOKEN, USDC_MINT, 10_000_000, exit=False)
        assert uow.grids.find_by_guid(grid_guid).status == GridStatus.SELLING
        order = uow.orders.find_pending_orders(10)[0]
        assert order.grid_id == grid_guid
        assert order.grid_number == 0
        assert order.grid_buy_cost == Decimal("10")

    def test_grid_take_profit_clears_alert_times(self, uow, wallet, make_strategy, make_grid, build,
                                                 chain, swap_tx):
        guid = make_strategy(last_lower_threshold_alert_time=NOW, last_upper_threshold_alert_time=NOW)
        make_grid(guid, 0, amount="10", quantity="10", final_price="1")
        chain.get_token_balance.return_value = (10_000_000, 6)
        swap_tx.out_amount.return_value = 10_600_000

        build(guid).on_tick([candle("1.05", "1.06")])

        stored = uow.strategies.find_by_guid(guid)
        assert stored.last_lower_threshold_alert_time is None
        assert stored.last_upper_threshold_alert_time is None

    def test_grid_take_profit_skipped_when_quote_too_low(self, uow, wallet, make_strategy, make_grid,
                                                         build, chain, swap_tx):
        guid = make_strategy()
        grid_guid = make_grid(guid, 0, amount="10", quantity="10", final_price="1")
        chain.get_token_balance.return_value = (10_000_000, 6)
        swap_tx.out_amount.return_value = 10_400_000

        build(guid).on_tick([candle("1.05", "1.06")])

        swap_tx.swap.assert_not_called()
        assert uow.grids.find_by_guid(grid_guid).status == GridStatus.BOUGHT

    def test_dynamic_stop_loss_sells_far_grid(self, uow, wallet, make_strategy, make_grid, build,
                                              chain, swap_service, swap_tx, notifier):
        guid = make_strategy(dynamic_stop_loss=True, max_grid_limit=2, enable_auto_buy=False)
        grid_guid = make_grid(guid, 3, amount="10", quantity="8.5", final_price="1.157625")
        chain.get_token_balance.return_value = (8_500_000, 6)
        swap_tx.out_amount.return_value = 8_600_000

        build(guid).on_tick([candle("1.02", "1.01")])

        swap_service.quote.assert_called_once_with(TOKEN, USDC_MINT, 8_500_000, exit=True)
        assert uow.grids.find_by_guid(grid_guid).status == GridStatus.SELLING
        assert "stop-loss dinámico" in notifier.send.call_args[0][1]

    def test_dynamic_stop_loss_keeps_grid_inside_span(self, uow, wallet, make_strategy, make_grid, build,
                                                      swap_service, notifier):
        guid = make_strategy(dynamic_stop_loss=True, max_grid_limit=3, enable_auto_buy=False)
        grid_guid = make_grid(guid, 2, amount="10", quantity="9", final_price="1.1025")

        # Grilla #2 con el precio en el peldaño 0: distancia 2, un peldaño menos que el límite
        build(guid).on_tick([candle("1.02", "1.01")])

        swap_service.quote.assert_not_called()
        notifier.send.assert_not_called()
        assert uow.grids.find_by_guid(grid_guid).status == GridStatus.BOUGHT

    # === COMPRAS ===

    def test_buy_on_second_rung(self, uow, wallet, make_strategy, build, chain, swap_service, swap_tx):
        guid = make_strategy()
        swap_tx.out_amount.return_value = 9_600_000
        strategy = build(guid)

        # Sube desde debajo de L hasta exactamente el primer peldaño: solo se registra
        strategy.on_tick([candle("0.97", "0.98")])
        strategy.on_tick([candle("0.98", "1")])
        swap_service.quote.assert_not_called()
        assert uow.strategies.find_by_guid(guid).grid_trend == "0"

        strategy.on_tick([candle("1.01", "1.06")])

        swap_service.quote.assert_called_once_with(USDC_MINT, TOKEN, 10_000_000)
        assert uow.strategies.find_by_guid(guid).grid_trend == "0:1"

        grids = uow.grids.find_by_strategy_id(guid)
        assert len(grids) == 1
        assert grids[0].grid_number == 1
        assert grids[0].status == GridStatus.BUYING
        assert grids[0].quantity == Decimal("9.6")
        assert grids[0].amount == Decimal("10")

        order = uow.orders.find_pending_orders(10)[0]
        assert order.type == OrderSide.BUY
        assert order.grid_id == grids[0].guid
        assert order.tx_hash == "swap-hash"

    def test_repeated_rung_does_not_buy(self, uow, wallet, make_strategy, build, swap_service):
        guid = make_strategy()
        strategy = build(guid)

        strategy.on_tick([candle("1", "1.01")])
        strategy.on_tick([candle("1.01", "1.02")])

        swap_service.quote.assert_not_called()
        assert uow.strategies.find_by_guid(guid).grid_trend == "0"

    def test_buy_at_market_price_inside_band(self, uow, wallet, make_strategy, build, swap_tx):
        guid = make_strategy(grid_trend="0")
        # 10 USDC -> 9.433962 tokens: cotización a 1.06, dentro de la banda [1.05, 1.1025)
        swap_tx.out_amount.return_value = 9_433_962

        build(guid).on_tick([candle("1.05", "1.06")])

        swap_tx.swap.assert_called_once()
        grids = uow.grids.find_by_strategy_id(guid)
        assert len(grids) == 1
        assert grids[0].grid_number == 1
        assert grids[0].quantity == Decimal("9.433962")

    def test_buy_on_top_rung_capped_by_upper_bound(self, uow, wallet, make_strategy, build, swap_tx):
        guid = make_strategy(grid_trend="13")
        # Peldaño 14 (1.9799...) es el último; el techo es el límite superior 2
        swap_tx.out_amount.return_value = 5_030_000

        build(guid).on_tick([candle("1.98", "1.99")])

        swap_tx.swap.assert_called_once()
        assert uow.grids.find_by_strategy_id(guid)[0].grid_number == 14

    def test_buy_skipped_when_quote_above_band(self, uow, wallet, make_strategy, build, swap_tx):
        guid = make_strategy(grid_trend="0")
        # 10 USDC -> 9 tokens: cotización a 1.111, por encima del techo 1.1025
        swap_tx.out_amount.return_value = 9_000_000

        build(guid).on_tick([candle("1.01", "1.06")])

        swap_tx.swap.assert_not_called()
        assert uow.grids.find_by_strategy_id(guid) == []

    def test_buy_skipped_below_open_grid(self, uow, wallet, make_strategy, make_grid, build, swap_service):
        guid = make_strategy(grid_trend="0", enable_auto_sell=False)
        make_grid(guid, 0, amount="10", quantity="10", final_price="1")

        build(guid).on_tick([candle("1.01", "1.06")])

        swap_service.quote.assert_not_called()

    def test_buy_blocked_by_volume_gate(self, uow, wallet, make_strategy, build, swap_service):
        guid = make_strategy(grid_trend="0", last_kline_volume=Decimal("5000"))

        build(guid).on_tick([candle("1.01", "1.06", volume="100")])

        swap_service.quote.assert_not_called()

    # === ALERTAS ===

    def test_lower_threshold_alert_sent_once(self, uow, wallet, make_strategy, build, notifier):
        guid = make_strategy()
        strategy = build(guid)

        strategy.on_tick([candle("1", "0.98")])
        strategy.on_tick([candle("0.98", "0.97")])

        notifier.send.assert_called_once()
        assert notifier.send.call_args[0][0] == USER_ID
        assert uow.strategies.find_by_guid(guid).last_lower_threshold_alert_time == NOW

    def test_upper_threshold_alert_records_trend(self, uow, wallet, make_strategy, build, notifier):
        guid = make_strategy()

        build(guid).on_tick([candle("2", "2.1")])

        notifier.send.assert_called_once()
        stored = uow.strategies.find_by_guid(guid)
        assert stored.last_upper_threshold_alert_time == NOW
        assert stored.grid_trend == str(MAX_GRID_NUMBER)

    def test_inactive_strategy_is_ignored(self, wallet, make_strategy, build, swap_service, notifier):
        guid = make_strategy(status="inactive")

        build(guid).on_tick([candle("1", "0.5")])

        swap_service.quote.assert_not_called()
        notifier.send.assert_not_called()


class TestPositionHelpers:

    def test_open_position_only_counts_bought_grids(self, uow, make_strategy, make_grid):
        guid = make_strategy()
        make_grid(guid, 0, amount="10", quantity="10", final_price="1")
        make_grid(guid, 1, amount="10", quantity="9", final_price="1.05", status="buying")

        position = open_position(uow.grids.find_by_strategy_id(guid))

        assert position.total_amount == Decimal("10")
        assert position.total_quantity == Decimal("10")
        assert len(position.grids) == 1

    def test_total_profit_adds_realized_from_anchor(self, uow, make_strategy, make_grid, make_order):
        guid = make_strategy()
        make_grid(guid, 0, amount="10", quantity="10", final_price="1")
        old_order = make_order(guid, "sell", "10", "9")
        anchor = make_order(guid, "sell", "10", "12")
        uow.orders.update_profit(old_order, Decimal("-1"))
        uow.orders.update_profit(anchor, Decimal("2"))
        uow.strategies.update_first_order_id(uow.strategies.find_by_guid(guid).id, anchor)

        strategy = uow.strategies.find_by_guid(guid)
        grids = uow.grids.find_by_strategy_id(guid)

        assert calculate_total_profit(uow, strategy, grids, Decimal("1.1")) == Decimal("3")
