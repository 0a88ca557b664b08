"""
Tests para el ensamblaje del servicio (GridScheduler) sin arrancar el scheduler.
"""
from unittest.mock import Mock

import pytest

from app.application.grid_strategy_use_case import GridStrategy
from app.infrastructure import scheduler as scheduler_module
from app.infrastructure.scheduler import GridScheduler
from app.infrastructure.swap_service import SwapService


def _record(guid, token):
    record = Mock()
    record.guid = guid
    record.token = token
    record.is_active = True
    return record


class TestGridScheduler:

    @pytest.fixture
    def uow(self):
        uow = Mock()
        uow.orders.find_pending_orders.return_value = []
        return uow

    @pytest.fixture
    def grid_scheduler(self, uow):
        return GridScheduler(uow=uow, rpc=Mock(), notification_service=Mock(), cipher=Mock())

    def test_order_keeper_job_configured(self, grid_scheduler):
        jobs = grid_scheduler.get_status()["jobs"]

        assert [job["id"] for job in jobs] == ["order_keeper"]
        assert not grid_scheduler.is_running()

    def test_load_active_strategies_paginates(self, grid_scheduler, uow, monkeypatch):
        monkeypatch.setattr(scheduler_module, "ACTIVE_STRATEGIES_PAGE_SIZE", 2)
        uow.strategies.find_all_active.side_effect = [
            [_record("a", "TOK"), _record("b", "TOK")],
            [_record("c", "OTHER")],
        ]

        assert grid_scheduler.load_active_strategies() == 3

        assert grid_scheduler.engine.strategy_count("TOK") == 2
        assert grid_scheduler.engine.strategy_count("OTHER") == 1
        assert uow.strategies.find_all_active.call_args_list[1].kwargs == {"offset": 2, "limit": 2}
        assert grid_scheduler.kline_manager.subscribed_tokens() == ["OTHER", "TOK"]

    def test_start_strategy_requires_active_record(self, grid_scheduler, uow):
        uow.strategies.find_by_guid.return_value = None
        assert not grid_scheduler.start_strategy("missing")

        uow.strategies.find_by_guid.return_value = _record("a", "TOK")
        assert grid_scheduler.start_strategy("a")
        assert grid_scheduler.engine.is_running("a")

    def test_build_strategy_and_swap_scope(self, grid_scheduler):
        strategy = grid_scheduler.build_strategy(_record("a", "TOK"))

        assert isinstance(strategy, GridStrategy)
        assert strategy.id == "a"
        assert strategy.token_address == "TOK"
        assert strategy.scheduler is grid_scheduler.engine

        swap_service = grid_scheduler.create_swap_service(7)
        assert isinstance(swap_service, SwapService)
        assert swap_service.user_id == 7
        assert swap_service.context is grid_scheduler.swap_context

    def test_push_ohlcs_reaches_strategies(self, grid_scheduler):
        strategy = Mock()
        strategy.id = "a"
        strategy.token_address = "TOK"
        grid_scheduler.engine.start_strategy([strategy])

        grid_scheduler.push_ohlcs("TOK", [Mock()])

        strategy.on_tick.assert_called_once()

    def test_trigger_order_keeper(self, grid_scheduler):
        result = grid_scheduler.trigger_order_keeper()

        assert result == {"success": True, "result": {"closed": 0, "rejected": 0, "waiting": 0}}

    def test_stop_releases_http_clients(self, grid_scheduler):
        grid_scheduler.stop()

        assert grid_scheduler.swap_context.http_client.is_closed
        grid_scheduler.rpc.close.assert_called_once()
