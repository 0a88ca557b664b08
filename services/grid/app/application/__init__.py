"""
Capa de aplicación del servicio Grid.
Contiene los casos de uso del negocio.
"""

from .grid_strategy_use_case import GridStrategy
from .order_keeper_use_case import OrderKeeperUseCase
from .trade_execution import TradeExecutor
