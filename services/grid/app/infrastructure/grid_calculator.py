"""
Calculador de Grid Trading - Escalera de precios y tendencia de peldaños.
"""
import bisect
import sys
from decimal import Decimal
from typing import List, Optional

from app.domain.entities import Grid
from app.domain.interfaces import GridCalculator
from shared.services.logging_config import get_logger

logger = get_logger(__name__)

# Centinela de tendencia: precio por encima del límite superior
MAX_GRID_NUMBER = sys.maxsize

# Solo se conservan los dos últimos peldaños visitados
GRID_TREND_LENGTH = 2


class GridTradingCalculator(GridCalculator):
    """Implementación geométrica de la escalera de grid."""

    def generate_grid(self, lower_price_bound: Decimal, upper_price_bound: Decimal,
                      take_profit_ratio: Decimal) -> List[Decimal]:
        """
        Genera los niveles de precio desde el límite inferior, multiplicando
        cada nivel por (1 + ratio) mientras quede por debajo del límite superior.

        Args:
            lower_price_bound: Precio del primer peldaño
            upper_price_bound: Límite superior (exclusivo)
            take_profit_ratio: Ratio entre peldaños como fracción (0.02 = 2%)

        Returns:
            Lista estrictamente creciente de precios
        """
        if lower_price_bound <= 0:
            raise ValueError("lower price bound must be positive")
        if upper_price_bound <= lower_price_bound:
            raise ValueError("upper price bound must be greater than lower price bound")
        if take_profit_ratio <= 0:
            raise ValueError("take profit ratio must be positive")

        levels = []
        level = lower_price_bound
        while level < upper_price_bound:
            levels.append(level)
            level = level + level * take_profit_ratio
        return levels

    def calculate_grid_position(self, grid_levels: List[Decimal], price: Decimal,
                                upper_price_bound: Decimal) -> Optional[int]:
        """
        Índice del nivel más alto <= precio, o None si el precio está
        por debajo del primer nivel o por encima del límite superior.
        """
        if not grid_levels:
            return None
        if price < grid_levels[0] or price > upper_price_bound:
            return None
        return bisect.bisect_right(grid_levels, price) - 1

    # === TENDENCIA DE PELDAÑOS ===

    @staticmethod
    def update_grid_trend(trend: List[int], grid_number: int) -> List[int]:
        """Añade el peldaño salvo que repita el último y conserva los dos más recientes."""
        if trend and trend[-1] == grid_number:
            return list(trend)
        updated = list(trend) + [grid_number]
        return updated[-GRID_TREND_LENGTH:]

    @staticmethod
    def encode_grid_trend(trend: List[int]) -> str:
        return ":".join(str(item) for item in trend)

    @staticmethod
    def decode_grid_trend(value: Optional[str]) -> List[int]:
        """Ignora los elementos mal formados."""
        if not value:
            return []
        result = []
        for item in value.split(":"):
            try:
                result.append(int(item))
            except ValueError:
                continue
        return result

    @staticmethod
    def is_min_grid_number(grids: List[Grid], grid_number: int) -> bool:
        """True si ningún peldaño abierto está por debajo de `grid_number`."""
        return all(item.grid_number >= grid_number for item in grids)
