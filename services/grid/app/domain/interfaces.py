"""
Define las interfaces (contratos) para la capa de aplicación del servicio Grid.
"""
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from .entities import (
    Grid, GridStatus, Ohlc, Order, Strategy, StrategyStatus, TokenBalanceChange,
    UserSettings, VenueQuote, Wallet, PriorityLevel,
)


class StrategyRepository(ABC):
    """Interfaz para la persistencia de estrategias."""

    @abstractmethod
    def find_by_guid(self, guid: str) -> Optional[Strategy]:
        pass

    @abstractmethod
    def find_all_active(self, offset: int = 0, limit: int = 100) -> List[Strategy]:
        """Estrategias activas ordenadas por id."""
        pass

    @abstractmethod
    def update_grid_trend(self, strategy_id: int, grid_trend: str) -> None:
        pass

    @abstractmethod
    def update_last_lower_threshold_alert_time(self, strategy_id: int, when: datetime) -> None:
        pass

    @abstractmethod
    def update_last_upper_threshold_alert_time(self, strategy_id: int, when: datetime) -> None:
        pass

    @abstractmethod
    def clear_last_lower_threshold_alert_time(self, strategy_id: int) -> None:
        pass

    @abstractmethod
    def clear_last_upper_threshold_alert_time(self, strategy_id: int) -> None:
        pass

    @abstractmethod
    def update_first_order_id(self, strategy_id: int, order_id: Optional[int]) -> None:
        """Fija (o limpia con None) el ancla del beneficio realizado."""
        pass

    @abstractmethod
    def update_status_by_guid(self, guid: str, status: StrategyStatus) -> None:
        pass


class GridRepository(ABC):
    """Interfaz para la persistencia de grillas abiertas."""

    @abstractmethod
    def find_by_strategy_id(self, strategy_id: str) -> List[Grid]:
        pass

    @abstractmethod
    def find_by_guid(self, guid: str) -> Optional[Grid]:
        pass

    @abstractmethod
    def save(self, grid: Grid) -> Grid:
        pass

    @abstractmethod
    def set_selling_status(self, guid: str) -> None:
        pass

    @abstractmethod
    def set_bought_status(self, guid: str, final_price: Decimal, quantity: Decimal) -> None:
        pass

    @abstractmethod
    def update_status_by_guid(self, guid: str, status: GridStatus) -> None:
        pass

    @abstractmethod
    def delete_by_guid(self, guid: str) -> int:
        pass

    @abstractmethod
    def delete_by_strategy_id(self, strategy_id: str) -> int:
        pass


class OrderRepository(ABC):
    """Interfaz para la persistencia de órdenes."""

    @abstractmethod
    def save(self, order: Order) -> Order:
        pass

    @abstractmethod
    def find_by_id(self, order_id: int) -> Optional[Order]:
        pass

    @abstractmethod
    def total_profit(self, strategy_id: str, first_order_id: int) -> Decimal:
        """Suma de beneficios de las órdenes con id >= first_order_id."""
        pass

    @abstractmethod
    def find_pending_orders(self, limit: int) -> List[Order]:
        """Órdenes pendientes en orden de creación."""
        pass

    @abstractmethod
    def update_profit(self, order_id: int, profit: Decimal) -> None:
        pass

    @abstractmethod
    def set_closed_status(self, order_id: int, final_price: Decimal, out_amount: Decimal) -> bool:
        """Cierra una orden pendiente. False si ya estaba en estado final."""
        pass

    @abstractmethod
    def set_rejected_status(self, order_id: int, reason: str) -> bool:
        """Rechaza una orden pendiente. False si ya estaba en estado final."""
        pass


class SettingsRepository(ABC):
    """Interfaz para los ajustes de usuario."""

    @abstractmethod
    def find_by_user_id(self, user_id: int) -> Optional[UserSettings]:
        pass


class WalletRepository(ABC):
    """Interfaz para las wallets de usuario."""

    @abstractmethod
    def find_by_user_id(self, user_id: int) -> Optional[Wallet]:
        pass

    @abstractmethod
    def find_by_account(self, account: str) -> Optional[Wallet]:
        pass


class UnitOfWork(ABC):
    """
    Punto de acceso a los repositorios.
    Fuera de `transaction()` cada operación se confirma por separado; dentro,
    todas las escrituras se aplican juntas o ninguna.
    """
    strategies: StrategyRepository
    grids: GridRepository
    orders: OrderRepository
    settings: SettingsRepository
    wallets: WalletRepository

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """Devuelve un context manager que produce un UnitOfWork transaccional."""
        pass


class ChainInspector(ABC):
    """Interfaz para consultar el resultado de transacciones en Solana."""

    @abstractmethod
    def get_token_balance_changes(self, tx_hash: str, owner: str) -> Dict[str, TokenBalanceChange]:
        """
        Variaciones de saldo por mint para `owner`.
        Lanza TxNotFoundError, ProgramError o cualquier otro error transitorio.
        """
        pass

    @abstractmethod
    def get_token_balance(self, mint: str, owner: str) -> Tuple[int, int]:
        """Devuelve (saldo en unidades atómicas, decimales)."""
        pass

    @abstractmethod
    def get_token_decimals(self, mint: str) -> int:
        pass


class VenueClient(ABC):
    """Interfaz común de los agregadores de liquidez."""

    @abstractmethod
    def quote(self, user_account: str, input_mint: str, output_mint: str,
              amount: int, slippage_bps: int) -> VenueQuote:
        pass

    @abstractmethod
    def execute(self, quote: VenueQuote, keypair, priority_level: PriorityLevel,
                max_retries: int, max_lamports: int) -> str:
        """Firma y envía el swap. Devuelve el hash de la transacción."""
        pass


class NotificationService(ABC):
    """Interfaz para notificar a los usuarios."""

    @abstractmethod
    def send(self, user_id: int, text: str) -> bool:
        """Envío best-effort; los fallos se registran, no se propagan."""
        pass


class KlineManager(ABC):
    """Fuente de velas a la que se suscriben los tokens en ejecución."""

    @abstractmethod
    def subscribe(self, tokens: List[str]) -> None:
        pass

    @abstractmethod
    def unsubscribe(self, tokens: List[str]) -> None:
        pass


class StrategyScheduler(ABC):
    """Registro que entrega ticks a las estrategias en ejecución."""

    @abstractmethod
    def stop_strategy(self, strategy_id: str) -> None:
        pass


class TickStrategy(ABC):
    """Estrategia que recibe velas del motor."""

    @property
    @abstractmethod
    def id(self) -> str:
        pass

    @property
    @abstractmethod
    def token_address(self) -> str:
        pass

    @abstractmethod
    def on_tick(self, ohlcs: List[Ohlc]) -> None:
        pass


class GridCalculator(ABC):
    """Interfaz para los cálculos de la escalera de precios."""

    @abstractmethod
    def generate_grid(self, lower_price_bound: Decimal, upper_price_bound: Decimal,
                      take_profit_ratio: Decimal) -> List[Decimal]:
        pass

    @abstractmethod
    def calculate_grid_position(self, grid_levels: List[Decimal], price: Decimal,
                                upper_price_bound: Decimal) -> Optional[int]:
        pass
