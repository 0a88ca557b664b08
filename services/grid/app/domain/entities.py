"""
Entidades del dominio para el servicio Grid.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional


class StrategyStatus(str, Enum):
    """Ciclo de vida de una estrategia."""
    ACTIVE = "active"
    INACTIVE = "inactive"


class GridStatus(str, Enum):
    """Estado de un peldaño abierto."""
    BUYING = "buying"
    BOUGHT = "bought"
    SELLING = "selling"


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CLOSED = "closed"
    REJECTED = "rejected"


class DexAggregator(str, Enum):
    """Venues de liquidez soportados."""
    JUPITER = "jup"
    OKX = "okx"
    RELAY = "relay"


class PriorityLevel(str, Enum):
    """Nivel de comisión de prioridad de la transacción."""
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "veryHigh"


@dataclass
class Ohlc:
    """Vela de precio/volumen (de la más antigua a la más reciente)."""
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
    time: Optional[datetime] = None


@dataclass
class Strategy:
    """Configuración y estado de una estrategia de grid."""
    id: Optional[int]
    guid: str
    user_id: int
    token: str
    symbol: str
    take_profit_ratio: Decimal  # % por grilla
    upper_price_bound: Decimal
    lower_price_bound: Decimal
    initial_order_size: Decimal  # USDC
    status: StrategyStatus = StrategyStatus.ACTIVE
    martin_factor: float = 1.0
    max_grid_limit: Optional[int] = None
    last_kline_volume: Optional[Decimal] = None
    five_kline_volume: Optional[Decimal] = None
    first_order_id: Optional[int] = None
    upper_bound_exit: Optional[Decimal] = None
    stop_loss_exit: Optional[Decimal] = None
    take_profit_exit: Optional[Decimal] = None
    global_take_profit_ratio: Optional[Decimal] = None  # Fracción
    dynamic_stop_loss: bool = False
    drop_on: bool = False
    candles_to_check: int = 0
    drop_threshold: Optional[Decimal] = None  # %
    enable_auto_buy: bool = True
    enable_auto_sell: bool = True
    enable_auto_exit: bool = False
    enable_push_notification: bool = True
    grid_trend: Optional[str] = None
    last_lower_threshold_alert_time: Optional[datetime] = None
    last_upper_threshold_alert_time: Optional[datetime] = None
    create_time: Optional[datetime] = None
    update_time: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == StrategyStatus.ACTIVE


@dataclass
class Grid:
    """Peldaño ocupado de una estrategia."""
    guid: str
    account: str
    token: str
    symbol: str
    strategy_id: str
    grid_number: int
    order_price: Decimal
    final_price: Decimal
    amount: Decimal  # Coste en USDC
    quantity: Decimal  # Tokens
    status: GridStatus
    id: Optional[int] = None


@dataclass
class Order:
    """Registro de ejecución de un swap."""
    account: str
    token: str
    symbol: str
    strategy_id: str
    type: OrderSide
    price: Decimal
    final_price: Decimal
    in_amount: Decimal
    out_amount: Decimal
    status: OrderStatus
    tx_hash: str
    grid_id: Optional[str] = None
    grid_number: Optional[int] = None
    grid_buy_cost: Optional[Decimal] = None
    reason: str = ''
    profit: Optional[Decimal] = None
    id: Optional[int] = None
    create_time: Optional[datetime] = None


@dataclass
class UserSettings:
    """Ajustes de swap de un usuario. Puede ser un valor sintetizado no persistido."""
    user_id: int
    max_retries: int
    slippage_bps: int
    max_lamports: int
    priority_level: PriorityLevel
    dex_aggregator: DexAggregator
    sell_slippage_bps: Optional[int] = None
    exit_slippage_bps: Optional[int] = None
    id: Optional[int] = None


@dataclass
class Wallet:
    """Wallet de un usuario con la clave privada cifrada."""
    user_id: int
    account: str
    private_key: str
    id: Optional[int] = None


@dataclass
class TokenBalanceChange:
    """Variación de saldo (en unidades de UI) de un token en una transacción."""
    pre: Decimal = Decimal('0')
    post: Decimal = Decimal('0')
    change: Decimal = Decimal('0')


@dataclass
class VenueQuote:
    """Cotización normalizada devuelta por un venue."""
    out_amount: int  # Unidades atómicas del token de salida
    slippage_bps: int
    raw: dict = field(default_factory=dict)


@dataclass
class OpenPosition:
    """Coste y cantidad agregados de las grillas compradas."""
    total_amount: Decimal = Decimal('0')
    total_quantity: Decimal = Decimal('0')
    grids: List[Grid] = field(default_factory=list)
