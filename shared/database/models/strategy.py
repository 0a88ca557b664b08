"""
Modelo de estrategia de grid trading.
Una estrategia por (usuario, token); nunca se borra, solo se desactiva.
"""
from sqlalchemy import Column, Integer, BigInteger, String, Float, Boolean, DateTime, UniqueConstraint
from datetime import datetime
from .base import Base, DecimalString


class Strategy(Base):
    """
    Configuración y estado de una estrategia de grid sobre un token SPL contra USDC.
    """
    __tablename__ = "strategy"
    __table_args__ = (
        UniqueConstraint('user_id', 'token', name='uq_strategy_user_token'),
    )

    id = Column(Integer, primary_key=True, index=True)
    guid = Column(String(50), nullable=False, unique=True, index=True)
    user_id = Column(BigInteger, nullable=False, index=True)
    token = Column(String(50), nullable=False)
    symbol = Column(String(32), nullable=False)

    # CONFIGURACIÓN DE LA GRILLA
    martin_factor = Column(Float, nullable=False, default=1.0)
    max_grid_limit = Column(Integer, nullable=True)
    take_profit_ratio = Column(DecimalString, nullable=False)  # % por grilla
    upper_price_bound = Column(DecimalString, nullable=False)
    lower_price_bound = Column(DecimalString, nullable=False)
    initial_order_size = Column(DecimalString, nullable=False)  # USDC por compra

    # FILTROS DE VOLUMEN
    last_kline_volume = Column(DecimalString, nullable=True)
    five_kline_volume = Column(DecimalString, nullable=True)

    # SALIDAS Y GESTIÓN DE RIESGO
    first_order_id = Column(Integer, nullable=True)  # Ancla del beneficio realizado
    upper_bound_exit = Column(DecimalString, nullable=True)
    stop_loss_exit = Column(DecimalString, nullable=True)
    take_profit_exit = Column(DecimalString, nullable=True)
    global_take_profit_ratio = Column(DecimalString, nullable=True)  # Fracción, 0.10 = 10%
    dynamic_stop_loss = Column(Boolean, default=False, nullable=False)
    drop_on = Column(Boolean, default=False, nullable=False)
    candles_to_check = Column(Integer, default=0, nullable=False)
    drop_threshold = Column(DecimalString, nullable=True)  # %

    # INTERRUPTORES
    enable_auto_buy = Column(Boolean, default=True, nullable=False)
    enable_auto_sell = Column(Boolean, default=True, nullable=False)
    enable_auto_exit = Column(Boolean, default=False, nullable=False)
    enable_push_notification = Column(Boolean, default=True, nullable=False)

    # ESTADO
    status = Column(String(16), nullable=False, default='active')  # 'active', 'inactive'
    grid_trend = Column(String(64), nullable=True)  # "a:b"
    last_lower_threshold_alert_time = Column(DateTime, nullable=True)
    last_upper_threshold_alert_time = Column(DateTime, nullable=True)

    create_time = Column(DateTime, default=datetime.utcnow)
    update_time = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
