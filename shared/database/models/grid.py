"""
Modelo de grilla abierta de una estrategia.
"""
from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint
from datetime import datetime
from .base import Base, DecimalString


class Grid(Base):
    """
    Una fila por peldaño ocupado. Se crea al enviar la compra y se borra
    cuando la venta se confirma o la estrategia se liquida.
    """
    __tablename__ = "grid"
    __table_args__ = (
        UniqueConstraint('strategy_id', 'grid_number', name='uq_grid_strategy_number'),
    )

    id = Column(Integer, primary_key=True, index=True)
    guid = Column(String(50), nullable=False, unique=True, index=True)
    account = Column(String(50), nullable=False)
    token = Column(String(50), nullable=False)
    symbol = Column(String(32), nullable=False)
    strategy_id = Column(String(50), nullable=False, index=True)  # GUID de la estrategia
    grid_number = Column(Integer, nullable=False)
    order_price = Column(DecimalString, nullable=False)
    final_price = Column(DecimalString, nullable=False)
    amount = Column(DecimalString, nullable=False)  # Coste en USDC
    quantity = Column(DecimalString, nullable=False)  # Cantidad de tokens
    status = Column(String(16), nullable=False)  # 'buying', 'bought', 'selling'

    create_time = Column(DateTime, default=datetime.utcnow)
    update_time = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
