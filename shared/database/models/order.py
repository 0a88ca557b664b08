"""
Modelo de orden (registro de ejecución, solo se añade).
"""
from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime
from .base import Base, DecimalString


class Order(Base):
    """
    Registro de un swap enviado. Solo el keeper de órdenes mueve el estado
    de 'pending' a 'closed' o 'rejected'.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    account = Column(String(50), nullable=False, index=True)
    token = Column(String(50), nullable=False)
    symbol = Column(String(32), nullable=False)
    grid_id = Column(String(50), nullable=True)
    grid_number = Column(Integer, nullable=True)
    grid_buy_cost = Column(DecimalString, nullable=True)
    strategy_id = Column(String(50), nullable=False, index=True)
    type = Column(String(8), nullable=False)  # 'buy', 'sell'
    price = Column(DecimalString, nullable=False)
    final_price = Column(DecimalString, nullable=False)
    in_amount = Column(DecimalString, nullable=False)
    out_amount = Column(DecimalString, nullable=False)
    status = Column(String(16), nullable=False, index=True)  # 'pending', 'closed', 'rejected'
    tx_hash = Column(String(128), nullable=False)
    reason = Column(String(255), nullable=False, default='')
    profit = Column(DecimalString, nullable=True)

    create_time = Column(DateTime, default=datetime.utcnow)
    update_time = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
