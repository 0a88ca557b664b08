"""
Modelo de ajustes de trading por usuario.
"""
from sqlalchemy import Column, Integer, BigInteger, String, DateTime
from datetime import datetime
from .base import Base


class UserSettings(Base):
    """Ajustes de swap del usuario (slippage, prioridad y agregador)."""
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(BigInteger, nullable=False, unique=True, index=True)
    max_retries = Column(Integer, nullable=False)
    slippage_bps = Column(Integer, nullable=False)
    sell_slippage_bps = Column(Integer, nullable=True)
    exit_slippage_bps = Column(Integer, nullable=True)
    max_lamports = Column(BigInteger, nullable=False)
    priority_level = Column(String(16), nullable=False)  # 'medium', 'high', 'veryHigh'
    dex_aggregator = Column(String(16), nullable=False)  # 'jup', 'okx', 'relay'

    create_time = Column(DateTime, default=datetime.utcnow)
    update_time = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
