"""
Modelo de wallet de Solana asociada a un usuario.
"""
from sqlalchemy import Column, Integer, BigInteger, String, DateTime
from datetime import datetime
from .base import Base


class Wallet(Base):
    """Wallet del usuario; la clave privada se guarda cifrada con Fernet."""
    __tablename__ = "wallet"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(BigInteger, nullable=False, unique=True, index=True)
    account = Column(String(50), nullable=False, unique=True, index=True)
    private_key = Column(String(512), nullable=False)

    create_time = Column(DateTime, default=datetime.utcnow)
