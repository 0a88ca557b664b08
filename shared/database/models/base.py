"""
Base común para todos los modelos de SQLAlchemy.
Define la declarative_base y el tipo decimal usado en las columnas monetarias.
"""
from decimal import Decimal
from sqlalchemy import String
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

# Base común para todos los modelos del sistema
Base = declarative_base()


class DecimalString(TypeDecorator):
    """
    Guarda valores Decimal como texto para conservar la precisión exacta
    (cantidades de tokens con 9+ decimales no caben en un Float).
    """
    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(Decimal(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)
