"""
Fixtures compartidas: base de datos SQLite en memoria y filas de ejemplo.
"""
import uuid
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.domain.entities import Ohlc
from app.infrastructure.database_repository import SqlAlchemyUnitOfWork
from shared.database import models

TOKEN = "So11111111111111111111111111111111111111112"
ACCOUNT = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
USER_ID = 42


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False)
    engine.dispose()


@pytest.fixture
def uow(session_factory):
    return SqlAlchemyUnitOfWork(session_factory)


@pytest.fixture
def make_strategy(session_factory):
    """Inserta una estrategia activa: L=1, U=2, 5% por grilla y 10 USDC por compra."""
    def _make(**overrides):
        values = dict(
            guid=str(uuid.uuid4()),
            user_id=USER_ID,
            token=TOKEN,
            symbol="SOL",
            take_profit_ratio=Decimal("5"),
            upper_price_bound=Decimal("2"),
            lower_price_bound=Decimal("1"),
            initial_order_size=Decimal("10"),
            status="active",
        )
        values.update(overrides)
        with session_factory() as db:
            row = models.Strategy(**values)
            db.add(row)
            db.commit()
            return row.guid
    return _make


@pytest.fixture
def make_grid(session_factory):
    def _make(strategy_guid, grid_number, amount, quantity, final_price, status="bought"):
        with session_factory() as db:
            row = models.Grid(
                guid=str(uuid.uuid4()),
                account=ACCOUNT,
                token=TOKEN,
                symbol="SOL",
                strategy_id=strategy_guid,
                grid_number=grid_number,
                order_price=Decimal(final_price),
                final_price=Decimal(final_price),
                amount=Decimal(amount),
                quantity=Decimal(quantity),
                status=status,
            )
            db.add(row)
            db.commit()
            return row.guid
    return _make


@pytest.fixture
def make_order(session_factory):
    def _make(strategy_guid, type, in_amount, out_amount, grid_id=None, grid_number=None,
              grid_buy_cost=None, create_time=None, tx_hash="tx-hash"):
        with session_factory() as db:
            row = models.Order(
                account=ACCOUNT,
                token=TOKEN,
                symbol="SOL",
                grid_id=grid_id,
                grid_number=grid_number,
                grid_buy_cost=grid_buy_cost,
                strategy_id=strategy_guid,
                type=type,
                price=Decimal("1"),
                final_price=Decimal("1"),
                in_amount=Decimal(in_amount),
                out_amount=Decimal(out_amount),
                status="pending",
                tx_hash=tx_hash,
                create_time=create_time or datetime.utcnow(),
            )
            db.add(row)
            db.commit()
            return row.id
    return _make


@pytest.fixture
def wallet(session_factory):
    with session_factory() as db:
        db.add(models.Wallet(user_id=USER_ID, account=ACCOUNT, private_key="encrypted"))
        db.commit()
    return ACCOUNT


def candle(open_price, close_price, volume="1000"):
    open_price, close_price = Decimal(str(open_price)), Decimal(str(close_price))
    return Ohlc(
        open=open_price,
        high=max(open_price, close_price),
        low=min(open_price, close_price),
        close=close_price,
        volume=Decimal(volume),
    )
