"""
Motor de estrategias: registro de estrategias en ejecución y reparto de velas.
"""
import threading
from typing import Dict, List, Set

from app.domain.entities import Ohlc
from app.domain.interfaces import KlineManager, StrategyScheduler, TickStrategy
from shared.services.logging_config import get_logger

logger = get_logger(__name__)


class SubscriptionRegistry(KlineManager):
    """
    KlineManager que solo lleva la cuenta de los tokens suscritos.
    Las velas llegan desde fuera a través de StrategyEngine.on_ohlcs.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._tokens: Set[str] = set()

    def subscribe(self, tokens: List[str]) -> None:
        with self._lock:
            self._tokens.update(tokens)

    def unsubscribe(self, tokens: List[str]) -> None:
        with self._lock:
            self._tokens.difference_update(tokens)

    def subscribed_tokens(self) -> List[str]:
        with self._lock:
            return sorted(self._tokens)


class StrategyEngine(StrategyScheduler):
    """Mantiene las estrategias activas y un contador de estrategias por token."""

    def __init__(self, kline_manager: KlineManager):
        self.kline_manager = kline_manager
        self._lock = threading.RLock()
        self._strategies: Dict[str, TickStrategy] = {}
        self._token_counter: Dict[str, int] = {}
        # Un tick a la vez por estrategia, aunque las velas lleguen desde varios hilos
        self._tick_locks: Dict[str, threading.Lock] = {}

    def start_strategy(self, strategies: List[TickStrategy]) -> None:
        """Registra las estrategias nuevas y suscribe sus tokens."""
        with self._lock:
            new_strategies = [s for s in strategies if s.id not in self._strategies]
            if not new_strategies:
                return

            self.kline_manager.subscribe([s.token_address for s in new_strategies])

            for strategy in new_strategies:
                self._strategies[strategy.id] = strategy
                self._tick_locks[strategy.id] = threading.Lock()
                token = strategy.token_address
                self._token_counter[token] = self._token_counter.get(token, 0) + 1
                logger.info(f"▶️ Estrategia {strategy.id} iniciada ({token})")

    def stop_strategy(self, strategy_id: str) -> None:
        """Retira la estrategia; el token se desuscribe cuando no quedan estrategias."""
        with self._lock:
            strategy = self._strategies.pop(strategy_id, None)
            if strategy is None:
                return
            self._tick_locks.pop(strategy_id, None)

            token = strategy.token_address
            count = max(self._token_counter.get(token, 0) - 1, 0)
            self._token_counter[token] = count
            logger.info(f"⏹️ Estrategia {strategy_id} detenida ({token})")

            if count == 0:
                del self._token_counter[token]
                try:
                    self.kline_manager.unsubscribe([token])
                except Exception as e:
                    logger.error(f"❌ Error cancelando la suscripción de {token}: {e}")

    def is_running(self, strategy_id: str) -> bool:
        with self._lock:
            return strategy_id in self._strategies

    def running_strategies(self) -> List[str]:
        with self._lock:
            return list(self._strategies)

    def strategy_count(self, token: str) -> int:
        with self._lock:
            return self._token_counter.get(token, 0)

    def on_ohlcs(self, token: str, ohlcs: List[Ohlc]) -> None:
        """
        Entrega las velas a cada estrategia del token. Los errores se registran.
        Los ticks de una misma estrategia se serializan con su lock.
        """
        with self._lock:
            targets = [
                (s, self._tick_locks[s.id]) for s in self._strategies.values() if s.token_address == token
            ]

        for strategy, tick_lock in targets:
            with tick_lock:
                # Pudo detenerse mientras esperaba el tick anterior
                if not self.is_running(strategy.id):
                    continue
                try:
                    strategy.on_tick(ohlcs)
                except Exception as e:
                    logger.error(f"❌ Error ejecutando la estrategia {strategy.id} ({token}): {e}")
