"""
Scheduler del servicio Grid:
- Keeper de órdenes (cada segundo): concilia las órdenes pendientes con la cadena
- Motor de estrategias: recibe velas y ejecuta cada estrategia activa
"""
from typing import List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.application.grid_strategy_use_case import GridStrategy
from app.application.order_keeper_use_case import OrderKeeperUseCase
from app.config import ORDER_KEEPER_INTERVAL_SECONDS
from app.domain.entities import Ohlc, Strategy
from app.domain.interfaces import KlineManager, NotificationService, UnitOfWork
from app.infrastructure.database_repository import SqlAlchemyUnitOfWork
from app.infrastructure.grid_calculator import GridTradingCalculator
from app.infrastructure.notification_service import TelegramNotificationService
from app.infrastructure.solana_rpc import SolanaRpcClient
from app.infrastructure.strategy_engine import StrategyEngine, SubscriptionRegistry
from app.infrastructure.swap_service import SwapContext, SwapService
from app.infrastructure.wallet_cipher import WalletCipher
from shared.services.logging_config import get_logger

logger = get_logger(__name__)

ACTIVE_STRATEGIES_PAGE_SIZE = 100


class GridScheduler:
    """
    Punto de ensamblaje del servicio.

    ⚡ KEEPER (cada segundo):
    - OrderKeeperUseCase: cierra o rechaza órdenes pendientes

    📈 MOTOR:
    - StrategyEngine: reparte velas entre las GridStrategy activas
    """

    def __init__(
        self,
        uow: Optional[UnitOfWork] = None,
        rpc: Optional[SolanaRpcClient] = None,
        notification_service: Optional[NotificationService] = None,
        kline_manager: Optional[KlineManager] = None,
        cipher: Optional[WalletCipher] = None,
    ):
        self.scheduler = BackgroundScheduler(daemon=True)

        self._initialize_services(uow, rpc, notification_service, kline_manager, cipher)
        self._setup_jobs()

        logger.info("✅ GridScheduler inicializado.")

    def _initialize_services(self, uow, rpc, notification_service, kline_manager, cipher):
        """Inicializa todos los servicios necesarios."""
        try:
            self.uow = uow or SqlAlchemyUnitOfWork()
            self.rpc = rpc or SolanaRpcClient()
            self.swap_context = SwapContext(uow=self.uow, rpc=self.rpc, cipher=cipher or WalletCipher())
            self.notification_service = notification_service or TelegramNotificationService()
            self.kline_manager = kline_manager or SubscriptionRegistry()
            self.engine = StrategyEngine(self.kline_manager)
            self.grid_calculator = GridTradingCalculator()

            self.order_keeper_use_case = OrderKeeperUseCase(
                uow=self.uow,
                chain=self.rpc,
                swap_service_factory=self.create_swap_service,
                notification_service=self.notification_service,
            )

            logger.info("✅ Servicios de Grid y casos de uso inicializados correctamente")

        except Exception as e:
            logger.error(f"❌ Error inicializando servicios: {e}")
            raise

    def create_swap_service(self, user_id: int) -> SwapService:
        """Cada operación usa su propio ámbito de swap."""
        return SwapService(self.swap_context, user_id)

    def _setup_jobs(self):
        """Configura los trabajos del scheduler."""
        self.scheduler.add_job(
            func=self._run_order_keeper,
            trigger=IntervalTrigger(seconds=ORDER_KEEPER_INTERVAL_SECONDS),
            id='order_keeper',
            name='Order Keeper',
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=5
        )
        logger.info(f"✅ Trabajo configurado: keeper de órdenes cada {ORDER_KEEPER_INTERVAL_SECONDS} segundo(s)")

    def _run_order_keeper(self):
        try:
            result = self.order_keeper_use_case.run_once()

            # Solo loggear si hubo actividad
            if result.get('closed', 0) > 0 or result.get('rejected', 0) > 0:
                logger.info(f"⚡ Keeper: {result['closed']} cerradas, {result['rejected']} rechazadas")

        except Exception as e:
            logger.error(f"❌ Error en el keeper de órdenes: {e}")

    # === ESTRATEGIAS ===

    def build_strategy(self, record: Strategy) -> GridStrategy:
        return GridStrategy(
            strategy_id=record.guid,
            token_address=record.token,
            uow=self.uow,
            chain=self.rpc,
            swap_service_factory=self.create_swap_service,
            notification_service=self.notification_service,
            scheduler=self.engine,
            grid_calculator=self.grid_calculator,
        )

    def load_active_strategies(self) -> int:
        """Registra en el motor todas las estrategias activas de la base de datos."""
        offset = 0
        loaded = 0
        while True:
            records: List[Strategy] = self.uow.strategies.find_all_active(offset=offset, limit=ACTIVE_STRATEGIES_PAGE_SIZE)
            if not records:
                break
            self.engine.start_strategy([self.build_strategy(record) for record in records])
            loaded += len(records)
            offset += len(records)
            if len(records) < ACTIVE_STRATEGIES_PAGE_SIZE:
                break

        logger.info(f"📈 {loaded} estrategias activas cargadas")
        return loaded

    def start_strategy(self, guid: str) -> bool:
        """Arranca una estrategia concreta (por ejemplo tras activarla)."""
        record = self.uow.strategies.find_by_guid(guid)
        if record is None or not record.is_active:
            return False
        self.engine.start_strategy([self.build_strategy(record)])
        return True

    def push_ohlcs(self, token: str, ohlcs: List[Ohlc]) -> None:
        """Entrada de velas desde el proveedor de mercado."""
        self.engine.on_ohlcs(token, ohlcs)

    # === CICLO DE VIDA ===

    def start(self):
        """Carga las estrategias e inicia el keeper."""
        try:
            if not self.scheduler.running:
                self.load_active_strategies()
                self.scheduler.start()
                logger.info("✅ Grid Scheduler iniciado")
            else:
                logger.warning("⚠️ Grid Scheduler ya está ejecutándose")

        except Exception as e:
            logger.error(f"❌ Error iniciando Grid Scheduler: {e}")
            raise

    def stop(self):
        """Detiene el scheduler esperando al lote en curso."""
        try:
            if self.scheduler.running:
                self.scheduler.shutdown(wait=True)
                logger.info("✅ Grid Scheduler detenido")
            else:
                logger.info("ℹ️ Grid Scheduler no estaba ejecutándose")

            for strategy_id in self.engine.running_strategies():
                self.engine.stop_strategy(strategy_id)
            self.swap_context.close()
            self.rpc.close()

        except Exception as e:
            logger.error(f"❌ Error deteniendo Grid Scheduler: {e}")

    def is_running(self) -> bool:
        """Verifica si el scheduler está ejecutándose."""
        return self.scheduler.running if self.scheduler else False

    def get_status(self) -> dict:
        """Obtiene el estado actual del scheduler."""
        try:
            jobs = []
            for job in self.scheduler.get_jobs():
                jobs.append({
                    "id": job.id,
                    "name": job.name,
                    "next_run": str(getattr(job, 'next_run_time', None) or '') or None
                })

            return {
                "status": "running" if self.scheduler.running else "stopped",
                "jobs": jobs,
                "running_strategies": len(self.engine.running_strategies()),
                "order_keeper_interval_seconds": ORDER_KEEPER_INTERVAL_SECONDS
            }

        except Exception as e:
            logger.error(f"❌ Error obteniendo estado del scheduler: {e}")
            return {"status": "error", "error": str(e)}

    def trigger_order_keeper(self) -> dict:
        """Ejecuta manualmente un lote del keeper (útil para pruebas)."""
        try:
            logger.info("⚡ Ejecutando keeper de órdenes manual...")
            return {"success": True, "result": self.order_keeper_use_case.run_once()}

        except Exception as e:
            logger.error(f"❌ Error en keeper manual: {e}")
            return {"success": False, "error": str(e)}
