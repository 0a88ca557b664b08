"""
Punto de entrada del servicio de Grid Trading en Solana.
Arranca el keeper de órdenes y el motor de estrategias, y expone la entrada de velas.
"""
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from app.domain.entities import Ohlc
from app.infrastructure.scheduler import GridScheduler

from shared.database.session import health_check as database_health_check, init_database
from shared.services.logging_config import get_logger, setup_logging

# --- Configuración Inicial ---
setup_logging()
logger = get_logger(__name__)
scheduler: Optional[GridScheduler] = None


class OhlcPayload(BaseModel):
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
    time: Optional[datetime] = None


# --- Ciclo de Vida de la Aplicación (Startup y Shutdown) ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    global scheduler
    logger.info("🚀 Iniciando ciclo de vida del servicio Grid Trading...")

    try:
        init_database()
        logger.info("🗄️ Base de datos inicializada.")

        scheduler = GridScheduler()
        scheduler.start()

        logger.info("✅ Servicio Grid Trading iniciado correctamente")

    except Exception as e:
        logger.error(f"❌ Error en startup: {e}")
        raise

    yield

    logger.info("🛑 Deteniendo el servicio Grid Trading...")
    try:
        if scheduler:
            scheduler.stop()
        logger.info("✅ Servicio Grid Trading detenido correctamente.")
    except Exception as e:
        logger.error(f"❌ Error en shutdown: {e}")


# --- Aplicación FastAPI ---
app = FastAPI(
    title="Sol Grid Bot - Grid Trading Service",
    description="Grid trading de tokens SPL contra USDC con keeper de órdenes en cadena.",
    version="1.0.0",
    lifespan=lifespan
)


# --- Endpoints de la API ---

@app.get("/", tags=["General"])
def read_root():
    """Endpoint raíz para verificar que el servicio está activo."""
    return {
        "service": "Grid Trading Service",
        "status": "running",
        "version": "1.0.0",
    }


@app.get("/health", tags=["Health"])
def health_check():
    """Endpoint de health check para monitoreo."""
    scheduler_running = scheduler.is_running() if scheduler else False

    db_status = "connected" if database_health_check() else "disconnected"

    overall_status = "healthy"
    if not scheduler_running or db_status != "connected":
        overall_status = "degraded"

    return {
        "status": overall_status,
        "details": {
            "database": db_status,
            "scheduler": "running" if scheduler_running else "stopped",
        },
        "scheduler_info": scheduler.get_status() if scheduler else None
    }


@app.post("/klines/{token}", tags=["Market"])
def push_klines(token: str, ohlcs: List[OhlcPayload]):
    """Entrega velas (de la más antigua a la más reciente) a las estrategias del token."""
    if not scheduler:
        raise HTTPException(status_code=503, detail="Scheduler no disponible")

    candles = [Ohlc(**candle.model_dump()) for candle in ohlcs]
    scheduler.push_ohlcs(token, candles)
    return {"status": "success", "token": token, "candles": len(candles)}


@app.post("/strategies/{guid}/start", tags=["Operations"])
def start_strategy(guid: str):
    """Registra en el motor una estrategia recién activada."""
    if not scheduler:
        raise HTTPException(status_code=503, detail="Scheduler no disponible")

    if not scheduler.start_strategy(guid):
        raise HTTPException(status_code=404, detail="Estrategia no encontrada o inactiva")
    return {"status": "success", "strategy": guid}


@app.post("/manual-keeper", tags=["Operations"])
def trigger_manual_keeper():
    """Ejecuta un lote del keeper de órdenes."""
    if not scheduler:
        return {"status": "error", "message": "Scheduler no disponible"}

    return scheduler.trigger_order_keeper()


if __name__ == "__main__":
    import uvicorn

    logger.info("🚀 Iniciando servidor Grid Trading...")
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8002,
        reload=False,
        log_level="info"
    )
