"""
Sesión de base de datos del bot de grid trading.
Proporciona el engine, la fábrica de sesiones y la inicialización de tablas.
"""
import time
import logging
from contextlib import contextmanager
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import OperationalError, DisconnectionError
from shared.config.settings import settings

logger = logging.getLogger(__name__)

def create_engine_with_ssl_config():
    """
    Crea un engine de SQLAlchemy con configuración SSL optimizada para PostgreSQL.
    """
    if settings.DATABASE_URL.startswith("sqlite"):
        # El keeper y el motor de estrategias usan la BD desde hilos distintos
        return create_engine(
            settings.DATABASE_URL,
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
            pool_recycle=3600
        )
    else:
        connect_args = {}

        if "postgresql" in settings.DATABASE_URL.lower():
            connect_args.update({
                "sslmode": "require",
                "connect_timeout": 10,
                "application_name": "sol_grid_bot",
                "keepalives_idle": 30,
                "keepalives_interval": 10,
                "keepalives_count": 5,
            })

        return create_engine(
            settings.DATABASE_URL,
            pool_size=5,
            max_overflow=10,
            pool_recycle=1800,  # Reciclar conexiones cada 30 minutos
            pool_pre_ping=True,
            pool_timeout=30,
            connect_args=connect_args,
            echo=False
        )

engine = create_engine_with_ssl_config()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configurar SQLite para mejor rendimiento."""
    if settings.DATABASE_URL.startswith("sqlite"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA cache_size=10000")
        cursor.execute("PRAGMA temp_store=MEMORY")
        cursor.close()

def get_db_with_retry(max_retries=3, retry_delay=1):
    """
    Obtiene una sesión de base de datos con reintentos automáticos.

    Args:
        max_retries: Número máximo de reintentos
        retry_delay: Delay entre reintentos en segundos

    Returns:
        Session: Sesión de base de datos válida
    """
    for attempt in range(max_retries):
        try:
            db = SessionLocal()
            db.execute(text("SELECT 1"))
            return db
        except (OperationalError, DisconnectionError) as e:
            logger.warning(f"⚠️ Intento {attempt + 1}/{max_retries} falló: {e}")
            if attempt < max_retries - 1:
                time.sleep(retry_delay * (attempt + 1))
                continue
            logger.error(f"❌ No se pudo establecer conexión después de {max_retries} intentos")
            raise

def init_database():
    """
    Inicializa la base de datos creando todas las tablas definidas en los modelos.
    Debe llamarse al iniciar el servicio para asegurar que las tablas existan.
    """
    try:
        from shared.database.models import Base
        Base.metadata.create_all(bind=engine)
        logger.info("✅ Base de datos inicializada correctamente")
    except Exception as e:
        logger.error(f"❌ Error inicializando base de datos: {e}")
        raise

@contextmanager
def get_db_session():
    """
    Context manager para obtener una sesión de base de datos con manejo de errores.
    Útil para operaciones directas fuera de FastAPI.
    """
    db = None
    try:
        db = get_db_with_retry()
        yield db
    except Exception as e:
        logger.error(f"❌ Error en get_db_session: {e}")
        if db:
            try:
                db.rollback()
            except Exception as rollback_error:
                logger.warning(f"⚠️ Error en rollback: {rollback_error}")
        raise
    finally:
        if db:
            try:
                db.close()
            except Exception as e:
                logger.warning(f"⚠️ Error cerrando sesión de BD: {e}")

def health_check():
    """
    Verifica la salud de la conexión a la base de datos.

    Returns:
        bool: True si la conexión está saludable, False en caso contrario
    """
    try:
        with get_db_session() as db:
            db.execute(text("SELECT 1"))
            return True
    except Exception as e:
        logger.error(f"❌ Health check falló: {e}")
        return False
