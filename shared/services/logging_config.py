import logging
import sys
from pathlib import Path

def setup_logging():
    """
    Configura el sistema de logging para todo el servicio.
    Logs se mostrarán en consola y se guardarán en archivo.
    """
    # Crear directorio de logs si no existe
    logs_dir = Path("logs")
    logs_dir.mkdir(exist_ok=True)

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logging.basicConfig(
        level=logging.INFO,
        format=log_format,
        datefmt=date_format,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(
                logs_dir / "grid_bot.log",
                mode='a',
                encoding='utf-8'
            )
        ]
    )

    # httpx registra cada petición en INFO, demasiado ruido con el keeper a 1s
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logger = logging.getLogger("grid_bot")
    logger.setLevel(logging.INFO)

    return logger

def get_logger(name: str):
    """
    Obtiene un logger con el nombre especificado.

    Args:
        name: Nombre del logger (generalmente __name__)

    Returns:
        Logger configurado
    """
    return logging.getLogger(f"grid_bot.{name}")
