#!/usr/bin/env python3
"""
Punto de entrada del servicio de Grid Trading.
Expone el paquete `app` de services/grid/ junto al paquete `shared` de la raíz.
"""
import os
import sys

ROOT_DIR = os.path.dirname(os.path.abspath(__file__))

# Agregar el directorio raíz y el del servicio al path
sys.path.append(ROOT_DIR)
sys.path.append(os.path.join(ROOT_DIR, "services", "grid"))

if __name__ == "__main__":
    import uvicorn

    print("🤖 Iniciando Servicio de Grid Trading...")
    print("📍 Puerto: 8002")

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8002,
        reload=False,
        log_level="info"
    )
