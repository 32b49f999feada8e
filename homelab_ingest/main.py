from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from common.config import Settings, get_settings
from common.log_sink import MqttLogSink
from .core.transport.message_handler import MessageHandler
from .core.transport.mqtt_client import MQTTClient
from .dependencies import Services
from .endpoints import health_router, sensors_router
from .infrastructure.persistence.influx_store import TimeSeriesStore
from .schemas import RootResponse

VERSION = "1.0.0"

logger = logging.getLogger(__name__)


def build_services(settings: Settings) -> Services:
    """Construye el grafo de servicios: log sink → store → handler → MQTT."""
    log_sink = MqttLogSink(settings.log_dir)
    store = TimeSeriesStore.from_settings(settings)
    handler = MessageHandler(store, log_sink=log_sink)
    mqtt_client = MQTTClient.from_settings(settings, handler, log_sink=log_sink)
    return Services(settings=settings, store=store, mqtt=mqtt_client, log_sink=log_sink)


def start_services(services: Services) -> None:
    services.store.start()
    if services.mqtt is not None:
        services.mqtt.connect()


def shutdown_services(services: Services) -> None:
    """Apagado ordenado.

    1. Dejar de aceptar mensajes (desconexión MQTT)
    2. Flush del buffer y cierre de la sesión InfluxDB
    3. Cierre del log sink
    """
    logger.info("[API] Shutting down...")
    if services.mqtt is not None:
        services.mqtt.disconnect()

    services.store.close()

    if services.log_sink is not None:
        services.log_sink.info("Shutdown complete")
        services.log_sink.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = build_services(get_settings())
    start_services(services)
    app.state.services = services
    try:
        yield
    finally:
        shutdown_services(services)


app = FastAPI(title="Homelab IoT API", version=VERSION, lifespan=lifespan)
app.include_router(health_router)
app.include_router(sensors_router)


@app.get("/", response_model=RootResponse)
def root():
    return RootResponse(
        version=VERSION,
        endpoints={
            "health": "/health",
            "latest": "/sensors/{device_id}/latest",
        },
    )


def run() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    settings = get_settings()
    logger.info("[API] Starting on port %d", settings.port)
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
