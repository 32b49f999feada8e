"""Servicios compartidos por los endpoints HTTP.

Se construyen una vez en el lifespan de la app y se guardan en
``app.state.services``; los endpoints los obtienen con ``Depends``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request

from common.config import Settings
from common.log_sink import MqttLogSink
from .core.transport.mqtt_client import MQTTClient
from .infrastructure.persistence.influx_store import TimeSeriesStore


@dataclass
class Services:
    settings: Settings
    store: TimeSeriesStore
    mqtt: Optional[MQTTClient] = None
    log_sink: Optional[MqttLogSink] = None


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return services


def get_store(request: Request) -> TimeSeriesStore:
    return get_services(request).store
