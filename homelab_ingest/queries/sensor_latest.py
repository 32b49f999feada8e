"""Query de últimos valores por dispositivo.

Adaptador fino sobre ``TimeSeriesStore.query_latest``: valida el device_id,
delega y devuelve la agregación sin modificar. Sin reintentos.
"""

from __future__ import annotations

import logging
from typing import Dict

from ..infrastructure.persistence.influx_store import TimeSeriesStore

logger = logging.getLogger(__name__)


class MissingDeviceIdError(ValueError):
    """device_id ausente o vacío."""


class SensorQueryError(RuntimeError):
    """La consulta al store falló."""


def get_latest_values(store: TimeSeriesStore, device_id: str) -> Dict[str, float]:
    """Obtiene ``{temperature?, humidity?}`` del dispositivo.

    Raises:
        MissingDeviceIdError: device_id vacío
        SensorQueryError: cualquier fallo de la consulta
    """
    if not device_id or not device_id.strip():
        raise MissingDeviceIdError("Device ID is required")

    try:
        return store.query_latest(device_id)
    except Exception as e:
        logger.exception("[QUERY] Latest values failed for device=%s", device_id)
        raise SensorQueryError("Failed to fetch sensor data") from e
